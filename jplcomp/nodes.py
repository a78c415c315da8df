"""Syntax tree nodes and the base visitor that walks them."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterator

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")


def _visit_name_for(class_name: str) -> str:
    return "visit_" + _CAMEL_BOUNDARY.sub(r"\1_\2", class_name).lower()


@dataclass
class ASTNode:
    """Base of every syntax tree node."""

    visit_name = "visit_ast_node"

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls.visit_name = _visit_name_for(cls.__name__)

    def accept(self, visitor: ASTVisitor) -> Any:
        """Dispatch this node to ``visitor``."""
        return visitor.visit(self)

    def _children(self) -> Iterator[ASTNode]:
        """Yield child nodes in the order a default traversal visits them."""
        return iter(())


@dataclass
class TypeNode(ASTNode):
    """A type as written in the source; ``type`` holds the resolved type."""

    type: Any = field(default=None, init=False, repr=False, compare=False)


@dataclass
class Cmd(ASTNode):
    """A top-level command."""


@dataclass
class Stmt(Cmd):
    """A statement inside a function body."""


@dataclass
class Expr(ASTNode):
    """An expression; ``type`` and ``symbol`` are filled in by later passes."""

    type: Any = field(default=None, init=False, repr=False, compare=False)
    symbol: str = field(default="", init=False, repr=False, compare=False)


@dataclass
class LValue(ASTNode):
    """The target of a binding."""

    identifier: str
    symbol: str = field(default="", init=False, repr=False, compare=False)


@dataclass
class Program(ASTNode):
    cmds: list[Cmd] = field(default_factory=list)

    def _children(self) -> Iterator[ASTNode]:
        yield from self.cmds


# ---------- Types ----------


@dataclass
class IntType(TypeNode):
    pass


@dataclass
class BoolType(TypeNode):
    pass


@dataclass
class FloatType(TypeNode):
    pass


@dataclass
class ArrayType(TypeNode):
    element_type: TypeNode
    rank: int

    def _children(self) -> Iterator[ASTNode]:
        yield self.element_type


@dataclass
class StructType(TypeNode):
    identifier: str


@dataclass
class VoidType(TypeNode):
    pass


# ---------- Commands ----------


@dataclass
class ReadCmd(Cmd):
    string: str
    lvalue: LValue

    def stripped_string(self) -> str:
        """The file name without its surrounding quotes."""
        return self.string[1:-1]

    def _children(self) -> Iterator[ASTNode]:
        yield self.lvalue


@dataclass
class WriteCmd(Cmd):
    expr: Expr
    string: str

    def stripped_string(self) -> str:
        """The file name without its surrounding quotes."""
        return self.string[1:-1]

    def _children(self) -> Iterator[ASTNode]:
        yield self.expr


@dataclass
class LetCmd(Cmd):
    lvalue: LValue
    expr: Expr

    def _children(self) -> Iterator[ASTNode]:
        yield self.lvalue
        yield self.expr


@dataclass
class AssertCmd(Cmd):
    expr: Expr
    string: str

    def _children(self) -> Iterator[ASTNode]:
        yield self.expr


@dataclass
class PrintCmd(Cmd):
    string: str


@dataclass
class ShowCmd(Cmd):
    expr: Expr

    def _children(self) -> Iterator[ASTNode]:
        yield self.expr


@dataclass
class TimeCmd(Cmd):
    cmd: Cmd

    def _children(self) -> Iterator[ASTNode]:
        yield self.cmd


@dataclass
class FnCmd(Cmd):
    identifier: str
    params: list[Binding]
    return_type: TypeNode
    stmts: list[Stmt]

    def _children(self) -> Iterator[ASTNode]:
        yield from self.params
        yield self.return_type
        yield from self.stmts


@dataclass
class StructCmd(Cmd):
    identifier: str
    fields: list[tuple[str, TypeNode]]

    def _children(self) -> Iterator[ASTNode]:
        for _name, type_node in self.fields:
            yield type_node


# ---------- Statements ----------


@dataclass
class LetStmt(Stmt):
    lvalue: LValue
    expr: Expr

    def _children(self) -> Iterator[ASTNode]:
        yield self.lvalue
        yield self.expr


@dataclass
class AssertStmt(Stmt):
    expr: Expr
    string: str

    def _children(self) -> Iterator[ASTNode]:
        yield self.expr


@dataclass
class ReturnStmt(Stmt):
    expr: Expr

    def _children(self) -> Iterator[ASTNode]:
        yield self.expr


# ---------- Expressions ----------


@dataclass
class IntExpr(Expr):
    value: int


@dataclass
class FloatExpr(Expr):
    value: float


@dataclass
class TrueExpr(Expr):
    pass


@dataclass
class FalseExpr(Expr):
    pass


@dataclass
class VarExpr(Expr):
    identifier: str


@dataclass
class VoidExpr(Expr):
    pass


@dataclass
class ArrayLiteralExpr(Expr):
    elements: list[Expr]

    def _children(self) -> Iterator[ASTNode]:
        yield from reversed(self.elements)


@dataclass
class StructLiteralExpr(Expr):
    identifier: str
    fields: list[Expr]

    def _children(self) -> Iterator[ASTNode]:
        yield from reversed(self.fields)


@dataclass
class DotExpr(Expr):
    expr: Expr
    field: str

    def _children(self) -> Iterator[ASTNode]:
        yield self.expr


@dataclass
class ArrayIndexExpr(Expr):
    expr: Expr
    indices: list[Expr]

    def _children(self) -> Iterator[ASTNode]:
        yield self.expr
        yield from self.indices


@dataclass
class CallExpr(Expr):
    identifier: str
    args: list[Expr]

    def _children(self) -> Iterator[ASTNode]:
        yield from reversed(self.args)


@dataclass
class UnopExpr(Expr):
    op: str
    expr: Expr

    def _children(self) -> Iterator[ASTNode]:
        yield self.expr


@dataclass
class BinopExpr(Expr):
    left: Expr
    op: str
    right: Expr

    def _children(self) -> Iterator[ASTNode]:
        yield self.right
        yield self.left


@dataclass
class IfExpr(Expr):
    condition: Expr
    if_expr: Expr
    else_expr: Expr

    def _children(self) -> Iterator[ASTNode]:
        yield self.condition
        yield self.if_expr
        yield self.else_expr


@dataclass
class ArrayLoopExpr(Expr):
    axis: list[tuple[str, Expr]]
    expr: Expr

    def _children(self) -> Iterator[ASTNode]:
        for _name, bound in self.axis:
            yield bound
        yield self.expr


@dataclass
class SumLoopExpr(Expr):
    axis: list[tuple[str, Expr]]
    expr: Expr

    def _children(self) -> Iterator[ASTNode]:
        for _name, bound in self.axis:
            yield bound
        yield self.expr


# ---------- LValues ----------


@dataclass
class VarLValue(LValue):
    pass


@dataclass
class ArrayLValue(LValue):
    indices: list[str] = field(default_factory=list)


# ---------- Bindings ----------


@dataclass
class Binding(ASTNode):
    lvalue: LValue
    type: TypeNode

    def _children(self) -> Iterator[ASTNode]:
        yield self.lvalue
        yield self.type


class ASTVisitor:
    """Walks a syntax tree.

    ``visit`` calls ``visit_<node_kind>`` (for example ``visit_binop_expr``)
    when the visitor defines it, and ``generic_visit`` otherwise.
    ``generic_visit`` visits the node's children in the default order.
    """

    def visit(self, node: ASTNode) -> Any:
        method = getattr(self, node.visit_name, None)
        if method is None:
            return self.generic_visit(node)
        return method(node)

    def generic_visit(self, node: ASTNode) -> None:
        for child in node._children():
            child.accept(self)