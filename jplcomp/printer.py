"""S-expression rendering of syntax trees."""

from __future__ import annotations

from .nodes import (
    ArrayIndexExpr,
    ArrayLiteralExpr,
    ArrayLoopExpr,
    ArrayLValue,
    ArrayType,
    AssertCmd,
    AssertStmt,
    ASTNode,
    ASTVisitor,
    BinopExpr,
    Binding,
    BoolType,
    CallExpr,
    DotExpr,
    Expr,
    FalseExpr,
    FloatExpr,
    FloatType,
    FnCmd,
    IfExpr,
    IntExpr,
    IntType,
    LetCmd,
    LetStmt,
    PrintCmd,
    Program,
    ReadCmd,
    ReturnStmt,
    ShowCmd,
    StructCmd,
    StructLiteralExpr,
    StructType,
    SumLoopExpr,
    TimeCmd,
    TrueExpr,
    UnopExpr,
    VarExpr,
    VarLValue,
    VoidExpr,
    VoidType,
    WriteCmd,
)


def _typed(node: Expr) -> str:
    """The node's resolved type followed by a space, or nothing when untyped."""
    return f"{node.type} " if node.type is not None else ""


def _typed_suffix(node: Expr) -> str:
    return f" {node.type}" if node.type is not None else ""


class _Printer(ASTVisitor):
    def generic_visit(self, node: ASTNode) -> str:
        raise TypeError(f"cannot format {type(node).__name__}")

    def _fmt(self, node: ASTNode) -> str:
        return node.accept(self)

    def _each(self, nodes) -> str:
        return "".join(" " + self._fmt(n) for n in nodes)

    def visit_program(self, node: Program) -> str:
        return "".join(self._fmt(cmd) + "\n" for cmd in node.cmds)

    # Types
    def visit_int_type(self, node: IntType) -> str:
        return "(IntType)"

    def visit_bool_type(self, node: BoolType) -> str:
        return "(BoolType)"

    def visit_float_type(self, node: FloatType) -> str:
        return "(FloatType)"

    def visit_array_type(self, node: ArrayType) -> str:
        return f"(ArrayType {self._fmt(node.element_type)} {node.rank})"

    def visit_struct_type(self, node: StructType) -> str:
        return f"(StructType {node.identifier})"

    def visit_void_type(self, node: VoidType) -> str:
        return "(VoidType)"

    # Commands
    def visit_read_cmd(self, node: ReadCmd) -> str:
        return f"(ReadCmd {node.string} {self._fmt(node.lvalue)})"

    def visit_write_cmd(self, node: WriteCmd) -> str:
        return f"(WriteCmd {self._fmt(node.expr)} {node.string})"

    def visit_let_cmd(self, node: LetCmd) -> str:
        return f"(LetCmd {self._fmt(node.lvalue)} {self._fmt(node.expr)})"

    def visit_assert_cmd(self, node: AssertCmd) -> str:
        return f"(AssertCmd {self._fmt(node.expr)} {node.string})"

    def visit_print_cmd(self, node: PrintCmd) -> str:
        return f"(PrintCmd {node.string})"

    def visit_show_cmd(self, node: ShowCmd) -> str:
        return f"(ShowCmd {self._fmt(node.expr)})"

    def visit_time_cmd(self, node: TimeCmd) -> str:
        return f"(TimeCmd {self._fmt(node.cmd)})"

    def visit_fn_cmd(self, node: FnCmd) -> str:
        params = " ".join(self._fmt(p) for p in node.params)
        stmts = " ".join(self._fmt(s) for s in node.stmts)
        return (
            f"(FnCmd {node.identifier} (({params})) "
            f"{self._fmt(node.return_type)} {stmts})"
        )

    def visit_struct_cmd(self, node: StructCmd) -> str:
        fields = "".join(f" {name} {self._fmt(t)}" for name, t in node.fields)
        return f"(StructCmd {node.identifier}{fields})"

    # Statements
    def visit_let_stmt(self, node: LetStmt) -> str:
        return f"(LetStmt {self._fmt(node.lvalue)} {self._fmt(node.expr)})"

    def visit_assert_stmt(self, node: AssertStmt) -> str:
        return f"(AssertStmt {self._fmt(node.expr)} {node.string})"

    def visit_return_stmt(self, node: ReturnStmt) -> str:
        return f"(ReturnStmt {self._fmt(node.expr)})"

    # Expressions
    def visit_int_expr(self, node: IntExpr) -> str:
        return f"(IntExpr {_typed(node)}{node.value})"

    def visit_float_expr(self, node: FloatExpr) -> str:
        return f"(FloatExpr {_typed(node)}{int(node.value)})"

    def visit_true_expr(self, node: TrueExpr) -> str:
        return f"(TrueExpr{_typed_suffix(node)})"

    def visit_false_expr(self, node: FalseExpr) -> str:
        return f"(FalseExpr{_typed_suffix(node)})"

    def visit_var_expr(self, node: VarExpr) -> str:
        return f"(VarExpr {_typed(node)}{node.identifier})"

    def visit_void_expr(self, node: VoidExpr) -> str:
        return f"(VoidExpr{_typed_suffix(node)})"

    def visit_array_literal_expr(self, node: ArrayLiteralExpr) -> str:
        return f"(ArrayLiteralExpr{_typed_suffix(node)}{self._each(node.elements)})"

    def visit_struct_literal_expr(self, node: StructLiteralExpr) -> str:
        return f"(StructLiteralExpr {_typed(node)}{node.identifier}{self._each(node.fields)})"

    def visit_dot_expr(self, node: DotExpr) -> str:
        return f"(DotExpr {_typed(node)}{self._fmt(node.expr)} {node.field})"

    def visit_array_index_expr(self, node: ArrayIndexExpr) -> str:
        return f"(ArrayIndexExpr {_typed(node)}{self._fmt(node.expr)}{self._each(node.indices)})"

    def visit_call_expr(self, node: CallExpr) -> str:
        return f"(CallExpr {_typed(node)}{node.identifier}{self._each(node.args)})"

    def visit_unop_expr(self, node: UnopExpr) -> str:
        return f"(UnopExpr {_typed(node)}{node.op} {self._fmt(node.expr)})"

    def visit_binop_expr(self, node: BinopExpr) -> str:
        return (
            f"(BinopExpr {_typed(node)}{self._fmt(node.left)} "
            f"{node.op} {self._fmt(node.right)})"
        )

    def visit_if_expr(self, node: IfExpr) -> str:
        return (
            f"(IfExpr {_typed(node)}{self._fmt(node.condition)} "
            f"{self._fmt(node.if_expr)} {self._fmt(node.else_expr)})"
        )

    def _loop(self, name: str, node: ArrayLoopExpr | SumLoopExpr) -> str:
        axes = "".join(f"{var} {self._fmt(bound)} " for var, bound in node.axis)
        return f"({name} {_typed(node)}{axes}{self._fmt(node.expr)})"

    def visit_array_loop_expr(self, node: ArrayLoopExpr) -> str:
        return self._loop("ArrayLoopExpr", node)

    def visit_sum_loop_expr(self, node: SumLoopExpr) -> str:
        return self._loop("SumLoopExpr", node)

    # LValues
    def visit_var_lvalue(self, node: VarLValue) -> str:
        return f"(VarLValue {node.identifier})"

    def visit_array_lvalue(self, node: ArrayLValue) -> str:
        indices = "".join(" " + index for index in node.indices)
        return f"(ArrayLValue {node.identifier}{indices})"

    # Bindings
    def visit_binding(self, node: Binding) -> str:
        return f"{self._fmt(node.lvalue)} {self._fmt(node.type)}"


def format_node(node: ASTNode) -> str:
    """Render any syntax tree node as an S-expression."""
    return node.accept(_Printer())


def format_program(program: Program) -> str:
    """Render a program, one command per line."""
    return format_node(program)