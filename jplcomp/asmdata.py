"""Data section of the assembly backend: one labelled constant per distinct value."""

from __future__ import annotations

import io
from typing import TextIO, Tuple, Union

from .context import Context
from .nodes import (
    ArrayIndexExpr,
    ArrayLoopExpr,
    AssertCmd,
    AssertStmt,
    ASTVisitor,
    BinopExpr,
    FalseExpr,
    FloatExpr,
    IntExpr,
    Program,
    ReadCmd,
    ShowCmd,
    SumLoopExpr,
    TrueExpr,
    WriteCmd,
)
from .types import Int

AsmValue = Union[int, float, str]
ConstKey = Tuple[str, AsmValue]

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


def _fits_int32(value: int) -> bool:
    return _INT32_MIN <= value <= _INT32_MAX


def _const_key(value: AsmValue) -> ConstKey:
    """Key a constant by kind as well as value, so 1 and 1.0 stay distinct."""
    if isinstance(value, str):
        return ("str", value)
    if isinstance(value, float):
        return ("float", value)
    return ("int", int(value))


class DataSectionBuilder(ASTVisitor):
    """Writes the ``.data`` section and records the label of every constant.

    ``const_map`` maps each constant, keyed by kind and value, to its label.
    """

    def __init__(self, ctx: Context, opt: int = 0, out: TextIO | None = None) -> None:
        self.ctx = ctx
        self.opt = opt
        self.out: TextIO = out if out is not None else io.StringIO()
        self.const_map: dict[ConstKey, str] = {}
        self._ctr = 0

    def _label(self, key: ConstKey) -> str | None:
        return self.const_map.get(key)

    def _new_label(self, key: ConstKey) -> str:
        name = f"const{self._ctr}"
        self._ctr += 1
        self.const_map[key] = name
        return name

    # ---------- Constants ----------

    def add_int(self, val: int) -> str:
        """Declare an integer constant once; return its label."""
        key = _const_key(int(val))
        existing = self._label(key)
        if existing is not None:
            return existing
        name = self._new_label(key)
        self.out.write(f"{name}: dq {int(val)}\n")
        return name

    def add_float(self, val: float) -> str:
        """Declare a floating-point constant once; return its label."""
        key = _const_key(float(val))
        existing = self._label(key)
        if existing is not None:
            return existing
        name = self._new_label(key)
        self.out.write(f"{name}: dq {float(val):.15f}\n")
        return name

    def add_string(self, text: str) -> str:
        """Declare a NUL-terminated string constant once; return its label."""
        key = _const_key(text)
        existing = self._label(key)
        if existing is not None:
            return existing
        name = self._new_label(key)
        self.out.write(f"{name}: db `{text}`, 0\n")
        return name

    # ---------- Program ----------

    def visit_program(self, node: Program) -> None:
        self.out.write("section .data\n")
        self.generic_visit(node)
        self.out.write("\nsection .text\n")

    # ---------- Expressions ----------

    def visit_int_expr(self, node: IntExpr) -> None:
        if self.opt > 0 and _fits_int32(node.value):
            return
        self.add_int(node.value)

    def visit_float_expr(self, node: FloatExpr) -> None:
        self.add_float(node.value)

    def visit_true_expr(self, node: TrueExpr) -> None:
        if self.opt > 0:
            return
        self.add_int(1)

    def visit_false_expr(self, node: FalseExpr) -> None:
        if self.opt > 0:
            return
        self.add_int(0)

    def visit_binop_expr(self, node: BinopExpr) -> None:
        if node.op in ("||", "&&"):
            node.left.accept(self)
            node.right.accept(self)
        else:
            self.generic_visit(node)
        if isinstance(node.type, Int):
            if node.op == "/":
                self.add_string("divide by zero")
            elif node.op == "%":
                self.add_string("mod by zero")

    def visit_array_index_expr(self, node: ArrayIndexExpr) -> None:
        node.expr.accept(self)
        for index in reversed(node.indices):
            index.accept(self)
        self.add_string("negative array index")
        self.add_string("index too large")

    def _loop_bounds(self, node: ArrayLoopExpr | SumLoopExpr) -> None:
        for _name, bound in reversed(node.axis):
            bound.accept(self)
            self.add_string("non-positive loop bound")

    def visit_sum_loop_expr(self, node: SumLoopExpr) -> None:
        self._loop_bounds(node)
        node.expr.accept(self)

    def visit_array_loop_expr(self, node: ArrayLoopExpr) -> None:
        self._loop_bounds(node)
        self.add_string("overflow computing array size")
        node.expr.accept(self)

    # ---------- Commands and statements ----------

    def visit_show_cmd(self, node: ShowCmd) -> None:
        self.generic_visit(node)
        self.add_string(node.expr.type.show_type(self.ctx))

    def visit_read_cmd(self, node: ReadCmd) -> None:
        self.add_string(node.stripped_string())
        self.generic_visit(node)

    def visit_write_cmd(self, node: WriteCmd) -> None:
        self.add_string(node.stripped_string())
        self.generic_visit(node)

    def visit_assert_cmd(self, node: AssertCmd) -> None:
        self.generic_visit(node)
        self.add_string(node.string)

    def visit_assert_stmt(self, node: AssertStmt) -> None:
        self.generic_visit(node)
        self.add_string(node.string)