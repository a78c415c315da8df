"""C backend: emits a C translation unit for a type-checked program."""

from __future__ import annotations

import io
from typing import TextIO

from .context import Context, FnInfo
from .errors import Logger
from .nodes import (
    ArrayIndexExpr,
    ArrayLiteralExpr,
    ArrayLoopExpr,
    ArrayLValue,
    ArrayType,
    AssertCmd,
    AssertStmt,
    ASTVisitor,
    BinopExpr,
    CallExpr,
    DotExpr,
    FalseExpr,
    FloatExpr,
    FnCmd,
    IfExpr,
    IntExpr,
    LetCmd,
    LetStmt,
    PrintCmd,
    Program,
    ReadCmd,
    ShowCmd,
    StructCmd,
    StructLiteralExpr,
    SumLoopExpr,
    TrueExpr,
    UnopExpr,
    VarExpr,
    VarLValue,
    VoidExpr,
)
from .types import Float, Int

_HEADER = (
    "#include <math.h>\n"
    "#include <stdbool.h>\n"
    "#include <stdint.h>\n"
    "#include <stdio.h>\n"
    '#include "rt/runtime.h"\n\n'
    "typedef struct { } void_t;\n\n"
)


def _default_logger(logger: Logger | None) -> Logger:
    return logger if logger is not None else Logger("<input>", "")


class TypeDefGenerator(ASTVisitor):
    """Writes the header and the C typedefs for structs and array types."""

    def __init__(
        self,
        ctx: Context,
        logger: Logger | None = None,
        out: TextIO | None = None,
    ) -> None:
        self.ctx = ctx
        self.logger = _default_logger(logger)
        self.out: TextIO = out if out is not None else io.StringIO()
        self.created_types: set[str] = set()

    def _array_typedef(self, c_name: str, rank: int, element: str, indent: str) -> None:
        if c_name not in self.created_types:
            self.out.write("typedef struct {\n")
            for i in range(rank):
                self.out.write(f"{indent}int64_t d{i};\n")
            self.out.write(f"{indent}{element} *data;\n")
            self.out.write(f"}} {c_name};\n\n")
        self.created_types.add(c_name)

    def visit_program(self, node: Program) -> None:
        self.out.write(_HEADER)
        self.created_types.add("rgba")
        self.generic_visit(node)

    def visit_struct_cmd(self, node: StructCmd) -> None:
        self.generic_visit(node)
        if node.identifier not in self.created_types:
            self.out.write("typedef struct {\n")
            for name, type_node in node.fields:
                self.out.write(f"  {type_node.type.c_type()} {name};\n")
            self.out.write(f"}} {node.identifier};\n\n")
        self.created_types.add(node.identifier)

    def visit_array_type(self, node: ArrayType) -> None:
        self.generic_visit(node)
        self._array_typedef(
            node.type.c_type(), node.rank, node.element_type.type.c_type(), "  "
        )

    def visit_array_literal_expr(self, node: ArrayLiteralExpr) -> None:
        self.generic_visit(node)
        element = node.type.element_type.c_type()
        self._array_typedef(f"_a1_{element}", 1, element, "")

    def visit_array_loop_expr(self, node: ArrayLoopExpr) -> None:
        self.generic_visit(node)
        self._array_typedef(
            node.type.c_type(), len(node.axis), node.expr.type.c_type(), "  "
        )


class FunctionGenerator(ASTVisitor):
    """Writes a C function for each function declared in the program."""

    def __init__(
        self,
        code_gen: CodeGenerator,
        ctx: Context | None = None,
        logger: Logger | None = None,
    ) -> None:
        self.code_gen = code_gen
        self.ctx = ctx if ctx is not None else code_gen.ctx
        self.logger = _default_logger(logger)

    def visit_program(self, node: Program) -> None:
        self.generic_visit(node)

    def visit_fn_cmd(self, node: FnCmd) -> None:
        out = self.code_gen.out
        params = ", ".join(
            f"{p.type.type.c_type()} {p.lvalue.identifier}" for p in node.params
        )
        out.write(f"{node.return_type.type.c_type()} {node.identifier}({params}) {{\n")
        self.code_gen.reset_name_ctr()
        for stmt in node.stmts:
            stmt.accept(self.code_gen)
        out.write("}\n\n")


class CodeGenerator(ASTVisitor):
    """Generates C source for a type-checked program."""

    def __init__(self, ctx: Context, logger: Logger | None = None) -> None:
        self.ctx = ctx
        self.logger = _default_logger(logger)
        self.out: TextIO = io.StringIO()
        self._reset_state()

    def _reset_state(self) -> None:
        self._name_ctr = 0
        self._jump_ctr = 1
        self._var_map: dict[str, str] = {}
        self._last_symbol = ""
        self.type_def_generator = TypeDefGenerator(self.ctx, self.logger, self.out)
        self.function_generator = FunctionGenerator(self, self.ctx, self.logger)

    def generate(self, program: Program) -> str:
        """Return the C translation unit for ``program``."""
        self.out = io.StringIO()
        self._reset_state()
        program.accept(self)
        return self.out.getvalue()

    def reset_name_ctr(self) -> None:
        """Restart temporary names from ``_0``."""
        self._name_ctr = 0

    def _gensym(self) -> str:
        name = f"_{self._name_ctr}"
        self._name_ctr += 1
        return name

    def _genlabel(self) -> str:
        label = f"_jump{self._jump_ctr}"
        self._jump_ctr += 1
        return label

    def _line(self, text: str) -> None:
        self.out.write(f"  {text}\n")

    def _check(self, condition: str, message: str) -> None:
        label = self._genlabel()
        self._line(f"if ({condition})")
        self._line(f"goto {label};")
        self._line(f"fail_assertion({message});")
        self._line(f"{label}:;")

    def _declare(self, node, value: str) -> None:
        node.symbol = self._gensym()
        self._line(f"{node.type.c_type()} {node.symbol} = {value};")

    # ---------- Program ----------

    def visit_program(self, node: Program) -> None:
        self.type_def_generator.out = self.out
        self.type_def_generator.visit(node)
        self.function_generator.visit(node)
        self._var_map.setdefault("args", "args")
        self.out.write("void jpl_main(struct args args) {\n")
        self.reset_name_ctr()
        self.generic_visit(node)
        self.out.write("}")

    # ---------- Expressions ----------

    def visit_int_expr(self, node: IntExpr) -> None:
        self._declare(node, str(node.value))

    def visit_float_expr(self, node: FloatExpr) -> None:
        self._declare(node, f"{int(node.value)}.0")

    def visit_true_expr(self, node: TrueExpr) -> None:
        self._declare(node, "true")

    def visit_false_expr(self, node: FalseExpr) -> None:
        self._declare(node, "false")

    def visit_unop_expr(self, node: UnopExpr) -> None:
        self.generic_visit(node)
        self._declare(node, f"{node.op}{node.expr.symbol}")

    def visit_binop_expr(self, node: BinopExpr) -> None:
        if node.op in ("&&", "||"):
            symbol = node.symbol = self._gensym()
            node.left.accept(self)
            self._line(f"bool {symbol} = {node.left.symbol}")
            comparison = "==" if node.op == "&&" else "!="
            label = self._genlabel()
            self._line(f"if (0 {comparison} {node.left.symbol})")
            self._line(f"goto {label};")
            node.right.accept(self)
            self._line(f"{symbol} = {node.right.symbol};")
            self._line(f"{label}:;")
            return
        node.left.accept(self)
        node.right.accept(self)
        left, right = node.left.symbol, node.right.symbol
        if node.op == "%" and isinstance(node.type, Float):
            self._declare(node, f"fmod({left}, {right})")
        else:
            self._declare(node, f"{left} {node.op} {right}")

    def visit_var_expr(self, node: VarExpr) -> None:
        node.symbol = self._var_map.get(node.identifier, "?")

    def visit_array_literal_expr(self, node: ArrayLiteralExpr) -> None:
        self.generic_visit(node)
        symbol = node.symbol = self._gensym()
        size = len(node.elements)
        element = node.type.element_type.c_type()
        self._line(f"{node.type.c_type()} {symbol};")
        self._line(f"{symbol}.d0 = {size};")
        self._line(f"{symbol}.data = jpl_alloc(sizeof({element}) * {size});")
        for i, element_expr in enumerate(node.elements):
            self._line(f"{symbol}.data[{i}] = {element_expr.symbol};")

    def visit_void_expr(self, node: VoidExpr) -> None:
        node.symbol = self._gensym()
        self._line(f"{node.type.c_type()} {node.symbol} = {{}};\n")

    def visit_struct_literal_expr(self, node: StructLiteralExpr) -> None:
        self.generic_visit(node)
        symbol = node.symbol = self._gensym()
        fields = ", ".join(f.symbol for f in node.fields)
        self._line(f"{node.identifier} {symbol} = {{ {fields} }};")

    def visit_dot_expr(self, node: DotExpr) -> None:
        self.generic_visit(node)
        self._declare(node, f"{node.expr.symbol}.{node.field}")

    def visit_if_expr(self, node: IfExpr) -> None:
        node.condition.accept(self)
        symbol = node.symbol = self._gensym()
        else_label = self._genlabel()
        end_label = self._genlabel()
        self._line(f"{node.type.c_type()} {symbol};")
        self._line(f"if (!{node.condition.symbol})")
        self._line(f"goto {else_label};")
        node.if_expr.accept(self)
        self._line(f"{symbol} = {node.if_expr.symbol};")
        self._line(f"goto {end_label};")
        self._line(f"{else_label}:;")
        node.else_expr.accept(self)
        self._line(f"{symbol} = {node.else_expr.symbol};")
        self._line(f"{end_label}:;")

    def visit_array_index_expr(self, node: ArrayIndexExpr) -> None:
        node.expr.accept(self)
        for index in node.indices:
            index.accept(self)
        array = node.expr.symbol
        for i, index in enumerate(node.indices):
            self._check(f"{index.symbol} >= 0", '"negative array index"')
            self._check(f"{index.symbol} < {array}.d{i}", '"index too large"')
        position = self._gensym()
        self._line(f"int64_t {position} = 0;")
        for i, index in enumerate(node.indices):
            self._line(f"{position} *= {array}.d{i};")
            self._line(f"{position} += {index.symbol};")
        self._declare(node, f"{array}.data[{position}]")

    def visit_call_expr(self, node: CallExpr) -> None:
        self.generic_visit(node)
        symbol = node.symbol = self._gensym()
        info = self.ctx.lookup(node.identifier, FnInfo)
        if info is None:
            raise KeyError(f"undeclared function {node.identifier!r}")
        args = ", ".join(arg.symbol for arg in node.args)
        self._line(f"{info.return_type.c_type()} {symbol} = {node.identifier}({args});")

    def _check_bounds(self, node: ArrayLoopExpr | SumLoopExpr) -> None:
        for _name, bound in node.axis:
            bound.accept(self)
            self._line(f"if ({bound.symbol} > 0)")
            label = self._genlabel()
            self._line(f"goto {label};")
            self._line('fail_assertion("non-positive loop bound");')
            self._line(f"{label}:;")

    def _loop_body(self, node: ArrayLoopExpr | SumLoopExpr, symbol: str) -> None:
        counters: list[str] = []
        for name, _bound in reversed(node.axis):
            counter = self._gensym()
            counters.insert(0, counter)
            self._line(f"int64_t {counter} = 0;")
            self._var_map.setdefault(name, counter)
        loop = self._genlabel()
        self._line(f"{loop}:; // loop start")
        node.expr.accept(self)
        self._line(f"{symbol} += {node.expr.symbol};")
        for i in reversed(range(len(node.axis))):
            counter = counters[i]
            self._line(f"{counter}++;")
            self._line(f"if ({counter} < {node.axis[i][1].symbol})")
            self._line(f"goto {loop};")
            if i > 0:
                self._line(f"{counter} = 0;")

    def visit_array_loop_expr(self, node: ArrayLoopExpr) -> None:
        symbol = node.symbol = self._gensym()
        self._line(f"{node.type.c_type()} {symbol};")
        self._check_bounds(node)
        size = self._gensym()
        self._line(f"int64_t {size} = 1;")
        self._line(f"{size} *= 1;")
        element = "int64_t" if isinstance(node.expr.type, Int) else "double"
        self._line(f"{size} *= sizeof({element});")
        self._line(f"{symbol}.data = jpl_alloc({size});")
        self._loop_body(node, symbol)

    def visit_sum_loop_expr(self, node: SumLoopExpr) -> None:
        symbol = node.symbol = self._gensym()
        c_name = "int64_t" if isinstance(node.expr.type, Int) else "double"
        self._line(f"{c_name} {symbol};")
        self._check_bounds(node)
        self._line(f"{symbol} = 0;")
        self._loop_body(node, symbol)

    # ---------- Commands and statements ----------

    def visit_assert_cmd(self, node: AssertCmd) -> None:
        self.generic_visit(node)
        self._check(f"0 != {node.expr.symbol}", node.string)

    def visit_read_cmd(self, node: ReadCmd) -> None:
        symbol = self._gensym()
        self._line(f"_a2_rgba {symbol} = read_image({node.string});")
        if isinstance(node.lvalue, ArrayLValue):
            self._line(f"int64_t {node.lvalue.indices[0]} = {symbol}.d0;")
            self._line(f"int64_t {node.lvalue.indices[1]} = {symbol}.d1;")
        self._last_symbol = symbol
        node.lvalue.accept(self)

    def visit_assert_stmt(self, node: AssertStmt) -> None:
        self.generic_visit(node)
        self._check(f"0 != {node.expr.symbol}", node.string)

    def visit_show_cmd(self, node: ShowCmd) -> None:
        self.generic_visit(node)
        shown = node.expr.type.show_type(self.ctx)
        self._line(f'show("{shown}", &{node.expr.symbol});')

    def visit_let_cmd(self, node: LetCmd) -> None:
        node.expr.accept(self)
        self._last_symbol = node.expr.symbol
        node.lvalue.accept(self)

    def visit_var_lvalue(self, node: VarLValue) -> None:
        self._var_map.setdefault(node.identifier, self._last_symbol)

    def visit_array_lvalue(self, node: ArrayLValue) -> None:
        self._var_map.setdefault(node.identifier, self._last_symbol)
        for i, index in enumerate(node.indices):
            self._var_map.setdefault(index, f"{self._last_symbol}.d{i}")

    def visit_let_stmt(self, node: LetStmt) -> None:
        self.generic_visit(node)
        self._var_map.setdefault(node.lvalue.identifier, node.expr.symbol)

    def visit_print_cmd(self, node: PrintCmd) -> None:
        self.generic_visit(node)
        self._line(f"print({node.string});")

    def visit_fn_cmd(self, node: FnCmd) -> None:
        """Functions are emitted by the FunctionGenerator, not inline."""