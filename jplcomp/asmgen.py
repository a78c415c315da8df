"""Assembly backend: emits NASM x86-64 code for a type-checked program."""

from __future__ import annotations

import io
from typing import TextIO

from .asmbase import AsmEmitter, CallingConvention, Stack, log_2
from .asmdata import DataSectionBuilder
from .context import Context, FnInfo
from .errors import Logger
from .nodes import (
    ArrayIndexExpr,
    ArrayLiteralExpr,
    ArrayLoopExpr,
    AssertCmd,
    AssertStmt,
    ASTVisitor,
    BinopExpr,
    CallExpr,
    DotExpr,
    Expr,
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
    ReturnStmt,
    ShowCmd,
    StructLiteralExpr,
    SumLoopExpr,
    TrueExpr,
    UnopExpr,
    VarExpr,
    VoidExpr,
    WriteCmd,
)
from .types import Array, Bool, Float, Int, Struct, Void

_HEADER = (
    "global jpl_main\n"
    "global _jpl_main\n"
    "extern _fail_assertion\n"
    "extern _jpl_alloc\n"
    "extern _get_time\n"
    "extern _show\n"
    "extern _print\n"
    "extern _print_time\n"
    "extern _read_image\n"
    "extern _write_image\n"
    "extern _fmod\n"
    "extern _sqrt\n"
    "extern _exp\n"
    "extern _sin\n"
    "extern _cos\n"
    "extern _tan\n"
    "extern _asin\n"
    "extern _acos\n"
    "extern _atan\n"
    "extern _log\n"
    "extern _pow\n"
    "extern _atan2\n"
    "extern _to_int\n"
    "extern _to_float\n\n"
)

_COMPARISONS = {
    "<": "setl",
    ">": "setg",
    "<=": "setle",
    ">=": "setge",
    "==": "sete",
    "!=": "setne",
}


class FunctionEmitter(ASTVisitor):
    """Hands every function declaration of a program to the generator."""

    def __init__(self, asm_visitor: ASMGenerator) -> None:
        self.asm_visitor = asm_visitor

    def visit_program(self, node: Program) -> None:
        for cmd in node.cmds:
            cmd.accept(self)

    def visit_fn_cmd(self, node: FnCmd) -> None:
        self.asm_visitor.fn(node)


class ASMGenerator(AsmEmitter, ASTVisitor):
    """Generates assembly for a type-checked program."""

    def __init__(
        self,
        ctx: Context,
        logger: Logger | None = None,
        opt: int = 0,
        out: TextIO | None = None,
    ) -> None:
        AsmEmitter.__init__(self, ctx, opt, out)
        self.logger = logger if logger is not None else Logger("<input>", "")
        self.data_visitor = DataSectionBuilder(ctx, opt, self.out)
        self.fn_visitor = FunctionEmitter(self)

    def generate(self, program: Program) -> str:
        """Return the assembly text for ``program``."""
        self.out = io.StringIO()
        self.stack = Stack(self.ctx, self.out)
        self.const_map = {}
        self._jump_ctr = 0
        self.data_visitor = DataSectionBuilder(self.ctx, self.opt, self.out)
        program.accept(self)
        return self.out.getvalue()

    def _fn_info(self, name: str) -> FnInfo:
        info = self.ctx.lookup(name, FnInfo)
        if info is None:
            raise KeyError(f"undeclared function {name!r}")
        return info

    def _size(self, expr: Expr) -> int:
        return expr.type.size(self.ctx)

    # ---------- Program and functions ----------

    def visit_program(self, node: Program) -> None:
        self.stack.variables["argnum"] = -16
        self.stack.variables["args"] = -16
        self.out.write(_HEADER)
        self.data_visitor.visit(node)
        self.const_map = self.data_visitor.const_map
        self.fn_visitor.visit(node)
        self.out.write("jpl_main:\n_jpl_main:\n")
        self.push("rbp", Int())
        self.emit("mov rbp, rsp")
        self.push("r12", Int())
        self.emit("mov r12, rbp")
        self.emit("; === END OF PRELUDE ===\n")
        for cmd in node.cmds:
            cmd.accept(self)
        self.emit("; local var size ", self.stack.local_var_size)
        if self.stack.local_var_size:
            self.emit("add rsp, ", self.stack.local_var_size, " ; local vars")
        self.emit("\n    ; === START OF POSTLUDE ===")
        self.emit("pop r12")
        self.emit("pop rbp")
        self.emit("ret")

    def visit_fn_cmd(self, node: FnCmd) -> None:
        """Functions are emitted ahead of the main body by ``fn``."""

    def fn(self, fn: FnCmd) -> None:
        """Emit the code of one function declaration."""
        convention = CallingConvention(self._fn_info(fn.identifier), self.ctx)
        returns_on_stack = isinstance(convention.ret, int)
        prev_stack = self.stack
        self.stack = Stack(self.ctx, self.out)

        self.out.write(f"{fn.identifier}:\n")
        self.out.write(f"_{fn.identifier}:\n")

        self.push("rbp", Int())
        self.emit("mov rbp, rsp")
        self.emit("; === END OF PRELUDE ===\n")

        self.out.write(f"; ret reg {convention.ret}\n")
        self.out.write("; doing return val\n")
        if returns_on_stack:
            self.push("rdi", Int())
            self.stack.variables["$return"] = self.stack.size - 8

        self.out.write("; receive args\n")
        for param, position in zip(fn.params, convention.args):
            self.emit("; identifier ", param.lvalue.identifier)
            type_ = param.type.type
            self.emit("; type ", type_)
            self.emit("; position ", position)
            if isinstance(position, int):
                ret_size = fn.return_type.type.size(self.ctx)
                offset = self.stack.size - position + 16 + ret_size
                self.stack.add_lvalue(param.lvalue, -offset)
            else:
                self.push(position, type_)
                self.stack.add_lvalue(param.lvalue)

        self.out.write("; process stmts\n")
        for stmt in fn.stmts:
            stmt.accept(self)

        self.emit("add rsp, ", self.stack.size - 8, " ; local variables")
        self.stack.pop()
        self.emit("pop rbp")
        self.emit("ret")
        self.out.write("\n")

        self.stack = prev_stack

    def visit_return_stmt(self, node: ReturnStmt) -> None:
        node.expr.accept(self)
        type_ = node.expr.type
        if isinstance(type_, (Int, Bool)):
            self.pop("rax")
        elif isinstance(type_, Float):
            self.pop("xmm0")
        else:
            offset = self.stack.variables.get("$return", 0)
            self.emit("mov rax, [rbp - ", offset, "]")
            self.copy(type_.size(self.ctx), "rsp", "rax")

    # ---------- Literals ----------

    def visit_int_expr(self, node: IntExpr) -> None:
        self.push_const(node.value, Int())

    def visit_float_expr(self, node: FloatExpr) -> None:
        self.push_const(float(node.value), Float())

    def visit_true_expr(self, node: TrueExpr) -> None:
        self.push_const(1, Bool())

    def visit_false_expr(self, node: FalseExpr) -> None:
        self.push_const(0, Bool())

    def visit_void_expr(self, node: VoidExpr) -> None:
        self.push_const(1, Void())

    # ---------- Operators ----------

    def visit_unop_expr(self, node: UnopExpr) -> None:
        node.expr.accept(self)
        type_ = self.stack.top()
        self.emit("; unop on ", type_)
        if isinstance(type_, Bool):
            self.pop("rax")
            self.emit("xor rax, 1")
            self.push("rax", type_)
        elif isinstance(type_, Int):
            self.pop("rax")
            self.emit("neg rax")
            self.push("rax", type_)
        elif isinstance(type_, Float):
            self.pop("xmm1")
            self.emit("pxor xmm0, xmm0")
            self.emit("subsd xmm0, xmm1")
            self.push("xmm0", type_)

    def _zero_check(self, message: str) -> None:
        self.emit("cmp r10, 0")
        self.emit("; begin assert call")
        label = self.genlabel()
        self.emit("jne ", label)
        self.align(8)
        self.read_const("rdi", message)
        self.emit("call _fail_assertion")
        self.unalign()
        self.emit(label, ":")
        self.emit("; end assert call")
        self.emit("cqo")
        self.emit("idiv r10")

    def _shift_by_constant(self, const: IntExpr, other: Expr, side: str) -> None:
        self.emit(f"; optimizing {side} constant into shift")
        other.accept(self)
        shift = log_2(const.value)
        if shift > 0:
            self.pop("rax")
            self.emit("shl rax, ", shift)
            self.push("rax", other.type)

    def int_binop(self, expr: BinopExpr) -> None:
        """Integer and boolean binary operators."""
        if expr.op in ("&&", "||"):
            expr.left.accept(self)
            self.pop("rax")
            self.emit("cmp rax, 0")
            label = self.genlabel()
            self.emit("je" if expr.op == "&&" else "jne", " ", label)
            expr.right.accept(self)
            self.pop("rax")
            self.emit(label, ":")
            self.push("rax", Bool())
            return

        left, right = expr.left, expr.right
        if self.opt > 0 and expr.op == "*":
            if isinstance(left, IntExpr) and log_2(left.value) >= 0:
                self._shift_by_constant(left, right, "left")
                return
            if isinstance(right, IntExpr) and log_2(right.value) >= 0:
                self._shift_by_constant(right, left, "right")
                return

        right.accept(self)
        left.accept(self)
        self.pop("rax")
        self.pop("r10")

        if expr.op in _COMPARISONS:
            self.emit("cmp rax, r10")
            self.emit(_COMPARISONS[expr.op], " al")
            self.emit("and rax, 1")
        elif expr.op == "+":
            self.emit("add rax, r10")
        elif expr.op == "-":
            self.emit("sub rax, r10")
        elif expr.op == "*":
            self.emit("imul rax, r10")
        elif expr.op == "/":
            self._zero_check("divide by zero")
        elif expr.op == "%":
            self._zero_check("mod by zero")
            self.emit("mov rax, rdx")
        self.push("rax", expr.type)

    def float_binop(self, expr: BinopExpr) -> None:
        """Floating-point arithmetic and comparisons."""
        if expr.op == "%":
            self.align(8)
        expr.right.accept(self)
        expr.left.accept(self)
        self.pop("xmm0")
        self.pop("xmm1")
        arithmetic = {"+": "addsd", "-": "subsd", "*": "mulsd", "/": "divsd"}
        if expr.op in arithmetic:
            self.emit(arithmetic[expr.op], " xmm0, xmm1")
        elif expr.op == "%":
            self.emit("call _fmod")
            self.unalign()
        else:
            reg1, reg2 = "xmm0", "xmm1"
            if expr.op in (">", ">="):
                reg1, reg2 = "xmm1", "xmm0"
            cmd = {
                "<": "cmpltsd",
                ">": "cmpltsd",
                "<=": "cmplesd",
                ">=": "cmplesd",
                "==": "cmpeqsd",
                "!=": "cmpneqsd",
            }.get(expr.op, "")
            self.emit(cmd, " ", reg1, ", ", reg2)
            self.emit("movq rax, ", reg1)
            self.emit("and rax, 1")
            self.push("rax", Bool())
            return
        self.push("xmm0", Float())

    def visit_binop_expr(self, node: BinopExpr) -> None:
        self.emit("; binop ", node.type)
        if isinstance(node.left.type, Float):
            self.float_binop(node)
        else:
            self.int_binop(node)

    # ---------- Aggregates ----------

    def visit_array_literal_expr(self, node: ArrayLiteralExpr) -> None:
        self.emit("; in reverse order, generate code for EXPRs")
        for element in reversed(node.elements):
            element.accept(self)
        count = len(node.elements)
        element_size = node.type.element_type.size(self.ctx)
        size = count * element_size
        self.emit("mov rdi, ", size)
        self.align(8)
        self.emit("call _jpl_alloc")
        self.unalign()
        self.emit("; copy data from rsp to rax")
        self.copy(size, "rsp", "rax")
        self.emit("; free EXPRs from stack")
        self.emit("add rsp, ", size)
        for _ in node.elements:
            self.stack.pop()
        self.push("rax", Int())
        self.emit("mov rax, ", count)
        self.push("rax", Int())
        self.stack.recharacterize(2, node.type)

    def visit_struct_literal_expr(self, node: StructLiteralExpr) -> None:
        for field in reversed(node.fields):
            field.accept(self)
        self.stack.recharacterize(len(node.fields), node.type)

    def visit_dot_expr(self, node: DotExpr) -> None:
        node.expr.accept(self)
        start = 0
        size = self._size(node)
        end = self._size(node.expr) - size
        self.copy(size, f"rsp + {start}", f"rsp + {end}")
        self.emit("add rsp, ", end)
        self.stack.recharacterize(1, node.type)

    # ---------- Variables ----------

    def _let(self, lvalue, expr: Expr) -> None:
        expr.accept(self)
        self.stack.local_var_size += self._size(expr)
        self.stack.add_lvalue(lvalue)

    def visit_let_cmd(self, node: LetCmd) -> None:
        self._let(node.lvalue, node.expr)

    def visit_let_stmt(self, node: LetStmt) -> None:
        self._let(node.lvalue, node.expr)

    def visit_var_expr(self, node: VarExpr) -> None:
        start = self.stack.variables.get(node.identifier, 0)
        size = self._size(node)
        self.stack.shadow.append(node.type)
        self.stack.size += size
        self.emit("sub rsp, ", size, " ; make space to copy var expr")
        for i in range(size - 8, -1, -8):
            self.emit("mov r10, [rbp - ", start, " + ", i, "]")
            self.emit("mov [rsp + ", i, "], r10")

    # ---------- Calls and control flow ----------

    def visit_call_expr(self, node: CallExpr) -> None:
        self.out.write(f"; stack size is {self.stack.size}\n")
        info = self._fn_info(node.identifier)
        convention = CallingConvention(info, self.ctx)
        ret_reg = convention.ret if isinstance(convention.ret, str) else None

        if ret_reg is None:
            self.asm_alloc(info.return_type)
            self.emit("lea rdi, [rsp + 0]")
        else:
            self.stack.shadow.append(info.return_type)
        self.out.write(f"; stack size is {self.stack.size}\n")
        self.align(self.stack.size - info.return_type.size(self.ctx))

        pairs = list(zip(node.args, convention.args))
        for arg, position in reversed(pairs):
            if isinstance(position, int):
                self.emit("; generating expr for stack arg")
                arg.accept(self)
                self.stack.size += self._size(arg)
        for arg, position in reversed(pairs):
            self.emit("; generating expr for register arg")
            if isinstance(position, str):
                arg.accept(self)
        for position in convention.args:
            self.emit("; popping register arg to register")
            if isinstance(position, str):
                self.pop(position)

        self.emit("call _", info.name)
        for stack_arg in convention.stack_args:
            self.asm_free(stack_arg.type)
        self.unalign()
        if ret_reg is not None:
            self.push(ret_reg, info.return_type)

    def visit_if_expr(self, node: IfExpr) -> None:
        node.condition.accept(self)
        if self.opt > 0:
            then_, else_ = node.if_expr, node.else_expr
            if (
                isinstance(then_, IntExpr)
                and isinstance(else_, IntExpr)
                and then_.value == 1
                and else_.value == 0
            ):
                return
        self.pop("rax")
        self.emit("cmp rax, 0")
        else_label = self.genlabel()
        end_label = self.genlabel()
        self.emit("je ", else_label)
        node.if_expr.accept(self)
        self.stack.pop()
        self.emit("jmp ", end_label)
        self.emit(else_label, ":")
        node.else_expr.accept(self)
        self.emit(end_label, ":")

    # ---------- Arrays and loops ----------

    def visit_array_index_expr(self, node: ArrayIndexExpr) -> None:
        self.emit()
        self.emit("; begin array index expr")
        array_type = node.expr.type
        rank = array_type.rank
        in_place = self.opt > 0 and isinstance(node.expr, VarExpr)
        if in_place:
            offset = self.stack.variables.get(node.expr.identifier, 0)
            gap = self.stack.size - offset + rank * 8 - 8
        else:
            node.expr.accept(self)
            gap = rank * 8

        for index in reversed(node.indices):
            index.accept(self)

        for k in range(rank):
            self.emit("mov rax, [rsp + ", k * 8, "] ; here")
            self.emit("cmp rax, 0")
            self.asm_assert("jge", "negative array index")
            self.emit("cmp rax, [rsp + ", k * 8 + gap, "] ; here")
            self.asm_assert("jl", "index too large")

        if self.opt == 0:
            self.emit("mov rax, 0")
        else:
            self.emit("mov rax, [rsp + ", 0, "]")
        count = len(node.indices)
        for i in range(1 if self.opt > 0 else 0, count):
            self.emit("imul rax, [rsp + ", i * 8 + gap, "]")
            self.emit("add rax, [rsp + ", i * 8, "]")

        element_type = array_type.element_type
        element_size = element_type.size(self.ctx)
        self.emit("; element type ", element_type)
        self.emit("; element size ", element_size)
        if self.opt > 0 and log_2(element_size) > 0:
            self.emit("shl rax, ", log_2(element_size))
        else:
            self.emit("imul rax, ", element_size)
        self.emit("add rax, [rsp + ", count * 8 + gap, "]")

        if self.opt > 0:
            for index in node.indices:
                self.stack.pop(index.type)
            self.emit("add rsp, ", count * 8)
        else:
            for index in node.indices:
                self.asm_free(index.type)
        if not in_place:
            self.asm_free(node.expr.type)
        self.asm_alloc(element_type)
        self.copy(element_size, "rax", "rsp")
        self.emit("; stack.alloc(ELEM_TYPE)")

    def _check_bounds(self, node: ArrayLoopExpr | SumLoopExpr) -> None:
        for _name, bound in reversed(node.axis):
            bound.accept(self)
            self.emit("mov rax, [rsp]")
            self.emit("cmp rax, 0")
            self.asm_assert("jg", "non-positive loop bound")

    def _push_counters(self, node: ArrayLoopExpr | SumLoopExpr) -> None:
        for name, _bound in reversed(node.axis):
            self.emit("mov rax, 0")
            self.push("rax", Int())
            self.stack.add_identifier(name)

    def _advance_counters(self, num_e: int, jump_label: str) -> None:
        self.emit("add qword [rsp + ", (num_e - 1) * 8, "], 1")
        for i in reversed(range(num_e)):
            self.emit("mov rax, [rsp + ", i * 8, "]")
            self.emit("cmp rax, [rsp + ", (i + num_e) * 8, "]")
            self.emit("jl ", jump_label)
            if i > 0:
                self.emit("mov qword [rsp + ", i * 8, "], 0")
                self.emit("add qword [rsp + ", (i - 1) * 8, "], 1")

    def visit_sum_loop_expr(self, node: SumLoopExpr) -> None:
        self.emit()
        self.emit("; begin sum loop expr")
        num_e = len(node.axis)
        self.asm_alloc(node.type)
        self._check_bounds(node)
        self.emit("mov rax, 0 ; init sum")
        self.emit("mov [rsp + ", num_e * 8, "], rax ; move to pre-alloc")
        self._push_counters(node)

        jump_label = self.genlabel()
        self.emit(jump_label, ":")
        node.expr.accept(self)
        if isinstance(node.expr.type, Int):
            self.pop("rax")
            self.emit("add [rsp + ", 2 * num_e * 8, "], rax")
        else:
            self.pop("xmm0")
            self.emit("addsd xmm0, [rsp + ", 2 * num_e * 8, "]")
            self.emit("movsd [rsp + ", 2 * num_e * 8, "], xmm0")

        self._advance_counters(num_e, jump_label)
        self.asm_free(Int(), num_e)
        self.asm_free(Int(), num_e)

    def visit_array_loop_expr(self, node: ArrayLoopExpr) -> None:
        self.emit()
        self.emit("; begin array loop expr")
        num_e = len(node.axis)
        self.asm_alloc(Int())
        self._check_bounds(node)
        self.emit("mov rdi, ", self._size(node.expr))
        for i in range(num_e):
            self.emit("imul rdi, [rsp + ", i * 8, "]")
            self.asm_assert("jno", "overflow computing array size")
        self.align(8)
        self.emit("call _jpl_alloc")
        self.unalign()
        self.emit("mov [rsp + ", num_e * 8, "], rax ; move to pre-alloc")
        self._push_counters(node)

        jump_label = self.genlabel()
        self.emit(jump_label, ":")
        node.expr.accept(self)
        offset = self._size(node.expr)

        if self.opt == 0:
            self.emit("mov rax, 0")
        else:
            self.emit("mov rax, [rsp + ", offset, "]")
        for i in range(1 if self.opt > 0 else 0, num_e):
            bound = node.axis[i][1]
            if self.opt > 0 and isinstance(bound, IntExpr):
                if log_2(bound.value) >= 0:
                    self.emit("shl rax, ", log_2(bound.value))
                else:
                    self.emit("imul rax, ", bound.value)
            else:
                self.emit("imul rax, [rsp + ", offset + (num_e + i) * 8, "]")
            self.emit("add rax, [rsp + ", offset + i * 8, "]")
        if log_2(offset) >= 0 and self.opt > 0:
            self.emit("shl rax, ", log_2(offset))
        else:
            self.emit("imul rax, ", offset)
        self.emit("add rax, [rsp + ", offset + 2 * num_e * 8, "]")

        self.copy(offset, "rsp", "rax")
        self.asm_free(node.expr.type)

        self._advance_counters(num_e, jump_label)
        self.asm_free(Int(), num_e)
        self.stack.recharacterize(num_e + 1, node.type)

    # ---------- Commands and statements ----------

    def visit_show_cmd(self, node: ShowCmd) -> None:
        type_ = node.expr.type
        size = type_.size(self.ctx)
        self.align(size + 8)
        node.expr.accept(self)
        self.read_const("rdi", type_.show_type(self.ctx))
        self.emit("lea rsi, [rsp]")
        self.emit("call _show")
        self.emit("add rsp, ", size, " ; free stack by sizeof expr")
        self.stack.pop()
        self.unalign()

    def _assert(self, expr: Expr, message: str) -> None:
        expr.accept(self)
        self.pop("rax")
        self.emit("cmp rax, 0")
        self.asm_assert("jne", message)

    def visit_assert_cmd(self, node: AssertCmd) -> None:
        self._assert(node.expr, node.string)

    def visit_assert_stmt(self, node: AssertStmt) -> None:
        self._assert(node.expr, node.string)

    def visit_read_cmd(self, node: ReadCmd) -> None:
        image = Array(Struct("rgba"), 2)
        self.emit("; rgba size ", image.size(self.ctx))
        self.asm_alloc(image)
        self.emit("lea rdi, [rsp]")
        self.align(8)
        self.read_const("rsi", node.stripped_string())
        self.emit("call _read_image")
        self.unalign()
        self.stack.add_lvalue(node.lvalue)
        self.stack.local_var_size += 24

    def visit_write_cmd(self, node: WriteCmd) -> None:
        image = Array(Struct("rgba"), 2)
        self.stack.align(image.size(self.ctx))
        node.expr.accept(self)
        node.expr.accept(self)
        self.read_const("rdi", node.stripped_string())
        self.emit("call _write_image")
        self.asm_free(node.expr.type)
        self.stack.unalign()

    def visit_print_cmd(self, node: PrintCmd) -> None:
        self.read_const("rdi", node.string)
        self.stack.align(8)
        self.emit("call _print")
        self.stack.unalign()