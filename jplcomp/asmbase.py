"""Stack bookkeeping, calling convention and instruction emission for the assembly backend."""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import TextIO, Union

from .asmdata import AsmValue, ConstKey, _const_key, _fits_int32
from .context import Context, FnInfo
from .nodes import ArrayLValue, LValue
from .types import Array, Bool, Float, Int, ResolvedType


class StackError(RuntimeError):
    """The shadow stack does not hold what the generator expected."""


def log_2(x: int) -> int:
    """The base-2 logarithm of a positive power of two, else -1."""
    if x > 0 and x & (x - 1) == 0:
        return x.bit_length() - 1
    return -1


class Stack:
    """A compile-time model of the machine stack.

    ``shadow`` holds the type of every value on the stack, with None for
    alignment padding; ``variables`` maps names to offsets below ``rbp``.
    """

    def __init__(self, ctx: Context, out: TextIO | None = None) -> None:
        self.ctx = ctx
        self.out = out
        self.size = 0
        self.local_var_size = 0
        self.shadow: list[ResolvedType | None] = []
        self.padding: list[int] = []
        self.variables: dict[str, int] = {}

    def top(self) -> ResolvedType:
        """The type of the value on top of the stack."""
        if not self.shadow or self.shadow[-1] is None:
            raise StackError("no type on top of the stack")
        return self.shadow[-1]

    def push(self, type_: ResolvedType) -> int:
        """Record a pushed value; return its size."""
        size = type_.size(self.ctx)
        self.size += size
        self.shadow.append(type_)
        return size

    def pop(self, expected: ResolvedType | None = None) -> ResolvedType:
        """Record popping the top value, checking its kind against ``expected``."""
        type_ = self.top()
        self.size -= type_.size(self.ctx)
        self.shadow.pop()
        if expected is not None and type_ != expected:
            raise StackError(f"Expected to pop {expected}, but got {type_}")
        return type_

    def align(self, add: int) -> int:
        """Pad so that ``size + add`` is a multiple of 16; return the padding."""
        if (self.size + add) % 16 == 0:
            self.padding.append(0)
            return 0
        leftovers = 16 - (self.size + add) % 16
        self.size += leftovers
        self.padding.append(leftovers)
        self.shadow.append(None)
        return leftovers

    def unalign(self) -> int:
        """Undo the most recent ``align``; return the padding removed."""
        padding = self.padding.pop()
        self.size -= padding
        if padding:
            if self.shadow and self.shadow[-1] is not None and self.out is not None:
                self.out.write(
                    "; uh oh we're trying to unalign but theres data instead of padding\n"
                )
            self.shadow.pop()
        return padding

    def recharacterize(self, n: int, type_: ResolvedType) -> None:
        """Replace the top ``n`` shadow entries by one entry of ``type_``."""
        for _ in range(n):
            self.shadow.pop()
        self.shadow.append(type_)

    def add_lvalue(self, lvalue: LValue, offset: int | None = None) -> None:
        """Bind an lvalue (and an array lvalue's dimension names) to a stack offset.

        Without ``offset`` the value on top of the stack is used.
        """
        base = self.size - 8 if offset is None else offset
        self.variables[lvalue.identifier] = base
        if isinstance(lvalue, ArrayLValue):
            for name in lvalue.indices:
                self.variables[name] = base
                base -= 8

    def add_identifier(self, identifier: str) -> None:
        """Bind ``identifier`` to the value on top of the stack."""
        self.variables[identifier] = self.size - 8


@dataclass
class StackArg:
    """An argument passed on the stack."""

    offset: int = 0
    type: ResolvedType | None = None


class CallingConvention:
    """Where each argument and the return value of a function live."""

    all_int_regs = ("rdi", "rsi", "rdx", "rcx", "r8", "r9")
    all_float_regs = (
        "xmm0", "xmm1", "xmm2", "xmm3", "xmm4", "xmm5", "xmm6", "xmm7", "xmm8",
    )

    def __init__(self, fn: FnInfo, ctx: Context) -> None:
        self.fn = fn
        self.args: list[Union[str, int]] = []
        self.int_regs: list[str] = []
        self.float_regs: list[str] = []
        self.stack_args: list[StackArg] = []
        self.total_stack = 0
        offset = 0

        def on_stack(type_: ResolvedType) -> None:
            nonlocal offset
            self.args.append(offset)
            self.stack_args.append(StackArg(offset, type_))
            offset += type_.size(ctx)
            self.total_stack += type_.size(ctx)

        for type_ in fn.param_types:
            if isinstance(type_, (Int, Bool)):
                if len(self.int_regs) < len(self.all_int_regs):
                    reg = self.all_int_regs[len(self.int_regs)]
                    self.args.append(reg)
                    self.int_regs.append(reg)
                else:
                    on_stack(type_)
            elif isinstance(type_, Float):
                if len(self.float_regs) < len(self.all_float_regs):
                    reg = self.all_float_regs[len(self.float_regs)]
                    self.args.append(reg)
                    self.float_regs.append(reg)
                else:
                    on_stack(type_)
            elif isinstance(type_, Array):
                on_stack(type_)

        ret_type = fn.return_type
        self.ret: Union[str, int] = ""
        self.return_position: Union[str, StackArg] = ""
        if isinstance(ret_type, (Int, Bool)):
            self.ret = self.return_position = "rax"
        elif isinstance(ret_type, Float):
            self.ret = self.return_position = "xmm0"
        elif isinstance(ret_type, Array):
            self.ret = 0
            self.return_position = StackArg(0, ret_type)


class AsmEmitter:
    """Writes instructions while keeping the shadow stack in step."""

    def __init__(self, ctx: Context, opt: int = 0, out: TextIO | None = None) -> None:
        self.ctx = ctx
        self.opt = opt
        self.out: TextIO = out if out is not None else io.StringIO()
        self.const_map: dict[ConstKey, str] = {}
        self.stack = Stack(ctx, self.out)
        self._jump_ctr = 0

    def _const_name(self, val: AsmValue) -> str:
        return self.const_map.get(_const_key(val), "")

    def emit(self, *args: object) -> None:
        """Write one indented line made of ``args``."""
        self.out.write("    " + "".join(str(arg) for arg in args) + "\n")

    def genlabel(self) -> str:
        """A fresh local jump label."""
        self._jump_ctr += 1
        return f".jump{self._jump_ctr}"

    def align(self, size: int) -> None:
        padding = self.stack.align(size)
        if padding:
            self.emit("sub rsp, ", padding, " ; add padding for alignment")

    def unalign(self) -> None:
        padding = self.stack.unalign()
        if padding:
            self.emit("add rsp, ", padding, " ; remove padding for alignment")

    def push(self, reg: str, type_: ResolvedType, comment: str = "") -> None:
        self.emit("; pushing ", type_, " to stack")
        if isinstance(type_, Float):
            self.emit("sub rsp, 8")
            self.emit("movsd [rsp], ", reg)
        elif comment:
            self.emit("push ", reg, " ; ", comment)
        else:
            self.emit("push ", reg)
        self.stack.push(type_)

    def pop(self, reg: str, comment: str = "") -> None:
        type_ = self.stack.pop()
        if isinstance(type_, Float):
            self.emit("movsd ", reg, ", [rsp]")
            self.emit("add rsp, 8")
        elif comment:
            self.emit("pop ", reg, " ; ", comment)
        else:
            self.emit("pop ", reg)

    def push_const(self, val: AsmValue, type_: ResolvedType) -> None:
        self.emit("; pushing const ", type_, " to stack")
        self.stack.push(type_)
        if not isinstance(val, (float, str)) and self.opt > 0 and _fits_int32(int(val)):
            self.emit("push qword ", int(val))
            return
        self.emit("mov rax, [rel ", self._const_name(val), "]")
        self.emit("push rax")

    def read_const(self, reg: str, val: AsmValue) -> None:
        self.emit("lea ", reg, ", [rel ", self._const_name(val), "]")

    def copy(self, size: int, source: str, dest: str) -> None:
        """Copy ``size`` bytes, eight at a time from the top down."""
        for i in range(size - 8, -1, -8):
            self.emit("mov r10, [", source, " + ", i, "]")
            self.emit("mov [", dest, " + ", i, "], r10")

    def asm_alloc(self, type_: ResolvedType) -> None:
        self.emit("sub rsp, ", type_.size(self.ctx))
        self.stack.push(type_)

    def asm_free(self, type_: ResolvedType, n: int = 1) -> None:
        self.emit("add rsp, ", n * type_.size(self.ctx))
        for _ in range(n):
            self.stack.pop(type_)

    def asm_assert(self, cmd: str, msg: str) -> None:
        """Jump past a call to ``_fail_assertion(msg)`` when ``cmd`` holds."""
        self.emit("; begin assert call for '", msg, "'")
        label = self.genlabel()
        self.emit(cmd, " ", label)
        self.align(8)
        self.read_const("rdi", msg)
        self.emit("call _fail_assertion")
        self.unalign()
        self.emit(label, ":")
        self.emit("; end assert call")