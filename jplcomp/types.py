"""Resolved (semantic) types produced by the type checker."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .context import StructInfo

if TYPE_CHECKING:
    from .context import Context


class ResolvedType:
    """Base of all resolved types.

    Two resolved types compare equal when they are of the same kind; the
    element type and rank of arrays and the name of structs are not compared.
    """

    _label = "Type"
    _c_name = ""

    def c_type(self) -> str:
        """The C type name used by the C backend."""
        return self._c_name

    def show_type(self, ctx: Context) -> str:
        """The type description handed to the runtime's ``show``."""
        return str(self)

    def size(self, ctx: Context) -> int:
        """Size in bytes of a value of this type on the stack."""
        return 8

    def __str__(self) -> str:
        return f"({self._label})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResolvedType):
            return NotImplemented
        return type(self) is type(other)

    def __hash__(self) -> int:
        return hash(type(self))


class Int(ResolvedType):
    _label = "IntType"
    _c_name = "int64_t"

    def __repr__(self) -> str:
        return "Int()"


class Float(ResolvedType):
    _label = "FloatType"
    _c_name = "double"

    def __repr__(self) -> str:
        return "Float()"


class Bool(ResolvedType):
    _label = "BoolType"
    _c_name = "bool"

    def __repr__(self) -> str:
        return "Bool()"


class Void(ResolvedType):
    _label = "VoidType"
    _c_name = "void_t"

    def __repr__(self) -> str:
        return "Void()"


@dataclass(eq=False)
class Struct(ResolvedType):
    name: str

    def _info(self, ctx: Context) -> StructInfo:
        info = ctx.lookup(self.name, StructInfo)
        if info is None:
            raise KeyError(f"undeclared struct {self.name!r}")
        return info

    def __str__(self) -> str:
        return f"(StructType {self.name})"

    def c_type(self) -> str:
        return self.name

    def show_type(self, ctx: Context) -> str:
        fields = " ".join(ftype.show_type(ctx) for _name, ftype in self._info(ctx).fields)
        return f"(TupleType {fields})"

    def size(self, ctx: Context) -> int:
        return sum(ftype.size(ctx) for _name, ftype in self._info(ctx).fields)


@dataclass(eq=False)
class Array(ResolvedType):
    element_type: ResolvedType
    rank: int

    def __str__(self) -> str:
        return f"(ArrayType {self.element_type} {self.rank})"

    def c_type(self) -> str:
        return f"_a{self.rank}_{self.element_type.c_type()}"

    def show_type(self, ctx: Context) -> str:
        return f"(ArrayType {self.element_type.show_type(ctx)} {self.rank})"

    def size(self, ctx: Context) -> int:
        return 8 + self.rank * 8