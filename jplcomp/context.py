"""Scoped symbol tables."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from .types import ResolvedType


@dataclass
class NameInfo:
    """Something bound to a name."""

    name: str


@dataclass
class ValueInfo(NameInfo):
    """A variable and its type."""

    type: ResolvedType


@dataclass
class StructInfo(NameInfo):
    """A struct declaration and its ordered fields."""

    fields: list[tuple[str, ResolvedType]] = field(default_factory=list)


@dataclass
class FnInfo(NameInfo):
    """A function signature."""

    param_types: list[ResolvedType]
    return_type: ResolvedType


_Info = TypeVar("_Info", bound=NameInfo)


class Context:
    """A scope of names, optionally nested inside a parent scope."""

    def __init__(self, parent: Context | None = None) -> None:
        self.parent = parent
        self._table: dict[str, NameInfo] = {}

    def add(self, info: NameInfo) -> None:
        """Bind ``info`` under its name in this scope, replacing any earlier binding."""
        self._table[info.name] = info

    def lookup(self, identifier: str, kind: type[_Info] = NameInfo) -> _Info | None:
        """Find the nearest binding of ``identifier`` that is a ``kind``.

        A binding of another kind in an inner scope does not hide a matching
        one further out. Returns None when nothing matches.
        """
        scope: Context | None = self
        while scope is not None:
            info = scope._table.get(identifier)
            if isinstance(info, kind):
                return info
            scope = scope.parent
        return None