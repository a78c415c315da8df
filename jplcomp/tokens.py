"""Lexical tokens."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TokenType(Enum):
    """Kinds of token; each value is the label used when printing tokens."""

    ARRAY = "ARRAY"
    ASSERT = "ASSERT"
    BOOL = "BOOL"
    COLON = "COLON"
    COMMA = "COMMA"
    DOT = "DOT"
    ELSE = "ELSE"
    EOF = "END_OF_FILE"
    EQUALS = "EQUALS"
    FALSE = "FALSE"
    FLOAT = "FLOAT"
    FLOATVAL = "FLOATVAL"
    FN = "FN"
    IF = "IF"
    IMAGE = "IMAGE"
    INT = "INT"
    INTVAL = "INTVAL"
    LCURLY = "LCURLY"
    LET = "LET"
    LPAREN = "LPAREN"
    LSQUARE = "LSQUARE"
    NEWLINE = "NEWLINE"
    OP = "OP"
    PRINT = "PRINT"
    RCURLY = "RCURLY"
    READ = "READ"
    RETURN = "RETURN"
    RPAREN = "RPAREN"
    RSQUARE = "RSQUARE"
    SHOW = "SHOW"
    STRING = "STRING"
    STRUCT = "STRUCT"
    SUM = "SUM"
    THEN = "THEN"
    TIME = "TIME"
    TO = "TO"
    TRUE = "TRUE"
    VARIABLE = "VARIABLE"
    VOID = "VOID"
    WRITE = "WRITE"


_BARE = frozenset({TokenType.EOF, TokenType.NEWLINE})


@dataclass(frozen=True)
class Token:
    """A token, its byte offset in the source and its text."""

    type: TokenType
    start: int
    value: str = ""

    def __str__(self) -> str:
        if self.type in _BARE:
            return self.type.value
        return f"{self.type.value} '{self.value}'"