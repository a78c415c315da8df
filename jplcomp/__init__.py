"""Type checking, S-expression printing and C / x86-64 assembly generation for JPL syntax trees."""

__version__ = "0.1.0"

__all__ = [
    "asmbase",
    "asmdata",
    "asmgen",
    "cgen",
    "context",
    "errors",
    "nodes",
    "printer",
    "tokens",
    "typechecker",
    "types",
]