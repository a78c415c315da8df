# jplcomp

`jplcomp` is the middle and back end of a compiler for JPL, a small
language for image processing. Given a JPL syntax tree it:

- checks its types and records the resolved type on every expression;
- renders the tree as S-expressions;
- generates C source that targets the JPL runtime;
- generates x86-64 assembly in NASM syntax. With `opt=1` the assembly
  generator pushes integer constants that fit in 32 bits as immediates
  and turns multiplications by powers of two into shifts.

The package has no dependencies outside the standard library.

## Modules

| Module | What it holds |
| --- | --- |
| `jplcomp.nodes` | The syntax-tree dataclasses (`Program`; type nodes such as `IntType` and `ArrayType`; commands such as `LetCmd`, `ShowCmd`, `FnCmd`; statements; expressions; `VarLValue`, `ArrayLValue`; `Binding`) and `ASTVisitor`, whose `visit` dispatches to `visit_<node_kind>` methods and falls back to `generic_visit`. |
| `jplcomp.errors` | `CompilationError` and `Logger`. `Logger.line_col(position)` turns a byte offset into a 1-based line and column; `Logger.log_error(message, position)` raises `CompilationError`. |
| `jplcomp.types` | The resolved types `Int`, `Float`, `Bool`, `Void`, `Struct` and `Array`, with `c_type()`, `size(ctx)` and `show_type(ctx)`. Two resolved types compare equal when they are of the same kind. |
| `jplcomp.context` | `Context`, a scope with an optional parent, and its entries `ValueInfo`, `StructInfo` and `FnInfo`. `lookup(identifier, kind)` returns the nearest entry of that kind or `None`. |
| `jplcomp.tokens` | `TokenType` and the `Token` dataclass; `str(token)` gives the token listing form, e.g. `INTVAL '3'` or `END_OF_FILE`. |
| `jplcomp.printer` | `format_node(node)` and `format_program(program)`, which render a bare or type-checked tree as S-expressions. |
| `jplcomp.typechecker` | `TypeChecker`; `check(program)` annotates the tree and returns the global `Context`, which holds the built-in `rgba` struct, `args`, `argnum` and the maths functions (`sin`, `sqrt`, `pow`, `atan2`, `to_int`, `to_float`, ...). |
| `jplcomp.cgen` | `CodeGenerator`, with its helpers `TypeDefGenerator` and `FunctionGenerator`; `generate(program)` returns the C source. |
| `jplcomp.asmdata` | `DataSectionBuilder`, which writes the `.data` section and labels each distinct constant and message. |
| `jplcomp.asmbase` | The shadow `Stack`, `StackArg`, `CallingConvention`, `AsmEmitter` (instruction-level helpers), `StackError` and `log_2`. |
| `jplcomp.asmgen` | `ASMGenerator` and `FunctionEmitter`; `ASMGenerator.generate(program)` returns the complete assembly file. |

## Typical flow

```python
from jplcomp.nodes import Program, ShowCmd, BinopExpr, IntExpr
from jplcomp.typechecker import TypeChecker
from jplcomp.printer import format_program
from jplcomp.cgen import CodeGenerator
from jplcomp.asmgen import ASMGenerator

program = Program([ShowCmd(BinopExpr(IntExpr(1), "+", IntExpr(2)))])

checker = TypeChecker()
ctx = checker.check(program)

print(format_program(program))
c_source = CodeGenerator(ctx).generate(program)
assembly = ASMGenerator(ctx, opt=1).generate(program)
```

`TypeChecker`, `CodeGenerator` and `ASMGenerator` accept an optional
`Logger`; give it the source file name (and optionally its text) so that
errors carry a file name.

## Errors

Type errors are raised as `CompilationError`, whose message reads
`Compilation failed: <file>[<line>:<col>]: <message>`. The type checker
reports every error at offset 0, so the position is always line 1,
column 1. Inconsistencies in the assembly generator's shadow stack raise
`StackError`.

## What this package does not do

- It has no lexer or parser: it does not read JPL source text. Trees are
  built directly from the classes in `jplcomp.nodes`. `jplcomp.tokens`
  only defines tokens and their printed form.
- It installs no command-line program; the passes are used from Python.
- It does not assemble, compile or link the code it generates, and does
  not include the JPL runtime that the generated code calls.