import pytest

from jplcomp.nodes import (
    ArrayLoopExpr,
    ArrayLValue,
    ASTNode,
    BinopExpr,
    Binding,
    FloatExpr,
    FnCmd,
    IntExpr,
    IntType,
    PrintCmd,
    Program,
    ReturnStmt,
    ShowCmd,
    TrueExpr,
    VarExpr,
    VarLValue,
)
from jplcomp.printer import format_node, format_program
from jplcomp.types import Bool, Int


def test_untyped_int():
    assert format_node(IntExpr(5)) == "(IntExpr 5)"


def test_typed_int():
    expr = IntExpr(5)
    expr.type = Int()
    assert format_node(expr) == "(IntExpr (IntType) 5)"


def test_float_is_truncated_toward_zero():
    assert format_node(FloatExpr(3.7)) == format_node(FloatExpr(3.0))
    assert format_node(FloatExpr(-2.9)) == format_node(FloatExpr(-2.0))
    assert format_node(FloatExpr(0.5)) == format_node(FloatExpr(-0.5))


def test_typed_bool_literal_appends_type():
    plain = format_node(TrueExpr())
    typed = TrueExpr()
    typed.type = Bool()
    assert format_node(typed) == plain[:-1] + " " + str(Bool()) + ")"


def test_binop_nests_operands():
    left, right = IntExpr(1), VarExpr("x")
    rendered = format_node(BinopExpr(left, "+", right))
    assert rendered == f"(BinopExpr {format_node(left)} + {format_node(right)})"


def test_program_has_one_line_per_command():
    program = Program([PrintCmd('"hi"'), ShowCmd(IntExpr(1)), ShowCmd(IntExpr(2))])
    text = format_program(program)
    lines = text.split("\n")
    assert lines[-1] == ""
    assert len(lines) - 1 == len(program.cmds)
    assert lines[0] == format_node(program.cmds[0])
    assert format_node(program) == text


def test_fn_cmd_layout():
    fn = FnCmd(
        "f",
        [Binding(VarLValue("x"), IntType())],
        IntType(),
        [ReturnStmt(VarExpr("x"))],
    )
    text = format_node(fn)
    assert text.startswith("(FnCmd f ((")
    assert format_node(Binding(VarLValue("x"), IntType())) in text
    assert text.endswith(format_node(ReturnStmt(VarExpr("x"))) + ")")


def test_array_lvalue_lists_indices():
    parts = format_node(ArrayLValue("img", ["i", "j"])).strip("()").split()
    assert parts == ["ArrayLValue", "img", "i", "j"]


def test_array_loop_lists_axes_then_body():
    loop = ArrayLoopExpr([("i", IntExpr(3))], VarExpr("i"))
    text = format_node(loop)
    assert text.startswith("(ArrayLoopExpr i " + format_node(IntExpr(3)) + " ")
    assert text.endswith(format_node(VarExpr("i")) + ")")


def test_unknown_node_raises():
    with pytest.raises(TypeError):
        format_node(ASTNode())