import io

from jplcomp.asmdata import DataSectionBuilder
from jplcomp.nodes import (
    ArrayIndexExpr,
    ArrayLiteralExpr,
    ArrayLoopExpr,
    AssertCmd,
    BinopExpr,
    FalseExpr,
    FloatExpr,
    IntExpr,
    LetCmd,
    Program,
    ReadCmd,
    ShowCmd,
    SumLoopExpr,
    TrueExpr,
    VarExpr,
    VarLValue,
    WriteCmd,
)
from jplcomp.typechecker import TypeChecker


def _build(program, opt=0):
    ctx = TypeChecker().check(program)
    out = io.StringIO()
    builder = DataSectionBuilder(ctx, opt, out)
    builder.visit(program)
    return builder, out.getvalue()


def _data_lines(text):
    body = text.split("section .data\n", 1)[1].split("\nsection .text\n", 1)[0]
    return [line for line in body.splitlines() if line]


def test_empty_program_has_both_sections():
    _builder, text = _build(Program([]))
    assert text == "section .data\n\nsection .text\n"


def test_int_constant_and_show_type():
    _builder, text = _build(Program([ShowCmd(IntExpr(5))]))
    assert _data_lines(text) == ["const0: dq 5", "const1: db `(IntType)`, 0"]


def test_small_int_skipped_when_optimising():
    _builder, text = _build(Program([ShowCmd(IntExpr(7))]), opt=1)
    assert _data_lines(text) == ["const0: db `(IntType)`, 0"]


def test_large_int_kept_when_optimising():
    big = 2**40
    _builder, text = _build(Program([ShowCmd(IntExpr(big))]), opt=1)
    assert f"const0: dq {big}" in _data_lines(text)


def test_booleans_only_without_optimisation():
    program = Program([ShowCmd(BinopExpr(TrueExpr(), "&&", FalseExpr()))])
    _builder, text = _build(program)
    lines = _data_lines(text)
    assert lines[:2] == ["const0: dq 1", "const1: dq 0"]
    program = Program([ShowCmd(BinopExpr(TrueExpr(), "&&", FalseExpr()))])
    _builder, text = _build(program, opt=1)
    assert not any("dq" in line for line in _data_lines(text))


def test_integer_division_visits_right_first_and_adds_message():
    program = Program([ShowCmd(BinopExpr(IntExpr(1), "/", IntExpr(2)))])
    _builder, text = _build(program)
    lines = _data_lines(text)
    assert lines[0] == "const0: dq 2"
    assert lines[1] == "const1: dq 1"
    assert lines[2] == "const2: db `divide by zero`, 0"


def test_integer_modulo_adds_message():
    program = Program([ShowCmd(BinopExpr(IntExpr(3), "%", IntExpr(4)))])
    _builder, text = _build(program)
    assert any("`mod by zero`" in line for line in _data_lines(text))


def test_float_division_has_no_zero_check():
    program = Program([ShowCmd(BinopExpr(FloatExpr(1.0), "/", FloatExpr(2.0)))])
    _builder, text = _build(program)
    assert "divide by zero" not in text
    assert any("(FloatType)" in line for line in _data_lines(text))


def test_constants_are_deduplicated():
    builder = DataSectionBuilder(None)
    first = builder.add_int(42)
    assert builder.add_int(42) == first
    assert builder.add_string("x") == builder.add_string("x")
    assert builder.out.getvalue().count("dq 42") == 1


def test_int_and_float_of_same_value_are_distinct():
    builder = DataSectionBuilder(None)
    assert builder.add_int(1) != builder.add_float(1.0)
    assert len(builder.const_map) == 2


def test_float_written_with_fifteen_decimals():
    builder = DataSectionBuilder(None)
    builder.add_float(0.5)
    assert builder.out.getvalue() == "const0: dq 0.500000000000000\n"


def test_array_index_messages_in_order():
    program = Program(
        [
            LetCmd(VarLValue("a"), ArrayLiteralExpr([IntExpr(1), IntExpr(2)])),
            ShowCmd(ArrayIndexExpr(VarExpr("a"), [IntExpr(0)])),
        ]
    )
    _builder, text = _build(program)
    lines = _data_lines(text)
    negative = next(i for i, line in enumerate(lines) if "negative array index" in line)
    too_large = next(i for i, line in enumerate(lines) if "index too large" in line)
    assert too_large == negative + 1


def test_loops_add_bound_messages():
    sum_program = Program([ShowCmd(SumLoopExpr([("i", IntExpr(3))], VarExpr("i")))])
    _builder, text = _build(sum_program)
    assert "non-positive loop bound" in text
    assert "overflow computing array size" not in text
    array_program = Program(
        [ShowCmd(ArrayLoopExpr([("i", IntExpr(3))], VarExpr("i")))]
    )
    _builder, text = _build(array_program)
    assert "non-positive loop bound" in text
    assert "overflow computing array size" in text


def test_read_and_write_use_unquoted_file_names():
    program = Program(
        [
            ReadCmd('"in.png"', VarLValue("img")),
            WriteCmd(VarExpr("img"), '"out.png"'),
        ]
    )
    _builder, text = _build(program)
    lines = _data_lines(text)
    assert "const0: db `in.png`, 0" in lines
    assert "const1: db `out.png`, 0" in lines


def test_assert_message_kept_with_quotes():
    program = Program([AssertCmd(TrueExpr(), '"msg"')])
    builder, text = _build(program, opt=1)
    assert _data_lines(text) == ['const0: db `"msg"`, 0']
    assert builder.add_string('"msg"') == "const0"