import pytest

from jplcomp.context import FnInfo, StructInfo, ValueInfo
from jplcomp.errors import CompilationError, Logger
from jplcomp.nodes import (
    ArrayIndexExpr,
    ArrayLiteralExpr,
    ArrayLoopExpr,
    ArrayLValue,
    ArrayType,
    AssertCmd,
    BinopExpr,
    Binding,
    BoolType,
    CallExpr,
    DotExpr,
    FalseExpr,
    FloatExpr,
    FloatType,
    FnCmd,
    IfExpr,
    IntExpr,
    IntType,
    LetCmd,
    LetStmt,
    Program,
    ReadCmd,
    ReturnStmt,
    StructCmd,
    StructLiteralExpr,
    StructType,
    SumLoopExpr,
    TrueExpr,
    UnopExpr,
    VarExpr,
    VarLValue,
    VoidType,
    WriteCmd,
)
from jplcomp.typechecker import TypeChecker
from jplcomp.types import Array, Bool, Float, Int, Struct, Void


def check(*cmds):
    return TypeChecker(Logger("test.jpl", "")).check(Program(list(cmds)))


def let(name, expr):
    return LetCmd(VarLValue(name), expr)


def var_type(ctx, name):
    return ctx.lookup(name, ValueInfo).type


def expect_error(message, *cmds):
    with pytest.raises(CompilationError) as info:
        check(*cmds)
    assert info.value.message == message


def point_struct():
    return StructCmd("point", [("x", IntType()), ("y", FloatType())])


def test_builtins_are_registered():
    ctx = check()
    assert ctx.lookup("sqrt", FnInfo).param_types == [Float()]
    assert ctx.lookup("to_int", FnInfo).return_type == Int()
    assert len(ctx.lookup("pow", FnInfo).param_types) == 2
    args = var_type(ctx, "args")
    assert args.rank == 1 and args.element_type == Int()
    assert [n for n, _t in ctx.lookup("rgba", StructInfo).fields] == ["r", "g", "b", "a"]


def test_let_records_type():
    ctx = check(let("x", IntExpr(3)), let("y", VarExpr("x")))
    assert var_type(ctx, "y") == Int()


def test_error_location_is_start_of_file():
    with pytest.raises(CompilationError) as info:
        check(let("x", VarExpr("nope")))
    assert (info.value.line, info.value.column) == (1, 1)
    assert info.value.message == "Use of undeclared variable"


def test_redeclaration():
    expect_error("Redeclaration of variable", let("x", IntExpr(1)), let("x", IntExpr(2)))


def test_redeclaring_builtin_is_error():
    expect_error("Redeclaration of variable", let("argnum", IntExpr(1)))


@pytest.mark.parametrize("op", ["<", ">=", "==", "!="])
def test_comparison_gives_bool(op):
    expr = BinopExpr(IntExpr(1), op, IntExpr(2))
    check(let("x", expr))
    assert expr.type == Bool()


def test_arithmetic_keeps_operand_type():
    expr = BinopExpr(FloatExpr(1.0), "*", FloatExpr(2.0))
    check(let("x", expr))
    assert expr.type == Float()


def test_logical_ops():
    expr = BinopExpr(TrueExpr(), "&&", FalseExpr())
    check(let("x", expr))
    assert expr.type == Bool()
    expect_error("Operands must be bool", let("y", BinopExpr(IntExpr(1), "||", IntExpr(2))))


def test_binop_mismatch_and_non_numeric():
    expect_error("left and right must match!", let("x", BinopExpr(IntExpr(1), "+", FloatExpr(1.0))))
    expect_error(
        "Operands must be of a numerical type",
        let("x", BinopExpr(TrueExpr(), "<", FalseExpr())),
    )
    expect_error(
        "Operands must be of a numerical type",
        let("x", BinopExpr(TrueExpr(), "+", FalseExpr())),
    )


def test_unop_takes_operand_type():
    expr = UnopExpr("-", FloatExpr(2.0))
    check(let("x", expr))
    assert expr.type == Float()


def test_array_literal():
    expr = ArrayLiteralExpr([IntExpr(1), IntExpr(2)])
    check(let("a", expr))
    assert expr.type.rank == 1 and expr.type.element_type == Int()
    empty = ArrayLiteralExpr([])
    check(let("e", empty))
    assert empty.type.element_type == Void()
    expect_error(
        "All elements in array literal must be of the same type",
        let("m", ArrayLiteralExpr([IntExpr(1), FloatExpr(1.0)])),
    )


def test_if_expr():
    expr = IfExpr(TrueExpr(), IntExpr(1), IntExpr(2))
    check(let("x", expr))
    assert expr.type == Int()
    expect_error(
        "Condition on ternary must be of type boolean",
        let("x", IfExpr(IntExpr(1), IntExpr(1), IntExpr(2))),
    )
    expect_error(
        "Both branches of ternary must be of same type",
        let("x", IfExpr(TrueExpr(), IntExpr(1), FloatExpr(2.0))),
    )


def test_struct_literal_and_dot():
    dot = DotExpr(VarExpr("p"), "y")
    ctx = check(
        point_struct(),
        let("p", StructLiteralExpr("point", [IntExpr(1), FloatExpr(2.0)])),
        let("f", dot),
    )
    assert var_type(ctx, "p").name == "point"
    assert dot.type == Float()


def test_struct_literal_errors():
    expect_error("Use of undeclared struct", let("p", StructLiteralExpr("nope", [])))
    expect_error(
        "Wrong number of fields",
        point_struct(),
        let("p", StructLiteralExpr("point", [IntExpr(1)])),
    )
    expect_error(
        "Wrong type in struct field",
        point_struct(),
        let("p", StructLiteralExpr("point", [FloatExpr(1.0), FloatExpr(2.0)])),
    )


def test_struct_cmd_errors():
    expect_error("Redeclaration of struct field", StructCmd("s", [("a", IntType()), ("a", IntType())]))
    expect_error("Use of undeclared struct", StructCmd("s", [("a", StructType("missing"))]))


def test_dot_on_non_struct():
    expect_error("Can only access fields of struct objects", let("x", DotExpr(IntExpr(1), "a")))


def test_array_index():
    index = ArrayIndexExpr(VarExpr("args"), [IntExpr(0)])
    check(let("x", index))
    assert index.type == Int()
    expect_error("Index is of incorrect rank", let("x", ArrayIndexExpr(VarExpr("args"), [IntExpr(0), IntExpr(1)])))
    expect_error(
        "Only ints can be used to index arrays",
        let("x", ArrayIndexExpr(VarExpr("args"), [FloatExpr(0.0)])),
    )
    expect_error("Can only index array objects", let("x", ArrayIndexExpr(IntExpr(1), [IntExpr(0)])))


def test_call_expr():
    call = CallExpr("to_float", [IntExpr(3)])
    check(let("x", call))
    assert call.type == Float()
    expect_error("Incorrect number of parameters", let("x", CallExpr("sqrt", [])))
    expect_error("Wrong parameter type", let("x", CallExpr("sqrt", [IntExpr(1)])))
    expect_error("Trying to call undeclared function", let("x", CallExpr("nope", [])))


def test_array_loop_scope_and_type():
    body = BinopExpr(VarExpr("i"), "+", VarExpr("j"))
    loop = ArrayLoopExpr([("i", IntExpr(3)), ("j", IntExpr(4))], body)
    ctx = check(let("a", loop))
    assert loop.type.rank == 2 and loop.type.element_type == Int()
    assert ctx.lookup("i") is None


def test_array_loop_errors():
    expect_error("Array loop expression cannot be empty", let("a", ArrayLoopExpr([], IntExpr(1))))
    expect_error(
        "Bounds of sum loop expression must be of type integer",
        let("a", ArrayLoopExpr([("i", FloatExpr(1.0))], IntExpr(1))),
    )


def test_sum_loop():
    loop = SumLoopExpr([("i", IntExpr(5))], FloatExpr(1.0))
    check(let("s", loop))
    assert loop.type == Float()
    expect_error(
        "Sum loop expression must be of numeric type",
        let("s", SumLoopExpr([("i", IntExpr(5))], TrueExpr())),
    )


def test_function_declaration():
    fn = FnCmd(
        "double",
        [Binding(VarLValue("n"), IntType())],
        IntType(),
        [ReturnStmt(BinopExpr(VarExpr("n"), "*", IntExpr(2)))],
    )
    call = CallExpr("double", [IntExpr(4)])
    ctx = check(fn, let("x", call))
    info = ctx.lookup("double", FnInfo)
    assert info.param_types == [Int()] and info.return_type == Int()
    assert call.type == Int()
    assert ctx.lookup("n") is None


def test_function_errors():
    expect_error("Missing return type", FnCmd("f", [], IntType(), []))
    expect_error("Bad return type", FnCmd("f", [], IntType(), [ReturnStmt(FloatExpr(1.0))]))
    expect_error(
        "Redeclaration of function",
        FnCmd("f", [], VoidType(), []),
        FnCmd("f", [], VoidType(), []),
    )
    expect_error(
        "Redeclaration of identifier",
        FnCmd("f", [Binding(VarLValue("argnum"), IntType())], VoidType(), []),
    )


def test_void_function_needs_no_return():
    ctx = check(FnCmd("f", [], VoidType(), [LetStmt(VarLValue("x"), IntExpr(1))]))
    assert ctx.lookup("f", FnInfo).return_type == Void()


def test_array_param_type():
    binding = Binding(VarLValue("xs"), ArrayType(BoolType(), 3))
    check(FnCmd("f", [binding], VoidType(), []))
    assert binding.type.type.rank == 3
    assert binding.type.type.element_type == Bool()


def test_read_cmd():
    ctx = check(ReadCmd('"photo.png"', ArrayLValue("img", ["h", "w"])))
    img = var_type(ctx, "img")
    assert isinstance(img, Array) and img.rank == 2
    assert img.element_type.name == "rgba"
    assert var_type(ctx, "h") == Int() and var_type(ctx, "w") == Int()
    expect_error(
        "Read cmd LValue must be of rank 2",
        ReadCmd('"photo.png"', ArrayLValue("img", ["a", "b", "c"])),
    )


def test_write_cmd_errors():
    expect_error("Must write array", WriteCmd(IntExpr(1), '"out.png"'))
    expect_error("Must be array of struct", WriteCmd(VarExpr("args"), '"out.png"'))
    expect_error(
        "Must be array of struct of type rgba",
        point_struct(),
        WriteCmd(ArrayLiteralExpr([StructLiteralExpr("point", [IntExpr(1), FloatExpr(2.0)])]), '"out.png"'),
    )


def test_write_cmd_accepts_image():
    write = WriteCmd(VarExpr("img"), '"out.png"')
    check(ReadCmd('"in.png"', VarLValue("img")), write)
    assert write.expr.type.element_type == Struct("rgba")


def test_assert_requires_bool():
    expect_error("Assert condition must be of type bool", AssertCmd(IntExpr(1), '"msg"'))


def test_let_array_lvalue_rank():
    ctx = check(LetCmd(ArrayLValue("a", ["n"]), VarExpr("args")))
    assert var_type(ctx, "n") == Int()
    expect_error(
        "Array LValue had incorrect rank",
        LetCmd(ArrayLValue("a", ["n", "m"]), VarExpr("args")),
    )
    expect_error(
        "Array LValue had incorrect rank",
        LetCmd(ArrayLValue("a", ["n"]), IntExpr(1)),
    )