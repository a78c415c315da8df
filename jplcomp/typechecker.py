"""Type checking: resolves the type of every expression and builds the symbol table."""

from __future__ import annotations

from .context import Context, FnInfo, NameInfo, StructInfo, ValueInfo
from .errors import Logger
from .nodes import (
    ArrayIndexExpr,
    ArrayLiteralExpr,
    ArrayLoopExpr,
    ArrayLValue,
    ArrayType,
    AssertCmd,
    AssertStmt,
    ASTVisitor,
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
    LValue,
    Expr,
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
    VoidExpr,
    VoidType,
    WriteCmd,
)
from .types import Array, Bool, Float, Int, ResolvedType, Struct, Void

_EQUALITY_OPS = frozenset({"==", "!="})
_LOGICAL_OPS = frozenset({"&&", "||"})
_ORDER_OPS = frozenset({"<", ">", "<=", ">="})
_ARITHMETIC_OPS = frozenset({"+", "-", "*", "/", "%"})


def _builtins(ctx: Context) -> None:
    f, i = Float(), Int()
    ctx.add(StructInfo("rgba", [("r", f), ("g", f), ("b", f), ("a", f)]))
    ctx.add(ValueInfo("args", Array(i, 1)))
    ctx.add(ValueInfo("argnum", i))
    for name in ("sin", "sqrt", "exp", "cos", "tan", "asin", "acos", "atan", "log"):
        ctx.add(FnInfo(name, [f], f))
    ctx.add(FnInfo("pow", [f, f], f))
    ctx.add(FnInfo("atan2", [f, f], f))
    ctx.add(FnInfo("to_int", [f], i))
    ctx.add(FnInfo("to_float", [i], f))


class TypeChecker(ASTVisitor):
    """Annotates a program with resolved types, raising CompilationError on type errors."""

    def __init__(self, logger: Logger | None = None) -> None:
        self.logger = logger if logger is not None else Logger("<input>", "")
        self.ctx = Context()
        self._returned = False
        self._expected_return_type: ResolvedType | None = None

    def check(self, program: Program) -> Context:
        """Type-check ``program`` and return its global scope."""
        program.accept(self)
        return self.ctx

    def _fail(self, message: str) -> None:
        self.logger.log_error(message, 0)

    def _is_declared(self, name: str) -> bool:
        return self.ctx.lookup(name, NameInfo) is not None

    # ---------- Program ----------

    def visit_program(self, node: Program) -> None:
        self.ctx = Context()
        _builtins(self.ctx)
        self.generic_visit(node)

    # ---------- Commands and statements ----------

    def visit_read_cmd(self, node: ReadCmd) -> None:
        self.generic_visit(node)
        name = node.lvalue.identifier
        if self._is_declared(name):
            self._fail("Redeclaration of variable")
        if isinstance(node.lvalue, ArrayLValue) and len(node.lvalue.indices) != 2:
            self._fail("Read cmd LValue must be of rank 2")
        self.ctx.add(ValueInfo(name, Array(Struct("rgba"), 2)))

    def visit_write_cmd(self, node: WriteCmd) -> None:
        self.generic_visit(node)
        expr_type = node.expr.type
        if not isinstance(expr_type, Array):
            self._fail("Must write array")
        elif not isinstance(expr_type.element_type, Struct):
            self._fail("Must be array of struct")
        elif expr_type.element_type.name != "rgba":
            self._fail("Must be array of struct of type rgba")

    def _let(self, lvalue: LValue, expr: Expr) -> None:
        expr.accept(self)
        lvalue.accept(self)
        name = lvalue.identifier
        if self._is_declared(name):
            self._fail("Redeclaration of variable")
        value_type = expr.type
        if isinstance(lvalue, ArrayLValue):
            if not isinstance(value_type, Array) or len(lvalue.indices) != value_type.rank:
                self._fail("Array LValue had incorrect rank")
        self.ctx.add(ValueInfo(name, value_type))

    def visit_let_cmd(self, node: LetCmd) -> None:
        self._let(node.lvalue, node.expr)

    def visit_let_stmt(self, node: LetStmt) -> None:
        self._let(node.lvalue, node.expr)

    def _assert(self, expr: Expr) -> None:
        if not isinstance(expr.type, Bool):
            self._fail("Assert condition must be of type bool")

    def visit_assert_cmd(self, node: AssertCmd) -> None:
        self.generic_visit(node)
        self._assert(node.expr)

    def visit_assert_stmt(self, node: AssertStmt) -> None:
        self.generic_visit(node)
        self._assert(node.expr)

    def visit_return_stmt(self, node: ReturnStmt) -> None:
        self.generic_visit(node)
        if self._expected_return_type is None or node.expr.type != self._expected_return_type:
            self._fail("Bad return type")
        self._returned = True

    def visit_fn_cmd(self, node: FnCmd) -> None:
        if self._is_declared(node.identifier):
            self._fail("Redeclaration of function")
        for binding in node.params:
            binding.type.accept(self)
        node.return_type.accept(self)
        return_type = node.return_type.type
        param_types = [binding.type.type for binding in node.params]
        self.ctx.add(FnInfo(node.identifier, param_types, return_type))

        parent = self.ctx
        self.ctx = Context(parent)
        try:
            for binding in node.params:
                binding.accept(self)
            self._expected_return_type = return_type
            self._returned = False
            for stmt in node.stmts:
                stmt.accept(self)
            if not self._returned and not isinstance(return_type, Void):
                self._fail("Missing return type")
        finally:
            self.ctx = parent

    def visit_struct_cmd(self, node: StructCmd) -> None:
        self.generic_visit(node)
        seen: set[str] = set()
        fields: list[tuple[str, ResolvedType]] = []
        for name, type_node in node.fields:
            if name in seen:
                self._fail("Redeclaration of struct field")
            seen.add(name)
            fields.append((name, type_node.type))
        self.ctx.add(StructInfo(node.identifier, fields))

    # ---------- Types ----------

    def visit_int_type(self, node: IntType) -> None:
        node.type = Int()

    def visit_float_type(self, node: FloatType) -> None:
        node.type = Float()

    def visit_bool_type(self, node: BoolType) -> None:
        node.type = Bool()

    def visit_array_type(self, node: ArrayType) -> None:
        self.generic_visit(node)
        node.type = Array(node.element_type.type, node.rank)

    def visit_struct_type(self, node: StructType) -> None:
        if self.ctx.lookup(node.identifier, StructInfo) is None:
            self._fail("Use of undeclared struct")
        node.type = Struct(node.identifier)

    def visit_void_type(self, node: VoidType) -> None:
        node.type = Void()

    # ---------- Expressions ----------

    def visit_int_expr(self, node: IntExpr) -> None:
        node.type = Int()

    def visit_float_expr(self, node: FloatExpr) -> None:
        node.type = Float()

    def visit_true_expr(self, node: TrueExpr) -> None:
        node.type = Bool()

    def visit_false_expr(self, node: FalseExpr) -> None:
        node.type = Bool()

    def visit_var_expr(self, node: VarExpr) -> None:
        info = self.ctx.lookup(node.identifier, ValueInfo)
        if info is None:
            self._fail("Use of undeclared variable")
        else:
            node.type = info.type

    def visit_void_expr(self, node: VoidExpr) -> None:
        node.type = Void()

    def visit_binop_expr(self, node: BinopExpr) -> None:
        self.generic_visit(node)
        left = node.left.type
        if left != node.right.type:
            self._fail("left and right must match!")
        numeric = isinstance(left, (Int, Float))
        if node.op in _EQUALITY_OPS:
            node.type = Bool()
        elif node.op in _LOGICAL_OPS:
            if isinstance(left, Bool):
                node.type = left
            else:
                self._fail("Operands must be bool")
        elif node.op in _ORDER_OPS:
            if numeric:
                node.type = Bool()
            else:
                self._fail("Operands must be of a numerical type")
        elif node.op in _ARITHMETIC_OPS:
            if numeric:
                node.type = left
            else:
                self._fail("Operands must be of a numerical type")

    def visit_unop_expr(self, node: UnopExpr) -> None:
        self.generic_visit(node)
        node.type = node.expr.type

    def visit_struct_literal_expr(self, node: StructLiteralExpr) -> None:
        self.generic_visit(node)
        info = self.ctx.lookup(node.identifier, StructInfo)
        if info is None:
            self._fail("Use of undeclared struct")
        else:
            if len(node.fields) != len(info.fields):
                self._fail("Wrong number of fields")
            for expr, (_name, field_type) in zip(node.fields, info.fields):
                if expr.type != field_type:
                    self._fail("Wrong type in struct field")
        node.type = Struct(node.identifier)

    def visit_array_literal_expr(self, node: ArrayLiteralExpr) -> None:
        self.generic_visit(node)
        element_type = node.elements[0].type if node.elements else Void()
        if any(element.type != element_type for element in node.elements):
            self._fail("All elements in array literal must be of the same type")
        node.type = Array(element_type, 1)

    def visit_if_expr(self, node: IfExpr) -> None:
        self.generic_visit(node)
        if not isinstance(node.condition.type, Bool):
            self._fail("Condition on ternary must be of type boolean")
        if node.if_expr.type != node.else_expr.type:
            self._fail("Both branches of ternary must be of same type")
        node.type = node.if_expr.type

    def visit_dot_expr(self, node: DotExpr) -> None:
        self.generic_visit(node)
        struct_type = node.expr.type
        if not isinstance(struct_type, Struct):
            self._fail("Can only access fields of struct objects")
            return
        info = self.ctx.lookup(struct_type.name, StructInfo)
        if info is None:
            self._fail("Somehow has type of undeclared struct")
            return
        for name, field_type in info.fields:
            if name == node.field:
                node.type = field_type

    def visit_array_index_expr(self, node: ArrayIndexExpr) -> None:
        self.generic_visit(node)
        array_type = node.expr.type
        if not isinstance(array_type, Array):
            self._fail("Can only index array objects")
            return
        if len(node.indices) != array_type.rank:
            self._fail("Index is of incorrect rank")
        if any(not isinstance(index.type, Int) for index in node.indices):
            self._fail("Only ints can be used to index arrays")
        node.type = array_type.element_type

    def visit_call_expr(self, node: CallExpr) -> None:
        self.generic_visit(node)
        info = self.ctx.lookup(node.identifier, FnInfo)
        if info is None:
            self._fail("Trying to call undeclared function")
            return
        if len(node.args) != len(info.param_types):
            self._fail("Incorrect number of parameters")
        for arg, param_type in zip(node.args, info.param_types):
            if arg.type != param_type:
                self._fail("Wrong parameter type")
        node.type = info.return_type

    def _loop_scope(self, node: ArrayLoopExpr | SumLoopExpr) -> None:
        if not node.axis:
            self._fail("Array loop expression cannot be empty")
        for _name, bound in node.axis:
            bound.accept(self)
            if not isinstance(bound.type, Int):
                self._fail("Bounds of sum loop expression must be of type integer")
        for name, bound in node.axis:
            self.ctx.add(ValueInfo(name, bound.type))
        node.expr.accept(self)

    def visit_array_loop_expr(self, node: ArrayLoopExpr) -> None:
        parent = self.ctx
        self.ctx = Context(parent)
        try:
            self._loop_scope(node)
            node.type = Array(node.expr.type, len(node.axis))
        finally:
            self.ctx = parent

    def visit_sum_loop_expr(self, node: SumLoopExpr) -> None:
        parent = self.ctx
        self.ctx = Context(parent)
        try:
            self._loop_scope(node)
            if not isinstance(node.expr.type, (Int, Float)):
                self._fail("Sum loop expression must be of numeric type")
            node.type = node.expr.type
        finally:
            self.ctx = parent

    # ---------- LValues and bindings ----------

    def visit_array_lvalue(self, node: ArrayLValue) -> None:
        for index in node.indices:
            if self._is_declared(node.identifier):
                self._fail("Redeclaration of identifier")
            self.ctx.add(ValueInfo(index, Int()))

    def visit_binding(self, node: Binding) -> None:
        self.generic_visit(node)
        name = node.lvalue.identifier
        if self._is_declared(name):
            self._fail("Redeclaration of identifier")
        self.ctx.add(ValueInfo(name, node.type.type))