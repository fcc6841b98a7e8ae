"""
受限表达式求值器

条件节点和条件边使用的表达式基于 AST 白名单求值，不执行任意代码。
"""
import ast
import operator
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from ..exceptions import ExpressionError


BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

UNARY_OPERATORS = {
    ast.Not: operator.not_,
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

COMPARE_OPERATORS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda x, y: x in y,
    ast.NotIn: lambda x, y: x not in y,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

SAFE_FUNCTIONS = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
    "lower": lambda value: str(value).lower(),
    "upper": lambda value: str(value).upper(),
}

CONSTANTS = {
    "true": True,
    "false": False,
    "null": None,
}

MAX_EXPRESSION_LENGTH = 1000


@dataclass(frozen=True)
class ExpressionResult:
    """表达式求值结果"""
    value: Any
    truthy: bool

    @property
    def branch(self) -> str:
        return "true" if self.truthy else "false"


class SafeEvaluator(ast.NodeVisitor):
    """基于 AST 白名单的求值器"""

    def __init__(self, expression: str, names: Mapping[str, Any]):
        self.expression = expression
        self.names = names

    def fail(self, message: str):
        raise ExpressionError(self.expression, message)

    def visit_Expression(self, node):
        return self.visit(node.body)

    def visit_Constant(self, node):
        return node.value

    def visit_Name(self, node):
        name = node.id
        if name.startswith("_"):
            self.fail(f"Name not allowed: {name}")
        if name in self.names:
            return self.names[name]
        if name in CONSTANTS:
            return CONSTANTS[name]
        # 未定义变量视为 None，便于 "x is None" 之类的判断
        return None

    def visit_List(self, node):
        return [self.visit(item) for item in node.elts]

    def visit_Tuple(self, node):
        return tuple(self.visit(item) for item in node.elts)

    def visit_Dict(self, node):
        if any(key is None for key in node.keys):
            self.fail("Dict unpacking not allowed")
        return {self.visit(key): self.visit(value) for key, value in zip(node.keys, node.values)}

    def visit_Attribute(self, node):
        # 点号访问仅作为映射键查找
        if node.attr.startswith("_"):
            self.fail(f"Attribute not allowed: {node.attr}")
        container = self.visit(node.value)
        if isinstance(container, Mapping):
            return container.get(node.attr)
        if container is None:
            return None
        self.fail(f"Cannot access '{node.attr}' on {type(container).__name__}")

    def visit_Subscript(self, node):
        container = self.visit(node.value)
        key = self.visit(node.slice)
        if container is None:
            return None
        try:
            return container[key]
        except (KeyError, IndexError):
            return None
        except TypeError as e:
            self.fail(str(e))

    def visit_BinOp(self, node):
        op = BINARY_OPERATORS.get(type(node.op))
        if op is None:
            self.fail(f"Operator not allowed: {type(node.op).__name__}")
        left = self.visit(node.left)
        right = self.visit(node.right)
        if isinstance(node.op, ast.Mult) and not (
            isinstance(left, (int, float)) and isinstance(right, (int, float))
        ):
            # 禁止字符串与列表重复
            self.fail("Multiplication is only allowed between numbers")
        try:
            return op(left, right)
        except (TypeError, ZeroDivisionError) as e:
            self.fail(str(e))

    def visit_UnaryOp(self, node):
        op = UNARY_OPERATORS.get(type(node.op))
        if op is None:
            self.fail(f"Operator not allowed: {type(node.op).__name__}")
        operand = self.visit(node.operand)
        try:
            return op(operand)
        except TypeError as e:
            self.fail(str(e))

    def visit_BoolOp(self, node):
        # 短路求值
        if isinstance(node.op, ast.And):
            result = True
            for value in node.values:
                result = self.visit(value)
                if not result:
                    return result
            return result
        if isinstance(node.op, ast.Or):
            result = False
            for value in node.values:
                result = self.visit(value)
                if result:
                    return result
            return result
        self.fail(f"Boolean operator not allowed: {type(node.op).__name__}")

    def visit_Compare(self, node):
        left = self.visit(node.left)
        for op_node, comparator in zip(node.ops, node.comparators):
            op = COMPARE_OPERATORS.get(type(op_node))
            if op is None:
                self.fail(f"Operator not allowed: {type(op_node).__name__}")
            right = self.visit(comparator)
            try:
                if not op(left, right):
                    return False
            except TypeError as e:
                self.fail(str(e))
            left = right
        return True

    def visit_IfExp(self, node):
        if self.visit(node.test):
            return self.visit(node.body)
        return self.visit(node.orelse)

    def visit_Call(self, node):
        if not isinstance(node.func, ast.Name) or node.func.id not in SAFE_FUNCTIONS:
            self.fail(f"Function not allowed: {ast.dump(node.func)}")
        if node.keywords:
            self.fail("Keyword arguments not allowed")
        func = SAFE_FUNCTIONS[node.func.id]
        args = [self.visit(arg) for arg in node.args]
        try:
            return func(*args)
        except (TypeError, ValueError) as e:
            self.fail(str(e))

    def generic_visit(self, node):
        self.fail(f"Syntax not allowed: {type(node).__name__}")


def compile_expression(expression: str) -> ast.Expression:
    """解析表达式，只做语法检查"""
    if not isinstance(expression, str) or not expression.strip():
        raise ExpressionError(str(expression), "expression must be a non-empty string")
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise ExpressionError(expression[:50] + "...", "expression too long")
    try:
        return ast.parse(expression.strip(), mode="eval")
    except SyntaxError as e:
        raise ExpressionError(expression, f"syntax error: {e.msg}")


def evaluate(
    expression: str,
    variables: Optional[Mapping[str, Any]] = None,
    node_results: Optional[Mapping[str, Any]] = None,
    extra: Optional[Dict[str, Any]] = None
) -> ExpressionResult:
    """
    安全地求值表达式

    Args:
        expression: 表达式文本，例如 "score > 80 and nodes.check.result"
        variables: 运行变量，可直接按名称引用
        node_results: 节点输出，通过 nodes.<id> 引用
        extra: 额外绑定的名称

    Returns:
        ExpressionResult: 求值结果及其真值

    Raises:
        ExpressionError: 语法错误或使用了不允许的结构
    """
    tree = compile_expression(expression)

    names: Dict[str, Any] = dict(variables or {})
    names["vars"] = dict(variables or {})
    names["nodes"] = dict(node_results or {})
    if extra:
        names.update(extra)

    value = SafeEvaluator(expression, names).visit(tree)
    return ExpressionResult(value=value, truthy=bool(value))


def is_branch_label(condition: Optional[str]) -> bool:
    """边条件是否为简单的分支标签"""
    return condition is not None and condition.strip().lower() in ("true", "false")
