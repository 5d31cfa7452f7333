"""
Tree-walking interpreter for the policy language.

Evaluates AST nodes to runtime values.  The interpreter itself is stateless:
all bindings live in the ``Scope`` chain passed alongside every node.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional, TYPE_CHECKING

from .values import (
    Value, ValueKind,
    number_val, bool_val, bytes_val, datetime_val, duration_val, pubkey_val,
    descriptor_val, script_val, function_val, array_val,
    into_bool, into_usize, into_descriptor, into_script,
    translate_domain_errors,
)
from .context import Scope, create_root_scope
from .function import UserFunction, call_value
from ..ast import (
    Expression, Statement, Block, Library,
    Literal, DurationLiteral, Identifier, Call,
    OrExpr, AndExpr, ThreshExpr, WithProbExpr,
    ArrayLiteral, ArrayAccess, ChildDerive, ScriptFrag,
    FnExpr, Infix, NotExpr, Assign, FnDef,
)
from ..errors import (
    DslError, EvaluationError, CallError, OpError, FnNotFoundError,
    InvalidArgumentsError, IndexOutOfRangeError, NotIndexableError,
    InvalidSingleDerivationError, InvalidDescriptorDerivationError,
    HardenedDerivationError, NoReturnValueError, RecursionLimitError,
)
from ..tokens import TokenType
from ...config import EvalConfig
from ... import descriptors

if TYPE_CHECKING:
    from ..report import Report

logger = logging.getLogger(__name__)

INFIX_SYMBOLS = {
    TokenType.EQ: "==",
    TokenType.NE: "!=",
    TokenType.LT: "<",
    TokenType.GT: ">",
    TokenType.LE: "<=",
    TokenType.GE: ">=",
    TokenType.PLUS: "+",
    TokenType.MINUS: "-",
}

_COMPARISONS = {
    TokenType.LT: lambda a, b: a < b,
    TokenType.GT: lambda a, b: a > b,
    TokenType.LE: lambda a, b: a <= b,
    TokenType.GE: lambda a, b: a >= b,
}


@dataclass
class ExecutionResult:
    """Result of compiling and running a program."""
    success: bool
    value: Optional[Value] = None
    report: Optional["Report"] = None
    error_message: Optional[str] = None
    error: Optional[Exception] = None


class Interpreter:
    """
    Tree-walking interpreter for the policy language.

    Evaluates AST nodes by dispatching to type-specific methods.
    """

    def evaluate(self, expr: Expression, scope: Scope) -> Value:
        """Evaluate an expression in ``scope``."""
        return self._evaluate(expr, scope)

    def execute_statement(self, stmt: Statement, scope: Scope) -> None:
        self._execute_statement(stmt, scope)

    def execute_library(self, library: Library, scope: Scope) -> Scope:
        """Run every statement of ``library`` directly in ``scope``."""
        for stmt in library.statements:
            self._execute_statement(stmt, scope)
        return scope

    # =========================================================================
    # Statements
    # =========================================================================

    def _execute_statement(self, stmt: Statement, scope: Scope) -> None:
        if isinstance(stmt, Assign):
            self._execute_assign(stmt, scope)
        elif isinstance(stmt, FnDef):
            self._execute_fn_def(stmt, scope)
        else:
            raise RuntimeError(f"Unknown statement type: {type(stmt).__name__}")

    def _execute_assign(self, stmt: Assign, scope: Scope) -> None:
        # Later pairs see the bindings made by earlier ones
        for assignment in stmt.assignments:
            scope.set(assignment.name, self._evaluate(assignment.value, scope))

    def _execute_fn_def(self, stmt: FnDef, scope: Scope) -> None:
        func = UserFunction(stmt.name, list(stmt.parameters), stmt.body)
        scope.set(stmt.name, function_val(func))

    # =========================================================================
    # Expressions
    # =========================================================================

    def _evaluate(self, expr: Expression, scope: Scope) -> Value:
        """Evaluate an expression to produce a Value."""
        if isinstance(expr, Literal):
            return self._eval_literal(expr)
        elif isinstance(expr, DurationLiteral):
            return duration_val(expr.value)
        elif isinstance(expr, Identifier):
            return scope.lookup(expr.name)
        elif isinstance(expr, Call):
            return self._eval_call(expr, scope)
        elif isinstance(expr, OrExpr):
            return self._eval_andor(True, expr.operands, scope)
        elif isinstance(expr, AndExpr):
            return self._eval_andor(False, expr.operands, scope)
        elif isinstance(expr, ThreshExpr):
            return self._eval_thresh(expr, scope)
        elif isinstance(expr, WithProbExpr):
            return self._eval_with_prob(expr, scope)
        elif isinstance(expr, ArrayLiteral):
            return array_val(self._evaluate(e, scope) for e in expr.elements)
        elif isinstance(expr, ArrayAccess):
            return self._eval_array_access(expr, scope)
        elif isinstance(expr, ChildDerive):
            return self._eval_child_derive(expr, scope)
        elif isinstance(expr, ScriptFrag):
            return self._eval_script_frag(expr, scope)
        elif isinstance(expr, Block):
            return self._eval_block(expr, scope)
        elif isinstance(expr, FnExpr):
            return function_val(UserFunction("_anonymous", list(expr.parameters), expr.body))
        elif isinstance(expr, Infix):
            return self._eval_infix(expr, scope)
        elif isinstance(expr, NotExpr):
            return bool_val(not into_bool(self._evaluate(expr.operand, scope)))
        else:
            raise RuntimeError(f"Unknown expression type: {type(expr).__name__}")

    def _eval_literal(self, lit: Literal) -> Value:
        """Evaluate a literal value."""
        if lit.literal_type == TokenType.NUMBER_LITERAL:
            return number_val(lit.value)
        elif lit.literal_type == TokenType.BYTES_LITERAL:
            return bytes_val(lit.value)
        elif lit.literal_type == TokenType.BOOL_LITERAL:
            return bool_val(lit.value)
        elif lit.literal_type == TokenType.DATETIME_LITERAL:
            return datetime_val(lit.value)
        elif lit.literal_type == TokenType.PUBKEY_LITERAL:
            with translate_domain_errors():
                return pubkey_val(descriptors.parse_key(lit.value))
        else:
            raise RuntimeError(f"Unknown literal type: {lit.literal_type}")

    # --- Calls ---

    def _call_named(self, ident: str, args: List[Value], scope: Scope) -> Value:
        """Resolve ``ident`` in ``scope`` and call it, attributing failures to the call site."""
        func = scope.get(ident)
        if func is None:
            raise FnNotFoundError(ident)
        try:
            return call_value(func, args, scope)
        except CallError as e:
            if e.ident == ident:
                raise
            raise CallError(ident, e) from e
        except EvaluationError as e:
            raise CallError(ident, e) from e

    def _eval_call(self, call: Call, scope: Scope) -> Value:
        args = [self._evaluate(arg, scope) for arg in call.arguments]
        return self._call_named(call.ident, args, scope)

    # --- Combinators ---

    def _eval_andor(self, is_or: bool, operands: List[Expression], scope: Scope) -> Value:
        """
        Evaluate an ``||`` or ``&&`` chain.

        Booleans short-circuit.  Policies (plain or weighted) are combined by
        calling the ``or``/``and`` functions for two operands, or ``thresh``
        with a threshold of 1 (any) or N (all) for longer chains.
        """
        first = self._evaluate(operands[0], scope)

        if first.kind is ValueKind.BOOL:
            result = into_bool(first)
            for operand in operands[1:]:
                # OR stops at the first true, AND at the first false
                if result == is_or:
                    break
                result = into_bool(self._evaluate(operand, scope))
            return bool_val(result)

        if first.kind in (ValueKind.POLICY, ValueKind.WITHPROB):
            values = [first] + [self._evaluate(operand, scope) for operand in operands[1:]]
            if len(values) == 2:
                name = "or" if is_or else "and"
                logger.debug("combining two operands with %s()", name)
                return self._call_named(name, values, scope)
            threshold = 1 if is_or else len(values)
            logger.debug("combining %d operands with thresh(%d)", len(values), threshold)
            return self._call_named("thresh", [number_val(threshold)] + values, scope)

        raise InvalidArgumentsError(
            f"{'||' if is_or else '&&'} expects booleans or policies, got {first.kind.value}"
        )

    def _eval_thresh(self, expr: ThreshExpr, scope: Scope) -> Value:
        threshold = self._evaluate(expr.threshold, scope)
        policies = self._evaluate(expr.policies, scope)
        return self._call_named("thresh", [threshold, policies], scope)

    def _eval_with_prob(self, expr: WithProbExpr, scope: Scope) -> Value:
        prob = self._evaluate(expr.prob, scope)
        inner = self._evaluate(expr.expr, scope)
        return self._call_named("prob", [prob, inner], scope)

    # --- Arrays, derivation, scripts ---

    def _eval_array_access(self, access: ArrayAccess, scope: Scope) -> Value:
        container = self._evaluate(access.array, scope)
        index = into_usize(self._evaluate(access.index, scope))

        if container.kind is ValueKind.ARRAY:
            if index >= len(container.data):
                raise IndexOutOfRangeError(index, len(container.data))
            return container.data[index]
        if container.kind is ValueKind.BYTES:
            if index >= len(container.data):
                raise IndexOutOfRangeError(index, len(container.data))
            return number_val(container.data[index])
        raise NotIndexableError(container.kind.value)

    def _eval_child_derive(self, node: ChildDerive, scope: Scope) -> Value:
        parent = self._evaluate(node.parent, scope)
        if parent.kind is not ValueKind.PUBKEY and (len(node.path) != 1 or node.is_wildcard):
            raise InvalidDescriptorDerivationError()
        path = [into_usize(self._evaluate(step, scope)) for step in node.path]
        for index in path:
            if index >= descriptors.HARDENED_INDEX:
                raise HardenedDerivationError(index)

        if parent.kind is ValueKind.PUBKEY:
            if not descriptors.is_extended(parent.data):
                raise InvalidSingleDerivationError()
            with translate_domain_errors():
                return pubkey_val(descriptors.derive_key(parent.data, path, node.is_wildcard))

        desc = into_descriptor(parent)
        with translate_domain_errors():
            return descriptor_val(descriptors.derive_descriptor(desc, path[0]))

    def _eval_script_frag(self, frag: ScriptFrag, scope: Scope) -> Value:
        parts = [into_script(self._evaluate(f, scope)) for f in frag.fragments]
        return script_val(b"".join(parts))

    def _eval_block(self, block: Block, scope: Scope) -> Value:
        """
        Evaluate a block in a child scope.

        The block's value is its final expression; without one, a ``main``
        function visible from the block is called with no arguments. Errors raised
        inside ``main`` propagate as they are, without a ``CallError`` wrapper.
        """
        inner = scope.child("block")
        for stmt in block.statements:
            self._execute_statement(stmt, inner)

        if block.return_value is not None:
            return self._evaluate(block.return_value, inner)

        main = inner.get("main")
        if main is not None and main.kind is ValueKind.FUNCTION:
            return call_value(main, [], inner)
        raise NoReturnValueError()

    # --- Operators ---

    def _eval_infix(self, op: Infix, scope: Scope) -> Value:
        left = self._evaluate(op.left, scope)
        right = self._evaluate(op.right, scope)
        try:
            return self._apply_infix(op.operator, left, right)
        except EvaluationError as e:
            raise OpError(INFIX_SYMBOLS[op.operator], e) from e

    def _apply_infix(self, operator: TokenType, left: Value, right: Value) -> Value:
        if operator == TokenType.EQ:
            return bool_val(left == right)
        if operator == TokenType.NE:
            return bool_val(left != right)

        both = (left.kind, right.kind)
        if both == (ValueKind.NUMBER, ValueKind.NUMBER):
            if operator in _COMPARISONS:
                return bool_val(_COMPARISONS[operator](left.data, right.data))
            if operator == TokenType.PLUS:
                return number_val(left.data + right.data)
            if operator == TokenType.MINUS:
                return number_val(left.data - right.data)
        elif operator == TokenType.PLUS and both == (ValueKind.ARRAY, ValueKind.ARRAY):
            return array_val(left.data + right.data)
        elif operator == TokenType.PLUS and both == (ValueKind.BYTES, ValueKind.BYTES):
            return bytes_val(left.data + right.data)

        raise InvalidArgumentsError(
            f"unsupported operand kinds for {INFIX_SYMBOLS[operator]}: "
            f"{left.kind.value} and {right.kind.value}"
        )


_INTERPRETER = Interpreter()


def evaluate_in(expr: Expression, scope: Scope) -> Value:
    """Evaluate ``expr`` in an existing scope (used by function calls)."""
    return _INTERPRETER.evaluate(expr, scope)


@contextmanager
def _recursion_guard(scope: Scope) -> Iterator[None]:
    try:
        yield
    except RecursionError as e:
        raise RecursionLimitError(scope.max_depth) from e


def evaluate(expr: Expression, scope: Optional[Scope] = None,
             config: Optional[EvalConfig] = None) -> Value:
    """
    Evaluate an expression (usually a parsed program block).

    Args:
        expr: The expression to evaluate
        scope: Scope to evaluate in; a fresh root scope when omitted
        config: Settings for the fresh root scope

    Returns:
        The resulting Value

    Raises:
        EvaluationError: If evaluation fails
    """
    if scope is None:
        scope = create_root_scope(config)
    with _recursion_guard(scope):
        return _INTERPRETER.evaluate(expr, scope)


def execute_library(library: Library, scope: Optional[Scope] = None,
                    config: Optional[EvalConfig] = None) -> Scope:
    """Execute a library in a child of ``scope`` (or of a fresh root) and return that child."""
    if scope is None:
        scope = create_root_scope(config)
    lib_scope = scope.child("library")
    with _recursion_guard(lib_scope):
        return _INTERPRETER.execute_library(library, lib_scope)


def compile_and_run(
    source: str,
    network: Optional[str] = None,
    scope: Optional[Scope] = None,
    config: Optional[EvalConfig] = None,
    filename: Optional[str] = None,
) -> ExecutionResult:
    """
    High-level API to parse, evaluate and summarize a program in one call.

        from bitpolicy.dsl import compile_and_run

        result = compile_and_run("pk(A) || older(1 week)", config=EvalConfig(demo=True))
        if result.success:
            print(result.report.descriptor)
        else:
            print(result.error_message)

    Language errors never propagate: they are reported in the result.

    Args:
        source: Program source code
        network: Network for addresses in the report (defaults to the config's)
        scope: Scope to run in (e.g. one returned by ``execute_library``)
        config: Settings for the root scope when ``scope`` is omitted
        filename: Optional filename for diagnostics

    Returns:
        ExecutionResult with the value, its report, or an error message
    """
    from ..lexer import tokenize
    from ..parser import parse
    from ..report import summarize

    config = config or EvalConfig()
    network = network or config.network

    try:
        program = parse(tokenize(source, filename), filename, source)
    except DslError as e:
        return ExecutionResult(success=False, error_message=str(e), error=e)

    try:
        value = evaluate(program, scope, config)
        report = summarize(value, network)
    except EvaluationError as e:
        logger.debug("evaluation failed: %s", e)
        return ExecutionResult(success=False, error_message=e.format_chain(), error=e)

    return ExecutionResult(success=True, value=value, report=report)
