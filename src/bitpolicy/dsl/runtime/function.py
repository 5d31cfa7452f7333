"""
Callable values: functions defined in the language and native functions.

Both kinds are invoked with the evaluated arguments and the *call-site* scope.
User functions do not capture the scope they were defined in; their body runs
in a fresh child of whatever scope called them.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Sequence

from .values import Value, ValueKind
from .context import Scope
from ..ast import Expression
from ..errors import (
    ArgumentMismatchError, CallError, NotCallableError, NotComparableError,
)

logger = logging.getLogger(__name__)

NativeImpl = Callable[[List[Value], Scope], Value]


class Function:
    """Base class for callable runtime values."""

    ident: str

    def call(self, args: List[Value], scope: Scope) -> Value:
        raise NotImplementedError

    def same_as(self, other: "Function") -> bool:
        raise NotImplementedError


@dataclass(eq=False)
class UserFunction(Function):
    """
    A function written in the language, from ``fn name(a, b) = ...`` or an
    anonymous ``|a, b| ...`` expression.
    """
    ident: str
    signature: List[str]
    body: Expression

    def call(self, args: List[Value], scope: Scope) -> Value:
        if len(args) != len(self.signature):
            raise CallError(self.ident, ArgumentMismatchError(len(args), len(self.signature)))

        fn_scope = scope.child(f"fn {self.ident}")
        for name, value in zip(self.signature, args):
            fn_scope.set(name, value)

        logger.debug("calling %s(%s) at depth %d", self.ident, ", ".join(self.signature), fn_scope.depth)
        from .interpreter import evaluate_in
        return evaluate_in(self.body, fn_scope)

    def same_as(self, other: Function) -> bool:
        raise NotComparableError()

    def __str__(self) -> str:
        return f"fn {self.ident}({', '.join(self.signature)})"


@dataclass(eq=False)
class NativeFunction(Function):
    """A function implemented in Python and registered in the builtin registry."""
    ident: str
    implementation: NativeImpl
    doc: str = ""
    signature: str = ""
    category: str = field(default="", compare=False)

    def call(self, args: List[Value], scope: Scope) -> Value:
        logger.debug("calling native %s with %d argument(s)", self.ident, len(args))
        return self.implementation(list(args), scope)

    def same_as(self, other: Function) -> bool:
        if isinstance(other, UserFunction):
            raise NotComparableError()
        return self is other

    def __str__(self) -> str:
        return f"native fn {self.signature or self.ident}"


def call_value(value: Value, args: Sequence[Value], scope: Scope) -> Value:
    """Invoke ``value`` as a function; non-functions raise NotCallableError."""
    if value.kind is not ValueKind.FUNCTION:
        raise NotCallableError(value.kind.value)
    return value.data.call(list(args), scope)
