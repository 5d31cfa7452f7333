"""
Source-level entry points: parse, evaluate and run programs and libraries.

    from bitpolicy.dsl import run, evaluate_library
    from bitpolicy.config import EvalConfig

    lib = evaluate_library("fn twoof(a, b, c) = 2 of [a, b, c];", config=EvalConfig(demo=True))
    value = run("twoof(pk(A), pk(B), pk(C))", scope=lib)
"""

from typing import Optional

from .ast import Block, Expression, Library
from .lexer import tokenize
from .parser import parse as parse_tokens, parse_library as parse_library_tokens
from .runtime.context import Scope
from .runtime.interpreter import evaluate as _evaluate, execute_library
from .runtime.values import Value
from ..config import EvalConfig


def parse(source: str, filename: Optional[str] = None) -> Block:
    """Parse a program; raises LexerError or ParserError."""
    return parse_tokens(tokenize(source, filename), filename, source)


def parse_library(source: str, filename: Optional[str] = None) -> Library:
    """Parse a statement-only library."""
    return parse_library_tokens(tokenize(source, filename), filename, source)


def evaluate(expr: Expression, scope: Optional[Scope] = None,
             config: Optional[EvalConfig] = None) -> Value:
    """Evaluate a parsed expression, in a fresh root scope unless one is given."""
    return _evaluate(expr, scope, config)


def evaluate_library(source: str, scope: Optional[Scope] = None,
                     config: Optional[EvalConfig] = None,
                     filename: Optional[str] = None) -> Scope:
    """
    Execute library source and return the scope holding its definitions.

    The returned scope is a child of ``scope`` (or of a fresh root scope), so
    it can be passed to ``run`` to evaluate programs that use the library.
    """
    return execute_library(parse_library(source, filename), scope, config)


def run(source: str, scope: Optional[Scope] = None,
        config: Optional[EvalConfig] = None,
        filename: Optional[str] = None) -> Value:
    """Parse and evaluate a program, returning its value."""
    return _evaluate(parse(source, filename), scope, config)
