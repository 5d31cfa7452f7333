"""
DSL-specific exceptions and error handling.

Error code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
- E4xx: Evaluation errors

Lexer and parser errors carry a ``Diagnostic`` pointing into the source.
Evaluation errors form a typed hierarchy under ``EvaluationError``; errors
raised inside a call or an operator are wrapped (``CallError``, ``OpError``)
so the chain records where the failure happened.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional
from .tokens import SourceSpan


class ErrorSeverity(Enum):
    """Severity levels for diagnostics."""
    ERROR = "error"
    WARNING = "warning"


@dataclass
class Diagnostic:
    """A single diagnostic message (error, warning, etc.)."""
    code: str                       # E001, E101, etc.
    message: str                    # Human-readable message
    severity: ErrorSeverity
    span: SourceSpan
    source_line: Optional[str] = None   # The actual line of source code
    hints: List[str] = field(default_factory=list)

    def format(self, show_source: bool = True) -> str:
        """Format the diagnostic for display."""
        parts = []

        # Header: location: severity[code]: message
        parts.append(f"{self.span.start}: {self.severity.value}[{self.code}]: {self.message}")

        # Source line with caret
        if show_source and self.source_line is not None:
            parts.append("  |")
            line_num = str(self.span.start.line)
            parts.append(f"{line_num:>3} | {self.source_line}")

            col = self.span.start.column
            end_col = self.span.end.column if self.span.start.line == self.span.end.line else len(self.source_line) + 1
            underline_len = max(1, end_col - col)
            parts.append(f"    | {' ' * (col - 1)}{'^' * underline_len}")

        for hint in self.hints:
            parts.append(f"    = hint: {hint}")

        return "\n".join(parts)

    def to_json(self) -> dict:
        """Convert to JSON-serializable dict for tooling integration."""
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "range": {
                "start": {
                    "line": self.span.start.line,
                    "column": self.span.start.column,
                    "offset": self.span.start.offset,
                },
                "end": {
                    "line": self.span.end.line,
                    "column": self.span.end.column,
                    "offset": self.span.end.offset,
                },
            },
            "hints": self.hints,
        }


class DslError(Exception):
    """Base exception for source-level DSL errors."""

    def __init__(self, diagnostic: Diagnostic):
        self.diagnostic = diagnostic
        super().__init__(diagnostic.message)

    def __str__(self) -> str:
        return self.diagnostic.format()


class LexerError(DslError):
    """Error during lexical analysis (E0xx)."""
    pass


class ParserError(DslError):
    """Error during parsing (E1xx)."""
    pass


# --- Lexer error codes ---

def error_unexpected_character(char: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E001: Unexpected character."""
    diag = Diagnostic(
        code="E001",
        message=f"unexpected character '{char}'",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return LexerError(diag)


def error_invalid_number_literal(text: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E006: Invalid number literal."""
    diag = Diagnostic(
        code="E006",
        message=f"invalid number literal '{text}'",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=["numbers are signed 64-bit decimal integers"],
    )
    return LexerError(diag)


def error_invalid_hex_literal(text: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E007: Invalid hexadecimal byte string."""
    diag = Diagnostic(
        code="E007",
        message=f"invalid hexadecimal literal '{text}'",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=["byte strings need an even number of hex digits: 0x, 0x00ff, etc."],
    )
    return LexerError(diag)


def error_invalid_datetime_literal(text: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E008: Invalid date/time literal."""
    diag = Diagnostic(
        code="E008",
        message=f"invalid date/time literal '{text}'",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=["expected YYYY-MM-DD, optionally followed by HH:MM or HH:MM:SS"],
    )
    return LexerError(diag)


# --- Parser error codes ---

def error_unexpected_token(expected: str, found: str, span: SourceSpan,
                           source_line: str = None) -> ParserError:
    """E101: Unexpected token."""
    diag = Diagnostic(
        code="E101",
        message=f"expected {expected}, found {found}",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


def error_unexpected_eof(expected: str, span: SourceSpan) -> ParserError:
    """E102: Unexpected end of file."""
    diag = Diagnostic(
        code="E102",
        message=f"unexpected end of file, expected {expected}",
        severity=ErrorSeverity.ERROR,
        span=span,
    )
    return ParserError(diag)


def error_invalid_expression(span: SourceSpan, source_line: str = None) -> ParserError:
    """E103: Invalid expression."""
    diag = Diagnostic(
        code="E103",
        message="invalid expression",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


def error_hardened_derivation(span: SourceSpan, source_line: str = None) -> ParserError:
    """E104: Hardened child derivation."""
    diag = Diagnostic(
        code="E104",
        message="hardened derivation is not supported",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=["derive hardened steps outside the policy and use the resulting xpub"],
    )
    return ParserError(diag)


def error_invalid_duration(message: str, span: SourceSpan, source_line: str = None) -> ParserError:
    """E105: Invalid duration."""
    diag = Diagnostic(
        code="E105",
        message=f"invalid duration: {message}",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


def error_nesting_too_deep(span: SourceSpan, source_line: str = None) -> ParserError:
    """E106: Expression nesting exceeds the parser's recursion limit."""
    diag = Diagnostic(
        code="E106",
        message="expression nesting too deep",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=["split the expression into named variables or functions"],
    )
    return ParserError(diag)


# =============================================================================
# Evaluation errors (E4xx)
# =============================================================================

class EvaluationError(Exception):
    """Base class for every error raised while evaluating a program."""

    code = "E400"

    def root_cause(self) -> "EvaluationError":
        """Follow wrapping errors down to the innermost failure."""
        err = self
        while isinstance(err, (CallError, OpError)):
            err = err.cause
        return err

    def format_chain(self) -> str:
        """Render the error and its causes, outermost first."""
        lines = []
        err: Optional[EvaluationError] = self
        depth = 0
        while err is not None:
            lines.append(f"{'  ' * depth}[{err.code}] {err.describe()}")
            err = err.cause if isinstance(err, (CallError, OpError)) else None
            depth += 1
        return "\n".join(lines)

    def describe(self) -> str:
        """Message for this error alone, without its causes."""
        return str(self)


# --- Resolution ---

class VarNotFoundError(EvaluationError):
    code = "E401"

    def __init__(self, ident: str):
        self.ident = ident
        super().__init__(f"variable not found: {ident}")


class FnNotFoundError(EvaluationError):
    code = "E402"

    def __init__(self, ident: str):
        self.ident = ident
        super().__init__(f"function not found: {ident}")


# --- Invocation ---

class ArgumentMismatchError(EvaluationError):
    code = "E403"

    def __init__(self, actual: int, expected: int):
        self.actual = actual
        self.expected = expected
        super().__init__(f"argument mismatch: got {actual}, expected {expected}")


class NotCallableError(EvaluationError):
    code = "E404"

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"value of kind {kind} is not callable")


class CallError(EvaluationError):
    """A failure inside the call to ``ident``."""

    code = "E405"

    def __init__(self, ident: str, cause: EvaluationError):
        self.ident = ident
        self.cause = cause
        super().__init__(f"in call to {ident}: {cause}")

    def describe(self) -> str:
        return f"in call to {self.ident}"


# --- Coercion ---

class ConversionError(EvaluationError):
    """A value could not be converted to the requested kind."""

    code = "E410"
    target = "value"

    def __init__(self, kind: str, detail: Optional[str] = None):
        self.kind = kind
        self.detail = detail
        message = f"expected {self.target}, got {kind}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class NotNumberError(ConversionError):
    code = "E411"
    target = "number"


class InvalidUsizeError(ConversionError):
    code = "E412"
    target = "non-negative number"


class NotBoolError(ConversionError):
    code = "E413"
    target = "bool"


class NotArrayError(ConversionError):
    code = "E414"
    target = "array"


class NotFunctionError(ConversionError):
    code = "E415"
    target = "function"


class NotKeyLikeError(ConversionError):
    code = "E416"
    target = "public key"


class NotScriptLikeError(ConversionError):
    code = "E417"
    target = "script-like value"


class NotDescriptorLikeError(ConversionError):
    code = "E418"
    target = "descriptor-like value"


class NotMiniscriptLikeError(ConversionError):
    code = "E419"
    target = "miniscript-like value"


class NotPolicyLikeError(ConversionError):
    code = "E420"
    target = "policy-like value"


class NotBytesError(ConversionError):
    code = "E421"
    target = "bytes"


class NotHashLikeError(ConversionError):
    code = "E422"
    target = "hash bytes"


class HashLengthError(ConversionError):
    code = "E423"
    target = "hash bytes"

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__("bytes", f"expected {expected} bytes, got {actual}")


class NotNetworkError(ConversionError):
    code = "E424"
    target = "network"


# --- Arithmetic and indexing ---

class ArithmeticOverflowError(EvaluationError):
    code = "E430"

    def __init__(self, detail: str = "number out of 64-bit range"):
        super().__init__(f"arithmetic overflow: {detail}")


class IndexOutOfRangeError(EvaluationError):
    code = "E431"

    def __init__(self, index: int, length: int):
        self.index = index
        self.length = length
        super().__init__(f"index {index} out of range for length {length}")


class NotIndexableError(EvaluationError):
    code = "E432"

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"value of kind {kind} is not indexable")


# --- Operators ---

class InvalidArgumentsError(EvaluationError):
    code = "E440"

    def __init__(self, detail: str = "invalid arguments"):
        super().__init__(detail)


class OpError(EvaluationError):
    """A failure while applying the infix operator ``op``."""

    code = "E441"

    def __init__(self, op: str, cause: EvaluationError):
        self.op = op
        self.cause = cause
        super().__init__(f"in operator {op}: {cause}")

    def describe(self) -> str:
        return f"in operator {self.op}"


# --- Derivation ---

class InvalidSingleDerivationError(EvaluationError):
    code = "E450"

    def __init__(self):
        super().__init__("child derivation requires an extended public key")


class InvalidDescriptorDerivationError(EvaluationError):
    code = "E451"

    def __init__(self):
        super().__init__("descriptors accept a single non-wildcard derivation step")


class HardenedDerivationError(EvaluationError):
    code = "E452"

    def __init__(self, index: int):
        self.index = index
        super().__init__(f"hardened derivation is not supported (index {index})")


# --- Control ---

class NoReturnValueError(EvaluationError):
    code = "E460"

    def __init__(self):
        super().__init__("block has no return value and no main function")


class NotComparableError(EvaluationError):
    code = "E461"

    def __init__(self, detail: str = "user-defined functions cannot be compared"):
        super().__init__(detail)


class RecursionLimitError(EvaluationError):
    code = "E462"

    def __init__(self, limit: Optional[int] = None):
        self.limit = limit
        if limit is None:
            super().__init__("recursion limit exceeded")
        else:
            super().__init__(f"recursion limit exceeded (max depth {limit})")


# --- Domain failures ---

class KeyParseError(EvaluationError):
    code = "E470"

    def __init__(self, text: str, reason: str):
        self.text = text
        super().__init__(f"invalid public key {text!r}: {reason}")


class CompileError(EvaluationError):
    code = "E471"

    def __init__(self, detail: str):
        super().__init__(f"policy compilation failed: {detail}")


class TimelockError(EvaluationError):
    code = "E472"

    def __init__(self, detail: str):
        super().__init__(f"invalid timelock: {detail}")


class DescriptorError(EvaluationError):
    code = "E473"

    def __init__(self, detail: str):
        super().__init__(f"descriptor error: {detail}")
