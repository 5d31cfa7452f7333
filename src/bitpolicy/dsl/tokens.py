"""
Token types for the policy language lexer.

Token type categories follow the error code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
"""

from enum import Enum, auto
from dataclasses import dataclass
from typing import Any, Optional


class TokenType(Enum):
    """All token types recognized by the DSL lexer."""

    # --- Literals ---
    NUMBER_LITERAL = auto()     # 42
    BYTES_LITERAL = auto()      # 0x00ff
    BOOL_LITERAL = auto()       # true, false
    PUBKEY_LITERAL = auto()     # 02..., 03..., xpub..., tpub...
    DATETIME_LITERAL = auto()   # 2024-01-01, 2024-01-01 12:30

    # --- Identifiers ---
    IDENTIFIER = auto()         # user-defined names

    # --- Keywords ---
    FN = auto()                 # fn
    RETURN = auto()             # return
    OF = auto()                 # of (threshold)

    # --- Arithmetic operators ---
    PLUS = auto()               # +
    MINUS = auto()              # -
    STAR = auto()               # * (derivation wildcard)
    SLASH = auto()              # / (child derivation)

    # --- Comparison operators ---
    LT = auto()                 # <
    GT = auto()                 # >
    LE = auto()                 # <=
    GE = auto()                 # >=
    EQ = auto()                 # ==
    NE = auto()                 # !=

    # --- Logical operators ---
    AND = auto()                # &&
    OR = auto()                 # ||
    NOT = auto()                # !

    # --- Assignment ---
    ASSIGN = auto()             # =

    # --- Delimiters ---
    LBRACE = auto()             # {
    RBRACE = auto()             # }
    LPAREN = auto()             # (
    RPAREN = auto()             # )
    LBRACKET = auto()           # [
    RBRACKET = auto()           # ]
    SEMICOLON = auto()          # ;
    COMMA = auto()              # ,
    PIPE = auto()               # | (anonymous function parameters)
    AT = auto()                 # @ (probability weight)
    BACKTICK = auto()           # ` (script fragments)
    APOSTROPHE = auto()         # ' (hardened marker, always rejected)

    # --- Special ---
    EOF = auto()                # end of file


@dataclass(frozen=True)
class SourceLocation:
    """Represents a position in source code."""
    line: int           # 1-indexed line number
    column: int         # 1-indexed column number
    offset: int         # 0-indexed character offset from start
    filename: Optional[str] = None

    def __str__(self) -> str:
        if self.filename:
            return f"{self.filename}:{self.line}:{self.column}"
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class SourceSpan:
    """Represents a range in source code."""
    start: SourceLocation
    end: SourceLocation

    def __str__(self) -> str:
        if self.start.filename:
            return f"{self.start.filename}:{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"
        return f"{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"


@dataclass(frozen=True)
class Token:
    """A single token from the lexer."""
    type: TokenType
    value: Any              # The actual value (int, bytes, str, etc.)
    lexeme: str             # The original source text
    span: SourceSpan        # Location in source

    def __str__(self) -> str:
        if self.type in (TokenType.NUMBER_LITERAL, TokenType.BYTES_LITERAL,
                         TokenType.PUBKEY_LITERAL, TokenType.DATETIME_LITERAL,
                         TokenType.IDENTIFIER):
            return f"{self.type.name}({self.value!r})"
        return self.type.name


# Keyword mapping - maps string to token type
KEYWORDS: dict[str, TokenType] = {
    "fn": TokenType.FN,
    "return": TokenType.RETURN,
    "of": TokenType.OF,
    "true": TokenType.BOOL_LITERAL,
    "false": TokenType.BOOL_LITERAL,
}

# Duration units and their length in seconds. "block(s)" is handled separately
# because block counts cannot be mixed with wall-clock units.
DURATION_UNITS: dict[str, int] = {
    "second": 1, "seconds": 1,
    "minute": 60, "minutes": 60,
    "hour": 3600, "hours": 3600,
    "day": 86400, "days": 86400,
    "week": 604800, "weeks": 604800,
    "month": 2629746, "months": 2629746,
    "year": 31556952, "years": 31556952,
}

BLOCK_UNITS = ("block", "blocks")

HEIGHTWISE = "heightwise"


def is_literal_token(token_type: TokenType) -> bool:
    """Check if a token type represents a literal value."""
    return token_type.name.endswith("_LITERAL")
