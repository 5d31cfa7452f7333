"""
Lexer for the policy language.

Converts source text into a stream of tokens for the parser.
Supports:
- Free-form whitespace (newlines are insignificant)
- Line comments (//); there are no block comments since /* is a wildcard derivation step
- Decimal number literals (signed 64-bit range)
- Hex byte strings (0x...)
- Compressed public keys (66 hex digits) and extended keys (xpub/tpub)
- Date/time literals (YYYY-MM-DD[ HH:MM[:SS]])
- All DSL keywords and operators
"""

import re
from datetime import datetime
from typing import List, Optional, Iterator
from .tokens import Token, TokenType, SourceLocation, SourceSpan, KEYWORDS
from .errors import (
    error_unexpected_character,
    error_invalid_number_literal,
    error_invalid_hex_literal,
    error_invalid_datetime_literal,
)
from ..timelock import DATETIME_FORMATS

I64_MAX = 2 ** 63 - 1

HEX_DIGITS = "0123456789abcdefABCDEF"

_DATETIME_RE = re.compile(r"\d{4}-\d{2}-\d{2}(?:[ T]\d{2}:\d{2}(?::\d{2})?)?")

_EXTENDED_KEY_PREFIXES = ("xpub", "tpub")


def _is_ident_char(ch: str) -> bool:
    return ch.isalnum() or ch in "_$"


class Lexer:
    """
    Tokenizer for the policy language.

    Usage:
        lexer = Lexer(source_code)
        tokens = lexer.tokenize()

    Or for streaming:
        lexer = Lexer(source_code)
        for token in lexer:
            process(token)
    """

    def __init__(self, source: str, filename: Optional[str] = None):
        self.source = source
        self.filename = filename
        self.pos = 0            # Current position in source
        self.line = 1           # Current line (1-indexed)
        self.column = 1         # Current column (1-indexed)
        self._lines: Optional[List[str]] = None  # Cached line list

    @property
    def lines(self) -> List[str]:
        """Lazy-load line list for error reporting."""
        if self._lines is None:
            self._lines = self.source.splitlines()
        return self._lines

    def get_source_line(self, line_num: int) -> Optional[str]:
        """Get a specific line of source (1-indexed)."""
        if 1 <= line_num <= len(self.lines):
            return self.lines[line_num - 1]
        return None

    def _location(self) -> SourceLocation:
        """Get current source location."""
        return SourceLocation(self.line, self.column, self.pos, self.filename)

    def _span(self, start: SourceLocation) -> SourceSpan:
        """Create a span from start to current position."""
        return SourceSpan(start, self._location())

    def _peek(self, offset: int = 0) -> str:
        """Look at character at current position + offset without consuming."""
        idx = self.pos + offset
        if idx >= len(self.source):
            return '\0'
        return self.source[idx]

    def _advance(self) -> str:
        """Consume and return current character."""
        if self.pos >= len(self.source):
            return '\0'
        ch = self.source[self.pos]
        self.pos += 1
        if ch == '\n':
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def _advance_by(self, count: int) -> None:
        for _ in range(count):
            self._advance()

    def _match(self, expected: str) -> bool:
        """Consume character if it matches expected."""
        if self._peek() == expected:
            self._advance()
            return True
        return False

    def _is_at_end(self) -> bool:
        """Check if we've reached end of source."""
        return self.pos >= len(self.source)

    def _skip_comment(self) -> None:
        """Skip a single-line comment (// to end of line)."""
        while self._peek() != '\n' and not self._is_at_end():
            self._advance()

    def _skip_trivia(self) -> None:
        """Skip whitespace and comments."""
        while not self._is_at_end():
            ch = self._peek()
            if ch in ' \t\r\n':
                self._advance()
            elif ch == '/' and self._peek(1) == '/':
                self._skip_comment()
            else:
                break

    def _make_token(self, token_type: TokenType, value, start: SourceLocation,
                    lexeme: Optional[str] = None) -> Token:
        """Create a token."""
        span = self._span(start)
        if lexeme is None:
            lexeme = self.source[start.offset:self.pos]
        return Token(token_type, value, lexeme, span)

    def _hex_run_length(self) -> int:
        """Length of the run of hex digits starting at the current position."""
        length = 0
        while self._peek(length) in HEX_DIGITS and self._peek(length) != '\0':
            length += 1
        return length

    def _scan_number(self) -> Token:
        """Scan a numeric literal, byte string, public key or date."""
        start = self._location()

        if self._peek() == '0' and self._peek(1) in 'xX':
            return self._scan_hex_bytes(start)

        datetime_match = _DATETIME_RE.match(self.source, self.pos)
        if datetime_match:
            return self._scan_datetime(start, datetime_match.group(0))

        # Compressed public keys are 33 bytes of hex starting with 02 or 03
        hex_len = self._hex_run_length()
        if (hex_len == 66 and self.source[self.pos:self.pos + 2] in ("02", "03")
                and not _is_ident_char(self._peek(hex_len))):
            self._advance_by(hex_len)
            lexeme = self.source[start.offset:self.pos]
            return self._make_token(TokenType.PUBKEY_LITERAL, lexeme.lower(), start, lexeme)

        while self._peek().isdigit():
            self._advance()

        # A trailing h/H is left for the parser to report as a hardened marker
        nxt = self._peek()
        if _is_ident_char(nxt) and not (nxt in 'hH' and not _is_ident_char(self._peek(1))):
            while _is_ident_char(self._peek()):
                self._advance()
            lexeme = self.source[start.offset:self.pos]
            raise error_invalid_number_literal(
                lexeme, self._span(start), self.get_source_line(start.line)
            )

        lexeme = self.source[start.offset:self.pos]
        value = int(lexeme)
        if value > I64_MAX:
            raise error_invalid_number_literal(
                lexeme, self._span(start), self.get_source_line(start.line)
            )
        return self._make_token(TokenType.NUMBER_LITERAL, value, start, lexeme)

    def _scan_hex_bytes(self, start: SourceLocation) -> Token:
        """Scan a hexadecimal byte string (0x...)."""
        self._advance()  # consume '0'
        self._advance()  # consume 'x' or 'X'

        while self._peek() in HEX_DIGITS and not self._is_at_end():
            self._advance()

        lexeme = self.source[start.offset:self.pos]
        digits = lexeme[2:]
        if len(digits) % 2 != 0 or _is_ident_char(self._peek()):
            raise error_invalid_hex_literal(
                lexeme, self._span(start), self.get_source_line(start.line)
            )
        return self._make_token(TokenType.BYTES_LITERAL, bytes.fromhex(digits), start, lexeme)

    def _scan_datetime(self, start: SourceLocation, text: str) -> Token:
        """Scan a date/time literal already matched at the current position."""
        self._advance_by(len(text))
        normalized = text.replace('T', ' ')
        for fmt in DATETIME_FORMATS:
            try:
                datetime.strptime(normalized, fmt)
            except ValueError:
                continue
            return self._make_token(TokenType.DATETIME_LITERAL, normalized, start, text)
        raise error_invalid_datetime_literal(
            text, self._span(start), self.get_source_line(start.line)
        )

    def _scan_identifier_or_keyword(self) -> Token:
        """Scan an identifier, keyword or extended public key."""
        start = self._location()

        while _is_ident_char(self._peek()):
            self._advance()

        lexeme = self.source[start.offset:self.pos]

        if lexeme.startswith(_EXTENDED_KEY_PREFIXES) and len(lexeme) > 100:
            return self._make_token(TokenType.PUBKEY_LITERAL, lexeme, start, lexeme)

        if lexeme in KEYWORDS:
            token_type = KEYWORDS[lexeme]
            if token_type == TokenType.BOOL_LITERAL:
                value = lexeme == 'true'
            else:
                value = lexeme
            return self._make_token(token_type, value, start, lexeme)

        return self._make_token(TokenType.IDENTIFIER, lexeme, start, lexeme)

    def _scan_token(self) -> Token:
        """Scan the next token."""
        self._skip_trivia()

        if self._is_at_end():
            return self._make_token(TokenType.EOF, None, self._location(), "")

        start = self._location()
        ch = self._peek()

        if ch.isdigit():
            return self._scan_number()

        if ch.isalpha() or ch in '_$':
            return self._scan_identifier_or_keyword()

        self._advance()

        # Two-character operators
        if ch == '=' and self._match('='):
            return self._make_token(TokenType.EQ, "==", start)
        if ch == '!' and self._match('='):
            return self._make_token(TokenType.NE, "!=", start)
        if ch == '<' and self._match('='):
            return self._make_token(TokenType.LE, "<=", start)
        if ch == '>' and self._match('='):
            return self._make_token(TokenType.GE, ">=", start)
        if ch == '&' and self._match('&'):
            return self._make_token(TokenType.AND, "&&", start)
        if ch == '|' and self._match('|'):
            return self._make_token(TokenType.OR, "||", start)

        single_char_tokens = {
            '+': TokenType.PLUS,
            '-': TokenType.MINUS,
            '*': TokenType.STAR,
            '/': TokenType.SLASH,
            '<': TokenType.LT,
            '>': TokenType.GT,
            '=': TokenType.ASSIGN,
            '!': TokenType.NOT,
            '(': TokenType.LPAREN,
            ')': TokenType.RPAREN,
            '[': TokenType.LBRACKET,
            ']': TokenType.RBRACKET,
            '{': TokenType.LBRACE,
            '}': TokenType.RBRACE,
            ';': TokenType.SEMICOLON,
            ',': TokenType.COMMA,
            '|': TokenType.PIPE,
            '@': TokenType.AT,
            '`': TokenType.BACKTICK,
            "'": TokenType.APOSTROPHE,
        }

        if ch in single_char_tokens:
            return self._make_token(single_char_tokens[ch], ch, start)

        raise error_unexpected_character(
            ch, self._span(start), self.get_source_line(start.line)
        )

    def tokenize(self) -> List[Token]:
        """Tokenize the entire source, returning a list of tokens."""
        tokens = []
        while True:
            token = self._scan_token()
            tokens.append(token)
            if token.type == TokenType.EOF:
                break
        return tokens

    def __iter__(self) -> Iterator[Token]:
        """Iterate over tokens."""
        while True:
            token = self._scan_token()
            yield token
            if token.type == TokenType.EOF:
                break


def tokenize(source: str, filename: Optional[str] = None) -> List[Token]:
    """
    Convenience function to tokenize source code.

    Args:
        source: The source code to tokenize
        filename: Optional filename for error messages

    Returns:
        List of tokens

    Raises:
        LexerError: If tokenization fails
    """
    lexer = Lexer(source, filename)
    return lexer.tokenize()
