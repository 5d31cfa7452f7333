"""
Unit tests for the bitpolicy lexer.
"""

import pytest
from bitpolicy.dsl import tokenize, Lexer, TokenType, LexerError

KEY_A = "029ffbe722b147f3035c87cb1c60b9a5947dd49c774cc31e94773478711a929ac0"
XPUB = (
    "xpub68Gmy5EdvgibQVfPdqkBBCHxA5htiqg55crXYuXoQRKfDBFA1WEjWgP6LHhwBZeNK1VTsfTFUHCdrfp1bgwQ9xv5ski8PX9rL2dZXvgGDnw"
)


def types_of(source):
    return [t.type for t in tokenize(source)]


class TestLexerBasics:
    """Test basic lexer functionality."""

    def test_empty_source(self):
        """Empty source produces only EOF."""
        tokens = tokenize("")
        assert len(tokens) == 1
        assert tokens[0].type == TokenType.EOF

    def test_whitespace_and_newlines_ignored(self):
        assert types_of("  \n\t \r\n ") == [TokenType.EOF]

    def test_simple_assignment(self):
        """Basic assignment statement tokenization."""
        assert types_of("x = 42;") == [
            TokenType.IDENTIFIER,
            TokenType.ASSIGN,
            TokenType.NUMBER_LITERAL,
            TokenType.SEMICOLON,
            TokenType.EOF,
        ]

    def test_position_tracking(self):
        """Token positions are tracked correctly."""
        tokens = tokenize("a = 5;\nb")
        assert tokens[0].span.start.line == 1
        assert tokens[0].span.start.column == 1
        assert tokens[2].span.start.column == 5
        b = tokens[4]
        assert b.value == "b"
        assert b.span.start.line == 2
        assert b.span.start.column == 1

    def test_streaming_matches_tokenize(self):
        source = "pk(A) || older(10)"
        assert [t.type for t in Lexer(source)] == types_of(source)


class TestComments:
    """Line comments are skipped."""

    def test_line_comment(self):
        assert types_of("// nothing here\nx") == [TokenType.IDENTIFIER, TokenType.EOF]

    def test_trailing_comment(self):
        assert types_of("x // trailing") == [TokenType.IDENTIFIER, TokenType.EOF]

    def test_slash_star_is_wildcard_derivation(self):
        """``/*`` is a derivation step, not the start of a comment."""
        assert types_of("k/0/*") == [
            TokenType.IDENTIFIER,
            TokenType.SLASH,
            TokenType.NUMBER_LITERAL,
            TokenType.SLASH,
            TokenType.STAR,
            TokenType.EOF,
        ]


class TestLiterals:
    """Test literal tokenization."""

    def test_number(self):
        token = tokenize("144")[0]
        assert token.type == TokenType.NUMBER_LITERAL
        assert token.value == 144

    def test_number_too_large(self):
        with pytest.raises(LexerError) as exc_info:
            tokenize("9223372036854775808")
        assert exc_info.value.diagnostic.code == "E006"

    def test_number_max_i64(self):
        assert tokenize("9223372036854775807")[0].value == 2 ** 63 - 1

    def test_number_with_junk_suffix(self):
        with pytest.raises(LexerError):
            tokenize("12abc")

    def test_hardened_marker_left_for_parser(self):
        """A trailing h is tokenized separately so the parser can report it."""
        tokens = tokenize("5h")
        assert tokens[0].type == TokenType.NUMBER_LITERAL
        assert tokens[1].type == TokenType.IDENTIFIER
        assert tokens[1].value == "h"

    def test_hex_bytes(self):
        token = tokenize("0xdeadBEEF")[0]
        assert token.type == TokenType.BYTES_LITERAL
        assert token.value == bytes.fromhex("deadbeef")

    def test_empty_hex_bytes(self):
        token = tokenize("0x")[0]
        assert token.type == TokenType.BYTES_LITERAL
        assert token.value == b""

    def test_odd_hex_rejected(self):
        with pytest.raises(LexerError) as exc_info:
            tokenize("0xabc")
        assert exc_info.value.diagnostic.code == "E007"

    def test_booleans(self):
        tokens = tokenize("true false")
        assert tokens[0].type == TokenType.BOOL_LITERAL and tokens[0].value is True
        assert tokens[1].type == TokenType.BOOL_LITERAL and tokens[1].value is False

    def test_compressed_pubkey(self):
        token = tokenize(KEY_A)[0]
        assert token.type == TokenType.PUBKEY_LITERAL
        assert token.value == KEY_A

    def test_uppercase_pubkey_normalized(self):
        token = tokenize(KEY_A.upper())[0]
        assert token.type == TokenType.PUBKEY_LITERAL
        assert token.value == KEY_A

    def test_extended_key(self):
        token = tokenize(XPUB)[0]
        assert token.type == TokenType.PUBKEY_LITERAL
        assert token.value == XPUB

    def test_short_xpub_prefix_is_identifier(self):
        token = tokenize("xpubby")[0]
        assert token.type == TokenType.IDENTIFIER

    def test_date(self):
        token = tokenize("2030-01-01")[0]
        assert token.type == TokenType.DATETIME_LITERAL
        assert token.value == "2030-01-01"

    def test_datetime_with_t_separator(self):
        token = tokenize("2030-01-01T12:30")[0]
        assert token.type == TokenType.DATETIME_LITERAL
        assert token.value == "2030-01-01 12:30"

    def test_invalid_date(self):
        with pytest.raises(LexerError) as exc_info:
            tokenize("2030-13-45")
        assert exc_info.value.diagnostic.code == "E008"


class TestIdentifiersAndKeywords:
    """Test identifier and keyword recognition."""

    def test_keywords(self):
        assert types_of("fn return of") == [
            TokenType.FN, TokenType.RETURN, TokenType.OF, TokenType.EOF,
        ]

    def test_dollar_identifier(self):
        token = tokenize("$alice")[0]
        assert token.type == TokenType.IDENTIFIER
        assert token.value == "$alice"

    def test_underscore_identifier(self):
        token = tokenize("_anon_1")[0]
        assert token.type == TokenType.IDENTIFIER
        assert token.value == "_anon_1"


class TestOperators:
    """Test operator and delimiter tokenization."""

    def test_two_char_operators(self):
        assert types_of("== != <= >= && ||")[:-1] == [
            TokenType.EQ, TokenType.NE, TokenType.LE, TokenType.GE,
            TokenType.AND, TokenType.OR,
        ]

    def test_single_char_operators(self):
        assert types_of("+ - < > = ! @ | ` '")[:-1] == [
            TokenType.PLUS, TokenType.MINUS, TokenType.LT, TokenType.GT,
            TokenType.ASSIGN, TokenType.NOT, TokenType.AT, TokenType.PIPE,
            TokenType.BACKTICK, TokenType.APOSTROPHE,
        ]

    def test_delimiters(self):
        assert types_of("{ } ( ) [ ] ; ,")[:-1] == [
            TokenType.LBRACE, TokenType.RBRACE, TokenType.LPAREN, TokenType.RPAREN,
            TokenType.LBRACKET, TokenType.RBRACKET, TokenType.SEMICOLON, TokenType.COMMA,
        ]

    def test_unexpected_character(self):
        with pytest.raises(LexerError) as exc_info:
            tokenize("a # b")
        diag = exc_info.value.diagnostic
        assert diag.code == "E001"
        assert diag.span.start.column == 3
        assert "a # b" in str(exc_info.value)
