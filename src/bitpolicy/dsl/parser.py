"""
Recursive descent parser for the policy language.

Converts a token stream into an Abstract Syntax Tree (AST).  A program is
parsed as a ``Block``; a library as a ``Library`` (statements only).
"""

from typing import List, Optional, Tuple
from .tokens import (
    Token, TokenType, SourceSpan, DURATION_UNITS, BLOCK_UNITS, HEIGHTWISE,
)
from .ast import (
    # Expressions
    Expression, Literal, DurationLiteral, Identifier, Call,
    OrExpr, AndExpr, ThreshExpr, WithProbExpr,
    ArrayLiteral, ArrayAccess, ChildDerive, ScriptFrag, FnExpr, Infix, NotExpr,
    # Statements
    Statement, Assignment, Assign, FnDef, Block, Library,
)
from .errors import (
    error_unexpected_token,
    error_unexpected_eof,
    error_invalid_expression,
    error_hardened_derivation,
    error_invalid_duration,
    error_nesting_too_deep,
)
from ..timelock import BlockHeight, BlockTime

LITERAL_TOKENS = (
    TokenType.BYTES_LITERAL,
    TokenType.BOOL_LITERAL,
    TokenType.PUBKEY_LITERAL,
    TokenType.DATETIME_LITERAL,
)


class Parser:
    """
    Recursive descent parser for the policy language.

    Usage:
        parser = Parser(tokens)
        program = parser.parse_program()

    Expression precedence, lowest to highest:
        Lowest:  ||                 (n-ary)
                 &&                 (n-ary)
                 == !=
                 < > <= >=
                 + -
                 N of LIST
                 W@EXPR
                 !
                 call, [index], /derivation
        Highest: literals, identifiers, ( ), [ ], { }, |params| body, `script`
    """

    # Operator precedence levels (higher = tighter binding)
    PRECEDENCE = {
        TokenType.OR: 1,
        TokenType.AND: 2,
        TokenType.EQ: 3,
        TokenType.NE: 3,
        TokenType.LT: 4,
        TokenType.GT: 4,
        TokenType.LE: 4,
        TokenType.GE: 4,
        TokenType.PLUS: 5,
        TokenType.MINUS: 5,
    }

    # Operators collected into a single n-ary node
    COMBINATORS = {TokenType.OR: OrExpr, TokenType.AND: AndExpr}

    def __init__(self, tokens: List[Token], filename: Optional[str] = None, source: Optional[str] = None):
        self.tokens = tokens
        self.filename = filename
        self.source = source
        self.pos = 0
        self._lines = source.splitlines() if source else []

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _current(self) -> Token:
        """Get current token."""
        if self.pos >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[self.pos]

    def _peek(self, offset: int = 0) -> Token:
        """Peek at token at current position + offset."""
        idx = self.pos + offset
        if idx >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[idx]

    def _is_at_end(self) -> bool:
        """Check if at end of tokens."""
        return self._current().type == TokenType.EOF

    def _check(self, token_type: TokenType) -> bool:
        """Check if current token is of given type."""
        return self._current().type == token_type

    def _check_any(self, *token_types: TokenType) -> bool:
        """Check if current token is any of given types."""
        return self._current().type in token_types

    def _check_ahead(self, token_type: TokenType, offset: int = 1) -> bool:
        """Check if token at current position + offset is of given type."""
        return self._peek(offset).type == token_type

    def _advance(self) -> Token:
        """Consume and return current token."""
        token = self._current()
        if not self._is_at_end():
            self.pos += 1
        return token

    def _consume(self, token_type: TokenType, expected: str) -> Token:
        """Consume token of expected type, or raise error."""
        if self._check(token_type):
            return self._advance()
        self._error(expected)

    def _match(self, *token_types: TokenType) -> Optional[Token]:
        """Consume token if it matches any of the given types."""
        if self._current().type in token_types:
            return self._advance()
        return None

    def _source_line(self, token: Token) -> Optional[str]:
        line = token.span.start.line
        if 1 <= line <= len(self._lines):
            return self._lines[line - 1]
        return None

    def _error(self, expected: str) -> None:
        """Raise a parser error."""
        token = self._current()
        if token.type == TokenType.EOF:
            raise error_unexpected_eof(expected, token.span)
        raise error_unexpected_token(expected, token.type.name, token.span, self._source_line(token))

    def _span_from(self, start: Token) -> SourceSpan:
        """Create a span from start token to current position."""
        prev_pos = max(0, self.pos - 1)
        end_token = self.tokens[prev_pos]
        return SourceSpan(start.span.start, end_token.span.end)

    # =========================================================================
    # Expression Parsing
    # =========================================================================

    def _parse_expression(self) -> Expression:
        """Parse an expression."""
        return self._parse_binary_expr(1)

    def _parse_binary_expr(self, min_precedence: int) -> Expression:
        """Parse binary expressions with precedence climbing."""
        left = self._parse_thresh_expr()

        while True:
            op_token = self._current()
            precedence = self.PRECEDENCE.get(op_token.type)

            if precedence is None or precedence < min_precedence:
                break

            self._advance()  # consume operator
            right = self._parse_binary_expr(precedence + 1)

            if op_token.type in self.COMBINATORS:
                operands = [left, right]
                while self._match(op_token.type):
                    operands.append(self._parse_binary_expr(precedence + 1))
                left = self.COMBINATORS[op_token.type](
                    span=SourceSpan(left.span.start, operands[-1].span.end),
                    operands=operands,
                )
            else:
                left = Infix(
                    span=SourceSpan(left.span.start, right.span.end),
                    operator=op_token.type,
                    left=left,
                    right=right,
                )

        return left

    def _parse_thresh_expr(self) -> Expression:
        """Parse ``N of LIST``."""
        left = self._parse_prob_expr()
        if self._match(TokenType.OF):
            right = self._parse_prob_expr()
            return ThreshExpr(
                span=SourceSpan(left.span.start, right.span.end),
                threshold=left,
                policies=right,
            )
        return left

    def _parse_prob_expr(self) -> Expression:
        """Parse ``W@EXPR``."""
        left = self._parse_unary_expr()
        if self._match(TokenType.AT):
            right = self._parse_unary_expr()
            return WithProbExpr(
                span=SourceSpan(left.span.start, right.span.end),
                prob=left,
                expr=right,
            )
        return left

    def _parse_unary_expr(self) -> Expression:
        """Parse unary ``!``."""
        if self._check(TokenType.NOT):
            op = self._advance()
            operand = self._parse_unary_expr()
            return NotExpr(
                span=SourceSpan(op.span.start, operand.span.end),
                operand=operand,
            )

        return self._parse_postfix_expr()

    def _parse_postfix_expr(self) -> Expression:
        """Parse postfix expressions (indexing, child derivation)."""
        expr = self._parse_primary_expr()

        while True:
            if self._check(TokenType.LBRACKET):
                self._advance()  # consume '['
                index = self._parse_expression()
                self._consume(TokenType.RBRACKET, "']'")
                expr = ArrayAccess(
                    span=SourceSpan(expr.span.start, self.tokens[self.pos - 1].span.end),
                    array=expr,
                    index=index,
                )
            elif self._check(TokenType.SLASH):
                expr = self._parse_derivation(expr)
            else:
                break

        return expr

    def _parse_derivation(self, parent: Expression) -> ChildDerive:
        """Parse ``/idx/idx[/*]`` following ``parent``."""
        path: List[Expression] = []
        is_wildcard = False

        while self._match(TokenType.SLASH):
            if self._match(TokenType.STAR):
                is_wildcard = True
                break
            path.append(self._parse_primary_expr())
            token = self._current()
            if token.type == TokenType.APOSTROPHE or (
                    token.type == TokenType.IDENTIFIER and token.value in ("h", "H")):
                raise error_hardened_derivation(token.span, self._source_line(token))

        return ChildDerive(
            span=SourceSpan(parent.span.start, self.tokens[self.pos - 1].span.end),
            parent=parent,
            path=path,
            is_wildcard=is_wildcard,
        )

    def _parse_arguments(self) -> List[Expression]:
        """Parse a parenthesized, comma-separated argument list."""
        self._consume(TokenType.LPAREN, "'('")

        args = []
        if not self._check(TokenType.RPAREN):
            args.append(self._parse_expression())
            while self._match(TokenType.COMMA):
                if self._check(TokenType.RPAREN):
                    break  # Allow trailing comma
                args.append(self._parse_expression())

        self._consume(TokenType.RPAREN, "')'")
        return args

    def _parse_primary_expr(self) -> Expression:
        """Parse primary expressions (literals, identifiers, grouped, etc.)."""
        token = self._current()

        if token.type == TokenType.NUMBER_LITERAL:
            nxt = self._peek(1)
            if nxt.type == TokenType.IDENTIFIER and (
                    nxt.value in DURATION_UNITS or nxt.value in BLOCK_UNITS):
                return self._parse_duration()
            self._advance()
            return Literal(span=token.span, value=token.value, literal_type=token.type)

        if token.type in LITERAL_TOKENS:
            self._advance()
            return Literal(span=token.span, value=token.value, literal_type=token.type)

        if token.type == TokenType.IDENTIFIER:
            self._advance()
            if self._check(TokenType.LPAREN):
                args = self._parse_arguments()
                return Call(span=self._span_from(token), ident=token.value, arguments=args)
            return Identifier(span=token.span, name=token.value)

        if token.type == TokenType.LPAREN:
            self._advance()
            expr = self._parse_expression()
            self._consume(TokenType.RPAREN, "')'")
            return expr

        if token.type == TokenType.LBRACKET:
            return self._parse_array_literal()

        if token.type == TokenType.LBRACE:
            return self._parse_brace_block()

        if token.type in (TokenType.PIPE, TokenType.OR):
            return self._parse_fn_expr()

        if token.type == TokenType.BACKTICK:
            return self._parse_script_frag()

        if token.type == TokenType.EOF:
            self._error("expression")
        raise error_invalid_expression(token.span, self._source_line(token))

    def _parse_duration(self) -> DurationLiteral:
        """Parse ``N blocks`` or ``N unit [N unit ...] [heightwise]``."""
        start = self._current()

        if self._peek(1).value in BLOCK_UNITS:
            count = self._advance().value
            self._advance()  # consume unit
            return DurationLiteral(span=self._span_from(start), value=BlockHeight(count))

        seconds = 0
        while self._check(TokenType.NUMBER_LITERAL) and self._check_ahead(TokenType.IDENTIFIER):
            unit = self._peek(1).value
            if unit in BLOCK_UNITS:
                raise error_invalid_duration(
                    "block counts cannot be combined with time units",
                    self._peek(1).span, self._source_line(self._peek(1)),
                )
            if unit not in DURATION_UNITS:
                break
            count = self._advance().value
            self._advance()  # consume unit
            seconds += count * DURATION_UNITS[unit]

        heightwise = False
        if self._check(TokenType.IDENTIFIER) and self._current().value == HEIGHTWISE:
            self._advance()
            heightwise = True

        return DurationLiteral(
            span=self._span_from(start),
            value=BlockTime(seconds, heightwise),
        )

    def _parse_array_literal(self) -> ArrayLiteral:
        """Parse ``[a, b, ...]``."""
        start = self._consume(TokenType.LBRACKET, "'['")
        elements = []
        if not self._check(TokenType.RBRACKET):
            elements.append(self._parse_expression())
            while self._match(TokenType.COMMA):
                if self._check(TokenType.RBRACKET):
                    break  # Allow trailing comma
                elements.append(self._parse_expression())
        self._consume(TokenType.RBRACKET, "']'")
        return ArrayLiteral(span=self._span_from(start), elements=elements)

    def _parse_fn_expr(self) -> FnExpr:
        """Parse ``|a, b| body`` or ``|| body``."""
        start = self._current()
        params: List[str] = []
        if not self._match(TokenType.OR):
            self._consume(TokenType.PIPE, "'|'")
            if not self._check(TokenType.PIPE):
                params.append(self._consume(TokenType.IDENTIFIER, "parameter name").value)
                while self._match(TokenType.COMMA):
                    params.append(self._consume(TokenType.IDENTIFIER, "parameter name").value)
            self._consume(TokenType.PIPE, "'|'")
        body = self._parse_expression()
        return FnExpr(span=self._span_from(start), parameters=params, body=body)

    def _parse_script_frag(self) -> ScriptFrag:
        """Parse a backtick-delimited list of script fragments."""
        start = self._consume(TokenType.BACKTICK, "'`'")
        fragments = []
        while not self._check(TokenType.BACKTICK):
            if self._is_at_end():
                self._error("closing '`'")
            fragments.append(self._parse_postfix_expr())
        self._consume(TokenType.BACKTICK, "'`'")
        return ScriptFrag(span=self._span_from(start), fragments=fragments)

    # =========================================================================
    # Statement Parsing
    # =========================================================================

    def _at_statement(self) -> bool:
        """True when the upcoming tokens start a statement, not an expression."""
        if self._check(TokenType.FN):
            return True
        return self._check(TokenType.IDENTIFIER) and self._check_ahead(TokenType.ASSIGN)

    def _parse_statement(self) -> Statement:
        """Parse a single statement."""
        if self._check(TokenType.FN):
            return self._parse_fn_def()
        if self._check(TokenType.IDENTIFIER) and self._check_ahead(TokenType.ASSIGN):
            return self._parse_assign()
        self._error("statement")

    def _parse_assign(self) -> Assign:
        """Parse ``a = expr[, b = expr]*;``."""
        start = self._current()
        assignments = []
        while True:
            name_token = self._consume(TokenType.IDENTIFIER, "identifier")
            self._consume(TokenType.ASSIGN, "'='")
            value = self._parse_expression()
            assignments.append(Assignment(
                span=self._span_from(name_token),
                name=name_token.value,
                value=value,
            ))
            if not self._match(TokenType.COMMA):
                break
        self._consume(TokenType.SEMICOLON, "';'")
        return Assign(span=self._span_from(start), assignments=assignments)

    def _parse_fn_def(self) -> FnDef:
        """Parse ``fn name(params) = expr;`` or ``fn name(params) { ... }``."""
        start = self._consume(TokenType.FN, "'fn'")
        name = self._consume(TokenType.IDENTIFIER, "function name").value

        self._consume(TokenType.LPAREN, "'('")
        params: List[str] = []
        if not self._check(TokenType.RPAREN):
            params.append(self._consume(TokenType.IDENTIFIER, "parameter name").value)
            while self._match(TokenType.COMMA):
                if self._check(TokenType.RPAREN):
                    break
                params.append(self._consume(TokenType.IDENTIFIER, "parameter name").value)
        self._consume(TokenType.RPAREN, "')'")

        if self._check(TokenType.LBRACE):
            body = self._parse_brace_block()
            self._match(TokenType.SEMICOLON)
        else:
            self._consume(TokenType.ASSIGN, "'=' or '{'")
            body = self._parse_expression()
            self._consume(TokenType.SEMICOLON, "';'")

        return FnDef(span=self._span_from(start), name=name, parameters=params, body=body)

    def _parse_block_body(self, terminator: TokenType) -> Tuple[List[Statement], Optional[Expression]]:
        """Parse statements and an optional final (``return``) expression."""
        statements: List[Statement] = []
        return_value = None

        while not self._check(terminator) and not self._is_at_end():
            if self._at_statement():
                statements.append(self._parse_statement())
                continue
            self._match(TokenType.RETURN)
            return_value = self._parse_expression()
            self._match(TokenType.SEMICOLON)
            break

        return statements, return_value

    def _parse_brace_block(self) -> Block:
        """Parse a brace-delimited block expression."""
        start = self._consume(TokenType.LBRACE, "'{'")
        statements, return_value = self._parse_block_body(TokenType.RBRACE)
        self._consume(TokenType.RBRACE, "'}'")
        return Block(
            span=self._span_from(start),
            statements=statements,
            return_value=return_value,
        )

    # =========================================================================
    # Top Level
    # =========================================================================

    def parse_program(self) -> Block:
        """Parse a whole program into a block."""
        start = self._current()
        statements, return_value = self._parse_block_body(TokenType.EOF)
        if not self._is_at_end():
            self._error("end of file")
        return Block(
            span=SourceSpan(start.span.start, self._current().span.end),
            statements=statements,
            return_value=return_value,
        )

    def parse_library(self) -> Library:
        """Parse a statement-only library."""
        start = self._current()
        statements = []
        while not self._is_at_end():
            statements.append(self._parse_statement())
        return Library(
            span=SourceSpan(start.span.start, self._current().span.end),
            statements=statements,
        )


def _parse_guarded(parser: Parser, entry):
    try:
        return entry()
    except RecursionError as e:
        token = parser._current()
        raise error_nesting_too_deep(token.span, parser._source_line(token)) from e


def parse(tokens: List[Token], filename: Optional[str] = None, source: Optional[str] = None) -> Block:
    """
    Convenience function to parse tokens into a program block.

    Args:
        tokens: List of tokens from the lexer
        filename: Optional filename for error messages
        source: Optional original source code for error messages

    Returns:
        Parsed Block AST

    Raises:
        ParserError: If parsing fails, including input nested too deeply
            for the interpreter stack
    """
    parser = Parser(tokens, filename, source)
    return _parse_guarded(parser, parser.parse_program)


def parse_library(tokens: List[Token], filename: Optional[str] = None,
                  source: Optional[str] = None) -> Library:
    """Parse tokens into a ``Library`` of statements."""
    parser = Parser(tokens, filename, source)
    return _parse_guarded(parser, parser.parse_library)
