"""
Abstract Syntax Tree (AST) node definitions for the policy language.

A program is a ``Block``: a list of statements (assignments and function
definitions) optionally followed by a return expression.  A ``Library`` is a
bare statement list evaluated for its bindings.
"""

from dataclasses import dataclass
from typing import Optional, List, Union, Any
from abc import ABC
from .tokens import SourceSpan, TokenType
from ..timelock import Duration


# =============================================================================
# Base Classes
# =============================================================================

@dataclass
class AstNode(ABC):
    """Base class for all AST nodes."""
    span: SourceSpan  # Source location for error reporting

    def accept(self, visitor: "AstVisitor") -> Any:
        """Accept a visitor for traversal."""
        method_name = f"visit_{self.__class__.__name__}"
        method = getattr(visitor, method_name, visitor.generic_visit)
        return method(self)


class AstVisitor(ABC):
    """Base class for AST visitors."""

    def generic_visit(self, node: AstNode) -> Any:
        """Default visit method."""
        raise NotImplementedError(f"No visitor for {node.__class__.__name__}")


# =============================================================================
# Expression Nodes
# =============================================================================

@dataclass
class Expression(AstNode):
    """Base class for all expressions."""
    pass


@dataclass
class Literal(Expression):
    """A literal token value (number, bytes, bool, public key, date/time)."""
    value: Union[int, bytes, bool, str]
    literal_type: TokenType  # NUMBER_LITERAL, BYTES_LITERAL, BOOL_LITERAL, PUBKEY_LITERAL, DATETIME_LITERAL


@dataclass
class DurationLiteral(Expression):
    """A relative duration such as ``6 months`` or ``144 blocks``."""
    value: Duration


@dataclass
class Identifier(Expression):
    """A variable reference."""
    name: str


@dataclass
class Call(Expression):
    """A call of the function bound to ``ident`` in the current scope."""
    ident: str
    arguments: List[Expression]


@dataclass
class OrExpr(Expression):
    """``a || b || ...``; boolean short-circuit or policy disjunction."""
    operands: List[Expression]


@dataclass
class AndExpr(Expression):
    """``a && b && ...``; boolean short-circuit or policy conjunction."""
    operands: List[Expression]


@dataclass
class ThreshExpr(Expression):
    """``N of LIST``."""
    threshold: Expression
    policies: Expression


@dataclass
class WithProbExpr(Expression):
    """``W@EXPR``: a policy branch with a probability weight."""
    prob: Expression
    expr: Expression


@dataclass
class ArrayLiteral(Expression):
    elements: List[Expression]


@dataclass
class ArrayAccess(Expression):
    array: Expression
    index: Expression


@dataclass
class ChildDerive(Expression):
    """``parent/idx/idx[/*]``."""
    parent: Expression
    path: List[Expression]
    is_wildcard: bool


@dataclass
class ScriptFrag(Expression):
    """A backtick-delimited sequence of script fragments."""
    fragments: List[Expression]


@dataclass
class FnExpr(Expression):
    """An anonymous function ``|a, b| body``."""
    parameters: List[str]
    body: Expression


@dataclass
class Infix(Expression):
    """A binary comparison or arithmetic operation."""
    operator: TokenType  # EQ, NE, LT, GT, LE, GE, PLUS, MINUS
    left: Expression
    right: Expression


@dataclass
class NotExpr(Expression):
    operand: Expression


# =============================================================================
# Statement Nodes
# =============================================================================

@dataclass
class Statement(AstNode):
    """Base class for all statements."""
    pass


@dataclass
class Assignment(AstNode):
    """One ``name = value`` pair."""
    name: str
    value: Expression


@dataclass
class Assign(Statement):
    """``a = 1, b = a;``; pairs are bound in order."""
    assignments: List[Assignment]


@dataclass
class FnDef(Statement):
    """``fn name(params) = body;`` or ``fn name(params) { ... }``."""
    name: str
    parameters: List[str]
    body: Expression


@dataclass
class Block(Expression):
    """Statements followed by an optional return value."""
    statements: List[Statement]
    return_value: Optional[Expression] = None


@dataclass
class Library(AstNode):
    """A statement list evaluated for its bindings only."""
    statements: List[Statement]


# =============================================================================
# Visitor Helpers
# =============================================================================

class PrintVisitor(AstVisitor):
    """Debug visitor that renders the AST structure as indented lines."""

    def __init__(self, indent: int = 0, lines: Optional[List[str]] = None):
        self.indent = indent
        self.lines = lines if lines is not None else []

    def _emit(self, text: str) -> None:
        self.lines.append("  " * self.indent + text)

    def generic_visit(self, node: AstNode) -> List[str]:
        self._emit(f"{node.__class__.__name__}")
        for name, value in node.__dict__.items():
            if name == "span":
                continue
            if isinstance(value, AstNode):
                self._emit(f"  {name}:")
                PrintVisitor(self.indent + 2, self.lines).generic_visit(value)
            elif isinstance(value, list):
                self._emit(f"  {name}: [")
                for item in value:
                    if isinstance(item, AstNode):
                        PrintVisitor(self.indent + 2, self.lines).generic_visit(item)
                    else:
                        self._emit(f"    {item!r}")
                self._emit("  ]")
            elif isinstance(value, TokenType):
                self._emit(f"  {name}: {value.name}")
            else:
                self._emit(f"  {name}: {value!r}")
        return self.lines


def format_ast(node: AstNode) -> str:
    """Render an AST node as an indented tree."""
    return "\n".join(PrintVisitor().generic_visit(node))


def print_ast(node: AstNode) -> None:
    """Print an AST node for debugging."""
    print(format_ast(node))
