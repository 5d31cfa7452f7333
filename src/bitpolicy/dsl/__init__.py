"""
The bitpolicy language: spending policies as small programs.

This module provides:
- Lexer: Tokenizes program source
- Parser: Builds the AST from tokens
- Interpreter: Evaluates programs to policies, descriptors, scripts, ...
- Report: Summarizes a result as policy / descriptor / script / address

Usage:
    from bitpolicy.dsl import run, compile_and_run
    from bitpolicy.config import EvalConfig

    value = run('''
        fn twoof(a, b, c) = 2 of [a, b, c];
        twoof(pk(A), pk(B), pk(C)) || older(3 months)
    ''', config=EvalConfig(demo=True))

    result = compile_and_run("pk(A) && after(2030-01-01)", config=EvalConfig(demo=True))
    if result.success:
        print(result.report.address)
    else:
        print(result.error_message)
"""

from .tokens import (
    Token,
    TokenType,
    SourceLocation,
    SourceSpan,
    KEYWORDS,
)

from .lexer import (
    Lexer,
    tokenize,
)

from .parser import (
    Parser,
)

from .ast import (
    AstNode,
    AstVisitor,
    Expression,
    Literal,
    DurationLiteral,
    Identifier,
    Call,
    OrExpr,
    AndExpr,
    ThreshExpr,
    WithProbExpr,
    ArrayLiteral,
    ArrayAccess,
    ChildDerive,
    ScriptFrag,
    FnExpr,
    Infix,
    NotExpr,
    Statement,
    Assignment,
    Assign,
    FnDef,
    Block,
    Library,
    format_ast,
    print_ast,
)

from .errors import (
    DslError,
    LexerError,
    ParserError,
    Diagnostic,
    ErrorSeverity,
    EvaluationError,
)

from .api import (
    parse,
    parse_library,
    evaluate,
    evaluate_library,
    run,
)

from .runtime import (
    Interpreter,
    ExecutionResult,
    compile_and_run,
    Value,
    ValueKind,
    Scope,
    create_root_scope,
    create_demo_scope,
    UserFunction,
    NativeFunction,
)

from .report import (
    Report,
    summarize,
)

from .introspection import (
    list_functions,
    get_function_info,
    describe_function,
    get_api_reference,
)

__all__ = [
    # Tokens
    'Token',
    'TokenType',
    'SourceLocation',
    'SourceSpan',
    'KEYWORDS',

    # Lexer / parser
    'Lexer',
    'tokenize',
    'Parser',
    'parse',
    'parse_library',

    # AST
    'AstNode',
    'AstVisitor',
    'Expression',
    'Literal',
    'DurationLiteral',
    'Identifier',
    'Call',
    'OrExpr',
    'AndExpr',
    'ThreshExpr',
    'WithProbExpr',
    'ArrayLiteral',
    'ArrayAccess',
    'ChildDerive',
    'ScriptFrag',
    'FnExpr',
    'Infix',
    'NotExpr',
    'Statement',
    'Assignment',
    'Assign',
    'FnDef',
    'Block',
    'Library',
    'format_ast',
    'print_ast',

    # Errors
    'DslError',
    'LexerError',
    'ParserError',
    'Diagnostic',
    'ErrorSeverity',
    'EvaluationError',

    # Evaluation
    'evaluate',
    'evaluate_library',
    'run',
    'compile_and_run',
    'Interpreter',
    'ExecutionResult',
    'Value',
    'ValueKind',
    'Scope',
    'create_root_scope',
    'create_demo_scope',
    'UserFunction',
    'NativeFunction',

    # Report
    'Report',
    'summarize',

    # Introspection
    'list_functions',
    'get_function_info',
    'describe_function',
    'get_api_reference',
]
