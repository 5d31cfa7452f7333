"""
DSL Runtime - Tree-walking interpreter for the policy language.

This module provides:
- Value: Immutable tagged runtime values and their coercions
- Scope: Lexical variable scopes
- UserFunction / NativeFunction: Callable values
- BuiltinRegistry: Native function implementations
- Interpreter: Evaluates AST nodes to values
"""

from .values import (
    Value,
    ValueKind,
    pubkey_val,
    bytes_val,
    number_val,
    bool_val,
    datetime_val,
    duration_val,
    policy_val,
    withprob_val,
    miniscript_val,
    descriptor_val,
    script_val,
    address_val,
    function_val,
    array_val,
    network_val,
    format_value,
    into_number,
    into_usize,
    into_bool,
    into_array,
    into_bytes,
    into_function,
    into_network,
    into_key,
    into_policy,
    into_miniscript,
    into_descriptor,
    into_script,
    into_script_pubkey,
    into_hash,
)

from .context import (
    Scope,
    create_root_scope,
    create_demo_scope,
)

from .function import (
    Function,
    UserFunction,
    NativeFunction,
    call_value,
)

from .builtins import (
    BuiltinRegistry,
    get_builtin_registry,
)

from .interpreter import (
    Interpreter,
    ExecutionResult,
    evaluate,
    execute_library,
    compile_and_run,
)

__all__ = [
    # Values
    'Value',
    'ValueKind',
    'pubkey_val',
    'bytes_val',
    'number_val',
    'bool_val',
    'datetime_val',
    'duration_val',
    'policy_val',
    'withprob_val',
    'miniscript_val',
    'descriptor_val',
    'script_val',
    'address_val',
    'function_val',
    'array_val',
    'network_val',
    'format_value',
    'into_number',
    'into_usize',
    'into_bool',
    'into_array',
    'into_bytes',
    'into_function',
    'into_network',
    'into_key',
    'into_policy',
    'into_miniscript',
    'into_descriptor',
    'into_script',
    'into_script_pubkey',
    'into_hash',

    # Scope
    'Scope',
    'create_root_scope',
    'create_demo_scope',

    # Functions
    'Function',
    'UserFunction',
    'NativeFunction',
    'call_value',

    # Builtins
    'BuiltinRegistry',
    'get_builtin_registry',

    # Interpreter
    'Interpreter',
    'ExecutionResult',
    'evaluate',
    'execute_library',
    'compile_and_run',
]
