"""
Introspection API for the native function library.

Gives tools (and the ``functions`` CLI command) programmatic access to the
functions and constants bound in every root scope.

Usage:
    from bitpolicy.dsl.introspection import list_functions, describe_function

    for name in list_functions("policy"):
        print(describe_function(name))
"""

import json
from typing import Any, Dict, List, Optional

from .runtime.builtins import get_builtin_registry
from .runtime.values import ValueKind


CATEGORY_DESCRIPTIONS: Dict[str, str] = {
    "policy": "Spending policy fragments and combinators",
    "compile": "Miniscript compilation, descriptors, scripts and addresses",
    "hash": "Hash functions over byte strings",
    "utility": "Array helpers and higher-order functions",
}


def list_functions(category: Optional[str] = None) -> List[str]:
    """Names of the native functions, optionally within one category."""
    return [f.ident for f in get_builtin_registry().list_functions(category)]


def list_categories() -> List[str]:
    return get_builtin_registry().categories()


def get_function_info(name: str) -> Optional[Dict[str, Any]]:
    """Signature, category and description of a native function, or None."""
    func = get_builtin_registry().get_function(name)
    if func is None:
        return None
    return {
        "name": func.ident,
        "signature": func.signature or f"{func.ident}(...)",
        "category": func.category,
        "description": func.doc,
    }


def describe_function(name: str) -> str:
    """One-paragraph human readable description of a native function."""
    info = get_function_info(name)
    if info is None:
        return f"Unknown function: {name}"
    return f"{info['signature']}\n    [{info['category']}] {info['description']}"


def list_constants() -> Dict[str, str]:
    """Constant names mapped to their kind (opcodes collapsed to one entry)."""
    result: Dict[str, str] = {}
    opcodes = 0
    for name, value in get_builtin_registry().constants.items():
        if name.startswith("OP_") and value.kind is ValueKind.SCRIPT:
            opcodes += 1
            continue
        result[name] = value.kind.value
    if opcodes:
        result["OP_*"] = f"script ({opcodes} opcodes)"
    return result


def get_api_reference() -> Dict[str, Any]:
    """Complete description of the native library as a dictionary."""
    return {
        "categories": {
            category: {
                "description": CATEGORY_DESCRIPTIONS.get(category, ""),
                "functions": [get_function_info(n) for n in list_functions(category)],
            }
            for category in list_categories()
        },
        "constants": list_constants(),
    }


def get_api_as_json() -> str:
    return json.dumps(get_api_reference(), indent=2)
