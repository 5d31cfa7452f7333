#!/usr/bin/env python3
"""
CLI for the bitpolicy language.

Usage:
    python -m bitpolicy.dsl run FILE|- [--lib FILE ...] [--network NET] [--config FILE]
                                       [--demo] [--ast] [--debug] [--json]
    python -m bitpolicy.dsl check FILE|-
    python -m bitpolicy.dsl functions [NAME]

Examples:
    # Evaluate a policy using the demo keys A..E
    echo 'pk(A) && (pk(B) || older(2 weeks))' | python -m bitpolicy.dsl run --demo -

    # Use function definitions from a library file, report testnet addresses
    python -m bitpolicy.dsl run vault.pol --lib common.pol --network test

    # Parse only
    python -m bitpolicy.dsl check vault.pol

    # Describe a native function
    python -m bitpolicy.dsl functions thresh
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

from ..config import NETWORK_NAMES, ConfigError, EvalConfig, load_config

logger = logging.getLogger(__name__)


def read_source(name: str) -> Tuple[str, str]:
    """Read a source file, or stdin for ``-``; returns (source, display name)."""
    if name == "-":
        return sys.stdin.read(), "<stdin>"
    path = Path(name)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return path.read_text(), str(path)


def build_config(args) -> EvalConfig:
    """Settings from ``--config`` overridden by the command line flags."""
    config = load_config(args.config) if args.config else EvalConfig()
    return config.replace(network=args.network, demo=True if args.demo else None)


def cmd_check(args):
    """Check a program for syntax errors."""
    from .api import parse
    from .errors import DslError

    try:
        source, name = read_source(args.file)
        program = parse(source, name)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except DslError as e:
        print(str(e), file=sys.stderr)
        return 1

    final = "a final expression" if program.return_value is not None else "no final expression"
    print(f"OK: {name} - {len(program.statements)} statement(s), {final}")
    return 0


def cmd_functions(args):
    """List native functions or describe one."""
    from .introspection import (
        CATEGORY_DESCRIPTIONS, describe_function, get_function_info,
        list_categories, list_constants, list_functions,
    )

    if args.name:
        if get_function_info(args.name) is None:
            print(f"Error: Unknown function: {args.name}", file=sys.stderr)
            return 1
        print(describe_function(args.name))
        return 0

    for category in list_categories():
        print(f"{category}: {CATEGORY_DESCRIPTIONS.get(category, '')}")
        for name in list_functions(category):
            print(f"  {get_function_info(name)['signature']}")
    print("constants:")
    for name, kind in list_constants().items():
        print(f"  {name}: {kind}")
    return 0


def cmd_run(args):
    """Evaluate a program and print its report."""
    from .api import parse, evaluate_library, evaluate
    from .ast import format_ast
    from .errors import DslError, EvaluationError
    from .report import summarize
    from .runtime.context import create_root_scope

    try:
        config = build_config(args)
        source, name = read_source(args.file)
        program = parse(source, name)
    except (FileNotFoundError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except DslError as e:
        print(str(e), file=sys.stderr)
        return 1

    if args.ast:
        print(format_ast(program))
        return 0

    try:
        scope = create_root_scope(config)
        for lib in args.lib or []:
            lib_source, lib_name = read_source(lib)
            logger.debug("loading library %s", lib_name)
            scope = evaluate_library(lib_source, scope, filename=lib_name)
        value = evaluate(program, scope)
        report = summarize(value, config.network)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except DslError as e:
        print(str(e), file=sys.stderr)
        return 1
    except EvaluationError as e:
        print("Error: " + e.format_chain(), file=sys.stderr)
        return 1

    if args.json:
        data = report.to_dict()
        data["kind"] = value.kind.value
        print(json.dumps(data, indent=2))
        return 0

    if args.debug:
        print(repr(value))
    for label, text in report.lines():
        print(f"{label}: {text}")
    return 0


def main(argv: Optional[list] = None):
    parser = argparse.ArgumentParser(
        prog='bitpolicy',
        description='Bitcoin spending policy language',
    )
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Log debug output to stderr')

    subparsers = parser.add_subparsers(dest='action', required=True)

    # run command
    run_parser = subparsers.add_parser('run', help='Evaluate a program')
    run_parser.add_argument('file', help='Program source file, or - for stdin')
    run_parser.add_argument('--lib', action='append', metavar='FILE',
                            help='Library file to load first (can be repeated)')
    run_parser.add_argument('--network', choices=NETWORK_NAMES,
                            help='Network for addresses (default: main)')
    run_parser.add_argument('--config', metavar='FILE', help='YAML settings file')
    run_parser.add_argument('--demo', action='store_true',
                            help='Bind the demo keys A..E, $alice and hashes H, H1')
    run_parser.add_argument('--ast', action='store_true', help='Print the parsed AST and exit')
    run_parser.add_argument('--debug', action='store_true', help='Also print the raw value')
    run_parser.add_argument('--json', action='store_true', help='Print the report as JSON')

    # check command
    check_parser = subparsers.add_parser('check', help='Check a program for syntax errors')
    check_parser.add_argument('file', help='Program source file, or - for stdin')

    # functions command
    functions_parser = subparsers.add_parser('functions', help='List or describe native functions')
    functions_parser.add_argument('name', nargs='?', help='Function to describe')

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format='%(name)s: %(message)s')

    if args.action == 'run':
        return cmd_run(args)
    elif args.action == 'check':
        return cmd_check(args)
    elif args.action == 'functions':
        return cmd_functions(args)
    else:
        parser.print_help()
        return 1


if __name__ == '__main__':
    sys.exit(main())
