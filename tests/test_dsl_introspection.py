"""
Tests for the native library introspection API.
"""

import json

from bitpolicy.dsl.introspection import (
    CATEGORY_DESCRIPTIONS, describe_function, get_api_as_json, get_api_reference,
    get_function_info, list_categories, list_constants, list_functions,
)


class TestIntrospection:
    """Programmatic access to functions and constants."""

    def test_every_category_described(self):
        assert set(list_categories()) == set(CATEGORY_DESCRIPTIONS)

    def test_list_functions(self):
        policy = list_functions("policy")
        assert "pk" in policy and "thresh" in policy
        assert "map" not in policy
        assert set(policy) < set(list_functions())

    def test_function_info(self):
        info = get_function_info("older")
        assert info["name"] == "older"
        assert info["category"] == "policy"
        assert info["signature"].startswith("older(")
        assert get_function_info("nope") is None

    def test_describe(self):
        text = describe_function("address")
        assert text.startswith("address(x[, network])")
        assert "[compile]" in text
        assert describe_function("nope") == "Unknown function: nope"

    def test_constants_collapse_opcodes(self):
        constants = list_constants()
        assert constants["likely"] == "number"
        assert constants["mainnet"] == "network"
        assert "OP_DUP" not in constants
        assert constants["OP_*"].startswith("script (")

    def test_api_reference(self):
        reference = get_api_reference()
        names = [f["name"] for f in reference["categories"]["hash"]["functions"]]
        assert "hash_sha256" in names
        assert json.loads(get_api_as_json()) == reference
