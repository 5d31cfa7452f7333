"""
Tests for the DSL runtime building blocks (values, coercions, scopes, functions).
"""

import pytest

from bitpolicy import descriptors
from bitpolicy.config import EvalConfig
from bitpolicy.dsl import parse
from bitpolicy.dsl.errors import (
    ArgumentMismatchError, ArithmeticOverflowError, CallError, HashLengthError,
    InvalidUsizeError, KeyParseError, NotArrayError, NotBoolError, NotCallableError,
    NotBytesError, NotComparableError, NotDescriptorLikeError, NotFunctionError,
    NotHashLikeError, NotKeyLikeError, NotNetworkError,
    NotNumberError, NotPolicyLikeError, NotScriptLikeError, RecursionLimitError,
    VarNotFoundError,
)
from bitpolicy.dsl.runtime import (
    Value, ValueKind, Scope, UserFunction, NativeFunction, call_value,
    number_val, bool_val, bytes_val, array_val, policy_val, script_val,
    function_val, network_val, datetime_val, duration_val, pubkey_val, address_val,
    format_value, into_number, into_usize, into_bool, into_array, into_key,
    into_function, into_network, into_bytes,
    into_policy, into_miniscript, into_descriptor, into_script, into_hash,
    create_root_scope, create_demo_scope, get_builtin_registry,
)
from bitpolicy.dsl.runtime.values import Coercion, I64_MAX, I64_MIN
from bitpolicy.policy import KeyPolicy, and_policy, thresh_policy
from bitpolicy.timelock import BlockHeight, BlockTime

KEY_A = "029ffbe722b147f3035c87cb1c60b9a5947dd49c774cc31e94773478711a929ac0"
KEY_B = "025f05815e3a1a8a83bfbb03ce016c9a2ee31066b98f567f6227df1d76ec4bd143"
KEY_C = "025625f41e4a065efc06d5019cbbd56fe8c07595af1231e7cbc03fafb87ebb71ec"


def key_val(text):
    return pubkey_val(descriptors.parse_key(text))


# --- Value Tests ---

class TestValues:
    """Test runtime value construction, equality and display."""

    def test_number_value(self):
        v = number_val(42)
        assert v.data == 42
        assert v.kind is ValueKind.NUMBER

    def test_number_range(self):
        assert number_val(I64_MAX).data == I64_MAX
        assert number_val(I64_MIN).data == I64_MIN
        with pytest.raises(ArithmeticOverflowError):
            number_val(I64_MAX + 1)
        with pytest.raises(ArithmeticOverflowError):
            number_val(I64_MIN - 1)

    def test_values_are_immutable(self):
        v = number_val(1)
        with pytest.raises(AttributeError):
            v.data = 2

    def test_equality_by_payload(self):
        assert number_val(3) == number_val(3)
        assert number_val(3) != number_val(4)
        assert bytes_val(b"\x01") == bytes_val(b"\x01")

    def test_equality_discriminates_kinds(self):
        assert number_val(1) != bool_val(True)
        assert bytes_val(b"\x01") != script_val(b"\x01")
        assert number_val(0) != array_val([])

    def test_array_equality_is_elementwise(self):
        assert array_val([number_val(1), bool_val(False)]) == array_val([number_val(1), bool_val(False)])
        assert array_val([number_val(1)]) != array_val([number_val(1), number_val(1)])

    def test_key_equality(self):
        assert key_val(KEY_A) == key_val(KEY_A)
        assert key_val(KEY_A) != key_val(KEY_B)

    def test_user_functions_are_not_comparable(self):
        body = parse("1").return_value
        f = function_val(UserFunction("f", [], body))
        with pytest.raises(NotComparableError):
            f == f

    def test_native_function_identity(self):
        registry = get_builtin_registry()
        pk = function_val(registry.get_function("pk"))
        assert pk == function_val(registry.get_function("pk"))
        assert pk != function_val(registry.get_function("older"))

    def test_display(self):
        assert str(number_val(-7)) == "-7"
        assert str(bool_val(True)) == "true"
        assert str(bytes_val(b"\xab\xcd")) == "0xabcd"
        assert str(script_val(b"\x76\xa9")) == "76a9"
        assert str(network_val("test")) == "testnet"
        assert str(datetime_val("2030-01-01")) == "2030-01-01"
        assert str(duration_val(BlockHeight(6))) == "6 blocks"

    def test_array_display(self):
        assert format_value(array_val([])) == "[]"
        text = format_value(array_val([number_val(1), array_val([number_val(2)])]))
        assert text == "[\n  1,\n  [\n    2\n  ]\n]"


# --- Coercion Tests ---

class TestCoercions:
    """Every coercion names its accepted kinds and rejects the rest."""

    def test_tables_are_exhaustive(self):
        with pytest.raises(RuntimeError):
            Coercion("broken", NotNumberError, {ValueKind.NUMBER: lambda v: v.data}, rejects=[])

    def test_tables_reject_overlap(self):
        with pytest.raises(RuntimeError):
            Coercion("broken", NotNumberError, {ValueKind.NUMBER: lambda v: v.data},
                     rejects=list(ValueKind))

    def test_into_number(self):
        assert into_number(number_val(5)) == 5
        with pytest.raises(NotNumberError) as exc_info:
            into_number(bool_val(True))
        assert exc_info.value.kind == "bool"

    def test_into_usize(self):
        assert into_usize(number_val(0)) == 0
        with pytest.raises(InvalidUsizeError):
            into_usize(number_val(-1))
        with pytest.raises(NotNumberError):
            into_usize(bytes_val(b""))

    def test_into_bool(self):
        assert into_bool(bool_val(False)) is False
        with pytest.raises(NotBoolError):
            into_bool(number_val(0))

    def test_into_array(self):
        items = into_array(array_val([number_val(1)]))
        assert items == (number_val(1),)
        with pytest.raises(NotArrayError):
            into_array(bytes_val(b"\x00"))

    def test_single_kind_coercions(self):
        native = get_builtin_registry().get_function("pk")
        assert into_function(function_val(native)) is native
        assert into_network(network_val("signet")) == "signet"
        assert into_bytes(bytes_val(b"\x01")) == b"\x01"
        with pytest.raises(NotFunctionError):
            into_function(number_val(1))
        with pytest.raises(NotNetworkError):
            into_network(address_val("bc1q"))
        with pytest.raises(NotBytesError):
            into_bytes(script_val(b"\x51"))

    def test_into_key_from_bytes(self):
        key = into_key(bytes_val(bytes.fromhex(KEY_A)))
        assert str(key) == KEY_A

    def test_into_key_wrong_length(self):
        with pytest.raises(KeyParseError):
            into_key(bytes_val(b"\x02" * 10))

    def test_into_key_rejects_numbers(self):
        with pytest.raises(NotKeyLikeError):
            into_key(number_val(2))

    def test_into_policy_from_array(self):
        p = into_policy(array_val([
            policy_val(KeyPolicy(KEY_A)), policy_val(KeyPolicy(KEY_B)),
        ]))
        assert p == and_policy([KeyPolicy(KEY_A), KeyPolicy(KEY_B)])

    def test_into_policy_from_long_array_is_thresh_all(self):
        keys = [KEY_A, KEY_B, KEY_C]
        p = into_policy(array_val([policy_val(KeyPolicy(k)) for k in keys]))
        assert p == thresh_policy(3, [KeyPolicy(k) for k in keys])

    def test_into_policy_rejects_keys(self):
        with pytest.raises(NotPolicyLikeError):
            into_policy(key_val(KEY_A))

    def test_into_miniscript_compiles_policy(self):
        ms = into_miniscript(policy_val(KeyPolicy(KEY_A)))
        assert KEY_A in str(ms)

    def test_into_descriptor_from_policy(self):
        desc = into_descriptor(policy_val(KeyPolicy(KEY_A)))
        assert str(desc).startswith("wsh(")

    def test_into_descriptor_from_key(self):
        desc = into_descriptor(key_val(KEY_A))
        assert str(desc).startswith("wpkh(")

    def test_into_descriptor_rejects_bytes(self):
        with pytest.raises(NotDescriptorLikeError):
            into_descriptor(bytes_val(b"\x00"))

    def test_into_script_pushes(self):
        assert into_script(number_val(0)) == b"\x00"
        assert into_script(number_val(5)) == b"\x55"
        assert into_script(number_val(100)) == b"\x01\x64"
        assert into_script(bool_val(True)) == b"\x51"
        assert into_script(bytes_val(b"\xaa\xbb")) == b"\x02\xaa\xbb"

    def test_into_script_pubkey_push(self):
        raw = into_script(key_val(KEY_A))
        assert raw == b"\x21" + bytes.fromhex(KEY_A)

    def test_into_script_duration(self):
        assert into_script(duration_val(BlockHeight(10))) == b"\x5a"
        raw = into_script(duration_val(BlockTime(512 * 20)))
        assert raw[0] == 3  # three-byte script number

    def test_into_script_array_concatenates(self):
        raw = into_script(array_val([number_val(1), script_val(b"\x76")]))
        assert raw == b"\x51\x76"

    def test_into_script_policy_is_witness_script(self):
        raw = into_script(policy_val(KeyPolicy(KEY_A)))
        assert raw == b"\x21" + bytes.fromhex(KEY_A) + b"\xac"

    def test_into_script_rejects_networks(self):
        with pytest.raises(NotScriptLikeError):
            into_script(network_val("main"))

    def test_into_hash(self):
        digest = bytes(range(32))
        assert into_hash(bytes_val(digest), 32) == digest
        with pytest.raises(HashLengthError):
            into_hash(bytes_val(digest), 20)
        with pytest.raises(NotHashLikeError):
            into_hash(number_val(1), 32)


# --- Scope Tests ---

class TestScope:
    """Test variable scopes."""

    def test_get_walks_parents(self):
        root = Scope(name="root")
        root.set("x", number_val(1))
        child = root.child()
        assert child.get("x") == number_val(1)
        assert child.get("missing") is None

    def test_set_shadows(self):
        root = Scope()
        root.set("x", number_val(1))
        child = root.child()
        child.set("x", number_val(2))
        assert child.get("x") == number_val(2)
        assert root.get("x") == number_val(1)

    def test_lookup_raises(self):
        with pytest.raises(VarNotFoundError) as exc_info:
            Scope().lookup("nope")
        assert exc_info.value.ident == "nope"

    def test_depth_limit(self):
        scope = Scope(max_depth=3)
        scope = scope.child().child().child()
        assert scope.depth == 3
        with pytest.raises(RecursionLimitError):
            scope.child()

    def test_root_scope_contents(self):
        root = create_root_scope(EvalConfig(network="test"))
        assert root.get("pk").kind is ValueKind.FUNCTION
        assert root.get("likely") == number_val(10)
        assert root.get("testnet") == network_val("test")
        assert root.get("network") == network_val("test")
        assert root.get("OP_CHECKSIG") == script_val(b"\xac")
        assert root.get("A") is None

    def test_root_scope_depth_from_config(self):
        assert create_root_scope(EvalConfig(max_depth=7)).max_depth == 7

    def test_demo_scope(self):
        scope = create_demo_scope()
        assert str(scope.get("A").data) == KEY_A
        assert scope.get("H").kind is ValueKind.BYTES
        assert len(scope.get("H1").data) == 20
        assert descriptors.is_extended(scope.get("$alice").data)

    def test_demo_scope_playground_keys(self):
        scope = create_demo_scope()
        for name in ("F", "G", "I", "J", "K", "L", "user_pk", "service_pk", "ceo_pk"):
            assert scope.get(name).kind is ValueKind.PUBKEY
        assert str(scope.get("user_pk").data) == (
            "03c620141755e90c86ec35fe57594e0b4b1a32f09f15bc0a43b06f9feb71c1b06c"
        )


# --- Function Tests ---

class TestFunctions:
    """Test user and native function invocation."""

    def _body(self, source):
        return parse(source).return_value

    def test_user_function_binds_parameters(self):
        f = UserFunction("add", ["a", "b"], self._body("a + b"))
        result = f.call([number_val(2), number_val(3)], create_root_scope())
        assert result == number_val(5)

    def test_user_function_arity(self):
        f = UserFunction("f", ["a"], self._body("a"))
        with pytest.raises(CallError) as exc_info:
            f.call([], Scope())
        cause = exc_info.value.cause
        assert isinstance(cause, ArgumentMismatchError)
        assert (cause.actual, cause.expected) == (0, 1)

    def test_user_function_does_not_leak_bindings(self):
        scope = Scope()
        f = UserFunction("f", ["a"], self._body("a"))
        f.call([number_val(1)], scope)
        assert scope.get("a") is None

    def test_native_function(self):
        seen = []

        def impl(args, scope):
            seen.append((args, scope))
            return number_val(len(args))

        native = NativeFunction("count", impl)
        scope = Scope()
        assert call_value(function_val(native), [number_val(1), number_val(2)], scope) == number_val(2)
        assert seen[0][1] is scope

    def test_call_non_function(self):
        with pytest.raises(NotCallableError) as exc_info:
            call_value(number_val(1), [], Scope())
        assert exc_info.value.kind == "number"
