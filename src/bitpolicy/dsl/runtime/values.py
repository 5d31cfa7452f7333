"""
Runtime values for the DSL interpreter.

A ``Value`` is an immutable tagged union: ``kind`` names the active variant
and ``data`` holds its payload (embit objects for keys, miniscript and
descriptors; plain Python objects otherwise).

Conversions between kinds go through the ``into_*`` coercions below.  Each
coercion is a table that names every ``ValueKind`` either as accepted (with a
handler) or as rejected; building a table that forgets a kind fails at import
time, so adding a variant forces every coercion to be revisited.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Sequence, Tuple, Type

from ... import descriptors, policy as policies, script as scripts, timelock
from ..errors import (
    ArithmeticOverflowError, CompileError, ConversionError, DescriptorError,
    HashLengthError, InvalidUsizeError, KeyParseError, TimelockError,
    NotArrayError, NotBoolError, NotBytesError, NotDescriptorLikeError,
    NotFunctionError, NotHashLikeError, NotKeyLikeError, NotMiniscriptLikeError,
    NotNetworkError, NotNumberError, NotPolicyLikeError, NotScriptLikeError,
)

I64_MIN = -(2 ** 63)
I64_MAX = 2 ** 63 - 1


class ValueKind(Enum):
    """The variants of ``Value``."""
    PUBKEY = "pubkey"
    BYTES = "bytes"
    NUMBER = "number"
    BOOL = "bool"
    DATETIME = "datetime"
    DURATION = "duration"
    POLICY = "policy"
    WITHPROB = "withprob"
    MINISCRIPT = "miniscript"
    DESCRIPTOR = "descriptor"
    SCRIPT = "script"
    ADDRESS = "address"
    FUNCTION = "function"
    ARRAY = "array"
    NETWORK = "network"


ALL_KINDS = frozenset(ValueKind)

NETWORK_DISPLAY = {
    "main": "mainnet",
    "test": "testnet",
    "signet": "signet",
    "regtest": "regtest",
}


@dataclass(frozen=True, eq=False)
class Value:
    """
    A runtime value.

    Equality follows the payload for matching kinds; values of different
    kinds are never equal.  Comparing two user-defined functions raises
    ``NotComparableError``.
    """
    data: Any
    kind: ValueKind

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Value):
            return NotImplemented
        if self.kind is not other.kind:
            return False
        return _EQUALITY[self.kind](self.data, other.data)

    def __repr__(self) -> str:
        return f"Value({self.kind.value}, {format_value(self)})"

    def __str__(self) -> str:
        return format_value(self)


# Convenience constructors

def pubkey_val(key: Any) -> Value:
    """Create a public key value from an embit ``Key``."""
    return Value(key, ValueKind.PUBKEY)


def bytes_val(data: bytes) -> Value:
    return Value(bytes(data), ValueKind.BYTES)


def number_val(n: int) -> Value:
    """Create a number value, rejecting results outside the signed 64-bit range."""
    n = int(n)
    if not I64_MIN <= n <= I64_MAX:
        raise ArithmeticOverflowError(f"{n} does not fit in 64 bits")
    return Value(n, ValueKind.NUMBER)


def bool_val(b: bool) -> Value:
    return Value(bool(b), ValueKind.BOOL)


def datetime_val(text: str) -> Value:
    return Value(str(text), ValueKind.DATETIME)


def duration_val(duration: timelock.Duration) -> Value:
    return Value(duration, ValueKind.DURATION)


def policy_val(p: policies.Policy) -> Value:
    return Value(p, ValueKind.POLICY)


def withprob_val(weight: int, p: policies.Policy) -> Value:
    return Value((int(weight), p), ValueKind.WITHPROB)


def miniscript_val(ms: Any) -> Value:
    return Value(ms, ValueKind.MINISCRIPT)


def descriptor_val(desc: Any) -> Value:
    return Value(desc, ValueKind.DESCRIPTOR)


def script_val(raw: bytes) -> Value:
    return Value(bytes(raw), ValueKind.SCRIPT)


def address_val(addr: str) -> Value:
    return Value(str(addr), ValueKind.ADDRESS)


def function_val(func: Any) -> Value:
    """Wrap a ``UserFunction`` or ``NativeFunction``."""
    return Value(func, ValueKind.FUNCTION)


def array_val(items: Iterable[Value]) -> Value:
    return Value(tuple(items), ValueKind.ARRAY)


def network_val(name: str) -> Value:
    return Value(name, ValueKind.NETWORK)


# =============================================================================
# Display and equality
# =============================================================================

def format_value(value: Value, indent: int = 0) -> str:
    """Render a value the way the REPL and the CLI print it."""
    kind = value.kind
    if kind is ValueKind.BYTES:
        return "0x" + value.data.hex()
    if kind is ValueKind.BOOL:
        return "true" if value.data else "false"
    if kind is ValueKind.SCRIPT:
        return value.data.hex()
    if kind is ValueKind.WITHPROB:
        weight, p = value.data
        return f"{weight}@{p}"
    if kind is ValueKind.NETWORK:
        return NETWORK_DISPLAY.get(value.data, value.data)
    if kind is ValueKind.ARRAY:
        if not value.data:
            return "[]"
        pad = "  " * (indent + 1)
        inner = ",\n".join(pad + format_value(item, indent + 1) for item in value.data)
        return "[\n" + inner + "\n" + "  " * indent + "]"
    return str(value.data)


def _same_text(a: Any, b: Any) -> bool:
    return str(a) == str(b)


def _same_payload(a: Any, b: Any) -> bool:
    return a == b


def _same_function(a: Any, b: Any) -> bool:
    return a.same_as(b)


def _same_items(a: Tuple[Value, ...], b: Tuple[Value, ...]) -> bool:
    return len(a) == len(b) and all(x == y for x, y in zip(a, b))


_EQUALITY: Dict[ValueKind, Callable[[Any, Any], bool]] = {
    ValueKind.PUBKEY: _same_text,
    ValueKind.BYTES: _same_payload,
    ValueKind.NUMBER: _same_payload,
    ValueKind.BOOL: _same_payload,
    ValueKind.DATETIME: _same_payload,
    ValueKind.DURATION: _same_payload,
    ValueKind.POLICY: _same_payload,
    ValueKind.WITHPROB: _same_payload,
    ValueKind.MINISCRIPT: _same_text,
    ValueKind.DESCRIPTOR: _same_text,
    ValueKind.SCRIPT: _same_payload,
    ValueKind.ADDRESS: _same_payload,
    ValueKind.FUNCTION: _same_function,
    ValueKind.ARRAY: _same_items,
    ValueKind.NETWORK: _same_payload,
}
if set(_EQUALITY) != ALL_KINDS:
    raise RuntimeError(f"equality table misses: {sorted(k.value for k in ALL_KINDS - set(_EQUALITY))}")


# =============================================================================
# Coercions
# =============================================================================

@contextmanager
def translate_domain_errors() -> Iterator[None]:
    """Re-raise failures from the domain layer as evaluation errors."""
    try:
        yield
    except descriptors.KeyValueError as e:
        raise KeyParseError(e.text, e.reason) from e
    except descriptors.DescriptorValueError as e:
        raise DescriptorError(str(e)) from e
    except policies.PolicyError as e:
        raise CompileError(str(e)) from e
    except timelock.TimelockValueError as e:
        raise TimelockError(str(e)) from e


_Handler = Callable[[Value], Any]


class Coercion:
    """
    Conversion of any ``Value`` to one target kind.

    ``handlers`` maps the accepted kinds to conversion functions; ``rejects``
    lists every other kind explicitly.  Together they must cover all kinds.
    """

    def __init__(self, target: str, error_cls: Type[ConversionError],
                 handlers: Dict[ValueKind, _Handler], rejects: Iterable[ValueKind]):
        rejected = frozenset(rejects)
        missing = ALL_KINDS - set(handlers) - rejected
        overlap = set(handlers) & rejected
        if missing or overlap:
            raise RuntimeError(
                f"coercion to {target} is not exhaustive: "
                f"missing={sorted(k.value for k in missing)} overlap={sorted(k.value for k in overlap)}"
            )
        self.target = target
        self.error_cls = error_cls
        self.handlers = dict(handlers)

    def accepts(self, kind: ValueKind) -> bool:
        return kind in self.handlers

    def __call__(self, value: Value) -> Any:
        handler = self.handlers.get(value.kind)
        if handler is None:
            raise self.error_cls(value.kind.value)
        with translate_domain_errors():
            return handler(value)


def _payload(value: Value) -> Any:
    return value.data


into_number = Coercion(
    "number", NotNumberError,
    {ValueKind.NUMBER: _payload},
    rejects=[
        ValueKind.PUBKEY, ValueKind.BYTES, ValueKind.BOOL, ValueKind.DATETIME,
        ValueKind.DURATION, ValueKind.POLICY, ValueKind.WITHPROB, ValueKind.MINISCRIPT,
        ValueKind.DESCRIPTOR, ValueKind.SCRIPT, ValueKind.ADDRESS, ValueKind.FUNCTION,
        ValueKind.ARRAY, ValueKind.NETWORK,
    ],
)

into_bool = Coercion(
    "bool", NotBoolError,
    {ValueKind.BOOL: _payload},
    rejects=[
        ValueKind.PUBKEY, ValueKind.BYTES, ValueKind.NUMBER, ValueKind.DATETIME,
        ValueKind.DURATION, ValueKind.POLICY, ValueKind.WITHPROB, ValueKind.MINISCRIPT,
        ValueKind.DESCRIPTOR, ValueKind.SCRIPT, ValueKind.ADDRESS, ValueKind.FUNCTION,
        ValueKind.ARRAY, ValueKind.NETWORK,
    ],
)

into_array = Coercion(
    "array", NotArrayError,
    {ValueKind.ARRAY: _payload},
    rejects=[
        ValueKind.PUBKEY, ValueKind.BYTES, ValueKind.NUMBER, ValueKind.BOOL,
        ValueKind.DATETIME, ValueKind.DURATION, ValueKind.POLICY, ValueKind.WITHPROB,
        ValueKind.MINISCRIPT, ValueKind.DESCRIPTOR, ValueKind.SCRIPT, ValueKind.ADDRESS,
        ValueKind.FUNCTION, ValueKind.NETWORK,
    ],
)

into_function = Coercion(
    "function", NotFunctionError,
    {ValueKind.FUNCTION: _payload},
    rejects=[
        ValueKind.PUBKEY, ValueKind.BYTES, ValueKind.NUMBER, ValueKind.BOOL,
        ValueKind.DATETIME, ValueKind.DURATION, ValueKind.POLICY, ValueKind.WITHPROB,
        ValueKind.MINISCRIPT, ValueKind.DESCRIPTOR, ValueKind.SCRIPT, ValueKind.ADDRESS,
        ValueKind.ARRAY, ValueKind.NETWORK,
    ],
)

into_network = Coercion(
    "network", NotNetworkError,
    {ValueKind.NETWORK: _payload},
    rejects=[
        ValueKind.PUBKEY, ValueKind.BYTES, ValueKind.NUMBER, ValueKind.BOOL,
        ValueKind.DATETIME, ValueKind.DURATION, ValueKind.POLICY, ValueKind.WITHPROB,
        ValueKind.MINISCRIPT, ValueKind.DESCRIPTOR, ValueKind.SCRIPT, ValueKind.ADDRESS,
        ValueKind.FUNCTION, ValueKind.ARRAY,
    ],
)

into_bytes = Coercion(
    "bytes", NotBytesError,
    {ValueKind.BYTES: _payload},
    rejects=[
        ValueKind.PUBKEY, ValueKind.NUMBER, ValueKind.BOOL, ValueKind.DATETIME,
        ValueKind.DURATION, ValueKind.POLICY, ValueKind.WITHPROB, ValueKind.MINISCRIPT,
        ValueKind.DESCRIPTOR, ValueKind.SCRIPT, ValueKind.ADDRESS, ValueKind.FUNCTION,
        ValueKind.ARRAY, ValueKind.NETWORK,
    ],
)

_hash_bytes = Coercion(
    "hash bytes", NotHashLikeError,
    {ValueKind.BYTES: _payload},
    rejects=[
        ValueKind.PUBKEY, ValueKind.NUMBER, ValueKind.BOOL, ValueKind.DATETIME,
        ValueKind.DURATION, ValueKind.POLICY, ValueKind.WITHPROB, ValueKind.MINISCRIPT,
        ValueKind.DESCRIPTOR, ValueKind.SCRIPT, ValueKind.ADDRESS, ValueKind.FUNCTION,
        ValueKind.ARRAY, ValueKind.NETWORK,
    ],
)

into_key = Coercion(
    "public key", NotKeyLikeError,
    {
        ValueKind.PUBKEY: _payload,
        ValueKind.BYTES: lambda v: descriptors.key_from_bytes(v.data),
    },
    rejects=[
        ValueKind.NUMBER, ValueKind.BOOL, ValueKind.DATETIME, ValueKind.DURATION,
        ValueKind.POLICY, ValueKind.WITHPROB, ValueKind.MINISCRIPT, ValueKind.DESCRIPTOR,
        ValueKind.SCRIPT, ValueKind.ADDRESS, ValueKind.FUNCTION, ValueKind.ARRAY,
        ValueKind.NETWORK,
    ],
)


def _policy_from_array(value: Value) -> policies.Policy:
    return policies.all_of([into_policy(item) for item in value.data])


into_policy = Coercion(
    "policy", NotPolicyLikeError,
    {
        ValueKind.POLICY: _payload,
        ValueKind.ARRAY: _policy_from_array,
    },
    rejects=[
        ValueKind.PUBKEY, ValueKind.BYTES, ValueKind.NUMBER, ValueKind.BOOL,
        ValueKind.DATETIME, ValueKind.DURATION, ValueKind.WITHPROB, ValueKind.MINISCRIPT,
        ValueKind.DESCRIPTOR, ValueKind.SCRIPT, ValueKind.ADDRESS, ValueKind.FUNCTION,
        ValueKind.NETWORK,
    ],
)

into_weighted_policy = Coercion(
    "policy", NotPolicyLikeError,
    {
        ValueKind.WITHPROB: _payload,
        ValueKind.POLICY: lambda v: (1, v.data),
        ValueKind.ARRAY: lambda v: (1, _policy_from_array(v)),
    },
    rejects=[
        ValueKind.PUBKEY, ValueKind.BYTES, ValueKind.NUMBER, ValueKind.BOOL,
        ValueKind.DATETIME, ValueKind.DURATION, ValueKind.MINISCRIPT, ValueKind.DESCRIPTOR,
        ValueKind.SCRIPT, ValueKind.ADDRESS, ValueKind.FUNCTION, ValueKind.NETWORK,
    ],
)


def _compile(value: Value) -> Any:
    return descriptors.parse_miniscript(policies.compile_policy(value.data))


into_miniscript = Coercion(
    "miniscript", NotMiniscriptLikeError,
    {
        ValueKind.MINISCRIPT: _payload,
        ValueKind.POLICY: _compile,
    },
    rejects=[
        ValueKind.PUBKEY, ValueKind.BYTES, ValueKind.NUMBER, ValueKind.BOOL,
        ValueKind.DATETIME, ValueKind.DURATION, ValueKind.WITHPROB, ValueKind.DESCRIPTOR,
        ValueKind.SCRIPT, ValueKind.ADDRESS, ValueKind.FUNCTION, ValueKind.ARRAY,
        ValueKind.NETWORK,
    ],
)

into_descriptor = Coercion(
    "descriptor", NotDescriptorLikeError,
    {
        ValueKind.DESCRIPTOR: _payload,
        ValueKind.MINISCRIPT: lambda v: descriptors.wsh(v.data),
        ValueKind.POLICY: lambda v: descriptors.wsh(_compile(v)),
        ValueKind.PUBKEY: lambda v: descriptors.wpkh(v.data),
    },
    rejects=[
        ValueKind.BYTES, ValueKind.NUMBER, ValueKind.BOOL, ValueKind.DATETIME,
        ValueKind.DURATION, ValueKind.WITHPROB, ValueKind.SCRIPT, ValueKind.ADDRESS,
        ValueKind.FUNCTION, ValueKind.ARRAY, ValueKind.NETWORK,
    ],
)


def _script_from_array(value: Value) -> bytes:
    return b"".join(into_script(item) for item in value.data)


into_script = Coercion(
    "script", NotScriptLikeError,
    {
        ValueKind.SCRIPT: _payload,
        # Descriptor-like values use the script executed when spending
        ValueKind.DESCRIPTOR: lambda v: descriptors.explicit_script(v.data),
        ValueKind.MINISCRIPT: lambda v: descriptors.explicit_script(into_descriptor(v)),
        ValueKind.POLICY: lambda v: descriptors.explicit_script(into_descriptor(v)),
        ValueKind.NUMBER: lambda v: scripts.push_int(v.data),
        ValueKind.BOOL: lambda v: scripts.push_int(int(v.data)),
        ValueKind.BYTES: lambda v: scripts.push_data(v.data),
        ValueKind.PUBKEY: lambda v: scripts.push_data(descriptors.key_sec(v.data)),
        ValueKind.DURATION: lambda v: scripts.push_int(timelock.duration_to_sequence(v.data)),
        ValueKind.DATETIME: lambda v: scripts.push_int(timelock.parse_datetime(v.data)),
        ValueKind.ARRAY: _script_from_array,
    },
    rejects=[
        ValueKind.WITHPROB, ValueKind.ADDRESS, ValueKind.FUNCTION, ValueKind.NETWORK,
    ],
)


def into_usize(value: Value) -> int:
    """Convert to a non-negative integer (indexes, derivation steps, thresholds)."""
    n = into_number(value)
    if n < 0:
        raise InvalidUsizeError(value.kind.value, f"{n} is negative")
    return n


def into_hash(value: Value, length: int) -> bytes:
    """Convert to a hash digest of exactly ``length`` bytes."""
    data = _hash_bytes(value)
    if len(data) != length:
        raise HashLengthError(length, len(data))
    return data


def into_script_pubkey(value: Value) -> bytes:
    """The output script paying to a descriptor-like value."""
    desc = into_descriptor(value)
    with translate_domain_errors():
        return descriptors.script_pubkey(desc)


def into_policies(values: Sequence[Value]) -> List[policies.Policy]:
    return [into_policy(v) for v in values]
