"""
Built-in function registry for the DSL interpreter.

Maps DSL function names to native implementations.  Every native receives the
evaluated argument list and the call-site scope, so higher-order natives such
as ``map`` can call back into user functions.
"""

from typing import Callable, Dict, List, Optional, Sequence, Tuple

from embit import hashes

from .values import (
    Value, ValueKind,
    number_val, bytes_val, policy_val, withprob_val, miniscript_val,
    descriptor_val, script_val, address_val, array_val, network_val,
    into_number, into_usize, into_bool, into_array, into_bytes, into_key,
    into_policy, into_policies, into_weighted_policy, into_miniscript,
    into_descriptor, into_script, into_script_pubkey, into_hash, into_network,
    translate_domain_errors,
)
from .context import Scope
from .function import NativeFunction, NativeImpl, call_value
from ..errors import ArgumentMismatchError, DescriptorError, NotArrayError
from ... import descriptors, policy as policies, script as scripts, timelock
from ...config import NETWORK_NAMES

# Branch weight bound to ``likely``, as in ``likely@pk(A) || pk(B)``
LIKELY_WEIGHT = 10

NETWORK_CONSTANTS = {
    "mainnet": "main",
    "testnet": "test",
    "signet": "signet",
    "regtest": "regtest",
}


def _expect_args(args: Sequence[Value], *counts: int) -> None:
    """Check the argument count against the accepted counts."""
    if len(args) not in counts:
        raise ArgumentMismatchError(len(args), counts[0])


def _expect_at_least(args: Sequence[Value], minimum: int) -> None:
    if len(args) < minimum:
        raise ArgumentMismatchError(len(args), minimum)


class BuiltinRegistry:
    """
    Registry of all native functions and constants.

    Functions are registered by name in groups; ``populate`` binds all of
    them into a root scope.
    """

    def __init__(self):
        self._functions: Dict[str, NativeFunction] = {}
        self._constants: Dict[str, Value] = {}
        self._register_all()

    def get_function(self, name: str) -> Optional[NativeFunction]:
        """Look up a function by name."""
        return self._functions.get(name)

    def list_functions(self, category: Optional[str] = None) -> List[NativeFunction]:
        """All registered functions, optionally restricted to one category."""
        funcs = sorted(self._functions.values(), key=lambda f: f.ident)
        if category is not None:
            funcs = [f for f in funcs if f.category == category]
        return funcs

    def categories(self) -> List[str]:
        return sorted({f.category for f in self._functions.values()})

    @property
    def constants(self) -> Dict[str, Value]:
        return dict(self._constants)

    def register(self, func: NativeFunction) -> None:
        """Register a function."""
        self._functions[func.ident] = func

    def register_constant(self, name: str, value: Value) -> None:
        self._constants[name] = value

    def _register_group(self, category: str,
                        entries: List[Tuple[str, str, NativeImpl, str]]) -> None:
        for name, signature, impl, doc in entries:
            self.register(NativeFunction(name, impl, doc=doc, signature=signature, category=category))

    def populate(self, scope: Scope, network: str = "main") -> None:
        """
        Bind every function and constant into ``scope``.

        ``network`` is bound as the default network used by ``address()``.
        """
        for name, func in self._functions.items():
            scope.set(name, Value(func, ValueKind.FUNCTION))
        for name, value in self._constants.items():
            scope.set(name, value)
        scope.set("network", network_val(network))

    def _register_all(self) -> None:
        """Register all native functions and constants."""
        self._register_policy_functions()
        self._register_compile_functions()
        self._register_hash_functions()
        self._register_utility_functions()
        self._register_constants()

    # --- Policy Functions ---

    def _register_policy_functions(self) -> None:
        """Register the policy fragment constructors and combinators."""

        def _pk(args: List[Value], scope: Scope) -> Value:
            _expect_args(args, 1)
            key = into_key(args[0])
            return policy_val(policies.key_policy(str(key)))

        def _after(args: List[Value], scope: Scope) -> Value:
            _expect_args(args, 1)
            with translate_domain_errors():
                if args[0].kind is ValueKind.DATETIME:
                    locktime = timelock.parse_datetime(args[0].data)
                else:
                    locktime = into_number(args[0])
                return policy_val(policies.after_policy(locktime))

        def _older(args: List[Value], scope: Scope) -> Value:
            _expect_args(args, 1)
            with translate_domain_errors():
                if args[0].kind is ValueKind.DURATION:
                    sequence = timelock.duration_to_sequence(args[0].data)
                else:
                    sequence = into_number(args[0])
                return policy_val(policies.older_policy(sequence))

        def _hash_fragment(function: str) -> NativeImpl:
            def impl(args: List[Value], scope: Scope) -> Value:
                _expect_args(args, 1)
                digest = into_hash(args[0], policies.HASH_LENGTHS[function])
                with translate_domain_errors():
                    return policy_val(policies.hash_policy(function, digest))
            return impl

        def _and(args: List[Value], scope: Scope) -> Value:
            _expect_at_least(args, 2)
            subs = into_policies(args)
            with translate_domain_errors():
                return policy_val(policies.and_policy(subs))

        def _or(args: List[Value], scope: Scope) -> Value:
            _expect_at_least(args, 2)
            branches = [into_weighted_policy(a) for a in args]
            with translate_domain_errors():
                return policy_val(policies.or_policy(branches))

        def _thresh(args: List[Value], scope: Scope) -> Value:
            _expect_at_least(args, 2)
            k = into_usize(args[0])
            if len(args) == 2 and args[1].kind is ValueKind.ARRAY:
                items = list(args[1].data)
            else:
                items = list(args[1:])
            with translate_domain_errors():
                # Weighted branches only make sense for a 1-of-n threshold
                if k == 1 and any(v.kind is ValueKind.WITHPROB for v in items) and len(items) > 1:
                    return policy_val(policies.or_policy([into_weighted_policy(v) for v in items]))
                return policy_val(policies.thresh_policy(k, into_policies(items)))

        def _prob(args: List[Value], scope: Scope) -> Value:
            _expect_args(args, 2)
            weight = into_usize(args[0])
            return withprob_val(weight, into_policy(args[1]))

        def _all(args: List[Value], scope: Scope) -> Value:
            _expect_args(args, 1)
            subs = into_policies(into_array(args[0]))
            with translate_domain_errors():
                return policy_val(policies.all_of(subs))

        def _any(args: List[Value], scope: Scope) -> Value:
            _expect_args(args, 1)
            subs = into_policies(into_array(args[0]))
            with translate_domain_errors():
                return policy_val(policies.any_of(subs))

        self._register_group("policy", [
            ("pk", "pk(key)", _pk, "Require a signature for the key"),
            ("after", "after(height|datetime)", _after, "Absolute timelock (block height or date)"),
            ("older", "older(blocks|duration)", _older, "Relative timelock (blocks or a duration)"),
            ("sha256", "sha256(hash32)", _hash_fragment("sha256"), "Require a SHA256 preimage"),
            ("hash256", "hash256(hash32)", _hash_fragment("hash256"), "Require a double-SHA256 preimage"),
            ("ripemd160", "ripemd160(hash20)", _hash_fragment("ripemd160"), "Require a RIPEMD160 preimage"),
            ("hash160", "hash160(hash20)", _hash_fragment("hash160"), "Require a HASH160 preimage"),
            ("and", "and(a, b, ...)", _and, "All sub-policies must be satisfied"),
            ("or", "or(a, b, ...)", _or, "Any sub-policy may be satisfied; weights mark likelier branches"),
            ("thresh", "thresh(k, [policies]) | thresh(k, p1, ..., pn)", _thresh,
             "At least k of the sub-policies must be satisfied"),
            ("prob", "prob(weight, policy)", _prob, "Attach a probability weight to a policy"),
            ("all", "all([policies])", _all, "Every policy in the array"),
            ("any", "any([policies])", _any, "Any one policy in the array"),
        ])

    # --- Compilation and Descriptor Functions ---

    def _register_compile_functions(self) -> None:
        """Register miniscript compilation, descriptors, scripts and addresses."""

        def _miniscript(args: List[Value], scope: Scope) -> Value:
            _expect_args(args, 1)
            return miniscript_val(into_miniscript(args[0]))

        def _wsh(args: List[Value], scope: Scope) -> Value:
            _expect_args(args, 1)
            ms = into_miniscript(args[0])
            with translate_domain_errors():
                return descriptor_val(descriptors.wsh(ms))

        def _wpkh(args: List[Value], scope: Scope) -> Value:
            _expect_args(args, 1)
            key = into_key(args[0])
            with translate_domain_errors():
                return descriptor_val(descriptors.wpkh(key))

        def _descriptor(args: List[Value], scope: Scope) -> Value:
            _expect_args(args, 1)
            return descriptor_val(into_descriptor(args[0]))

        def _script(args: List[Value], scope: Scope) -> Value:
            _expect_args(args, 1)
            return script_val(into_script(args[0]))

        def _script_pubkey(args: List[Value], scope: Scope) -> Value:
            _expect_args(args, 1)
            return script_val(into_script_pubkey(args[0]))

        def _address(args: List[Value], scope: Scope) -> Value:
            _expect_args(args, 1, 2)
            if len(args) == 2:
                network = into_network(args[1])
            else:
                default = scope.get("network")
                network = into_network(default) if default is not None else NETWORK_NAMES[0]

            target = args[0]
            if target.kind is ValueKind.ADDRESS:
                return target
            with translate_domain_errors():
                if target.kind is ValueKind.SCRIPT:
                    addr = descriptors.script_address(target.data, network)
                    if addr is None:
                        raise DescriptorError("script is not a standard output script")
                    return address_val(addr)
                return address_val(descriptors.address(into_descriptor(target), network))

        self._register_group("compile", [
            ("miniscript", "miniscript(policy)", _miniscript, "Compile a policy to miniscript"),
            ("wsh", "wsh(policy|miniscript)", _wsh, "Pay-to-witness-script-hash descriptor"),
            ("wpkh", "wpkh(key)", _wpkh, "Pay-to-witness-public-key-hash descriptor"),
            ("descriptor", "descriptor(x)", _descriptor, "Coerce a policy, miniscript or key to a descriptor"),
            ("script", "script(x)", _script, "The explicit (witness) script for x"),
            ("scriptPubKey", "scriptPubKey(x)", _script_pubkey, "The output script paying to x"),
            ("address", "address(x[, network])", _address, "The address paying to x"),
        ])

    # --- Hash Functions ---

    def _register_hash_functions(self) -> None:
        """Register hash functions over byte strings."""

        def _hasher(fn: Callable[[bytes], bytes]) -> NativeImpl:
            def impl(args: List[Value], scope: Scope) -> Value:
                _expect_args(args, 1)
                return bytes_val(fn(into_bytes(args[0])))
            return impl

        self._register_group("hash", [
            ("hash_sha256", "hash_sha256(bytes)", _hasher(hashes.sha256), "SHA256 digest"),
            ("hash_sha256d", "hash_sha256d(bytes)", _hasher(hashes.double_sha256), "Double SHA256 digest"),
            ("hash_ripemd160", "hash_ripemd160(bytes)", _hasher(hashes.ripemd160), "RIPEMD160 digest"),
            ("hash_hash160", "hash_hash160(bytes)", _hasher(hashes.hash160), "RIPEMD160 of SHA256"),
        ])

    # --- Utility Functions ---

    def _register_utility_functions(self) -> None:
        """Register utility functions."""

        def _len(args: List[Value], scope: Scope) -> Value:
            _expect_args(args, 1)
            if args[0].kind in (ValueKind.ARRAY, ValueKind.BYTES):
                return number_val(len(args[0].data))
            raise NotArrayError(args[0].kind.value)

        def _map(args: List[Value], scope: Scope) -> Value:
            _expect_args(args, 2)
            items = into_array(args[0])
            return array_val(call_value(args[1], [item], scope) for item in items)

        def _filter(args: List[Value], scope: Scope) -> Value:
            _expect_args(args, 2)
            items = into_array(args[0])
            return array_val(
                item for item in items if into_bool(call_value(args[1], [item], scope))
            )

        def _range(args: List[Value], scope: Scope) -> Value:
            _expect_args(args, 2)
            start, end = into_number(args[0]), into_number(args[1])
            return array_val(number_val(n) for n in range(start, end))

        self._register_group("utility", [
            ("len", "len(array|bytes)", _len, "Number of elements or bytes"),
            ("map", "map(array, fn)", _map, "Apply fn to every element"),
            ("filter", "filter(array, fn)", _filter, "Elements for which fn returns true"),
            ("range", "range(start, end)", _range, "Numbers from start up to (excluding) end"),
        ])

    # --- Constants ---

    def _register_constants(self) -> None:
        for name, network in NETWORK_CONSTANTS.items():
            self.register_constant(name, network_val(network))
        self.register_constant("likely", number_val(LIKELY_WEIGHT))
        for name in sorted(scripts.OPCODES):
            self.register_constant(name, script_val(scripts.opcode(name)))


# Global registry instance
_registry: Optional[BuiltinRegistry] = None


def get_builtin_registry() -> BuiltinRegistry:
    """Get the global builtin registry (lazy initialization)."""
    global _registry
    if _registry is None:
        _registry = BuiltinRegistry()
    return _registry
