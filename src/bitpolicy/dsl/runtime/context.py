"""
Scopes for the DSL interpreter.

A scope holds variable bindings and links to its lexical parent.  Blocks and
function calls create child scopes; the depth counter bounds how deeply those
can nest so runaway recursion fails with a DSL error instead of exhausting the
Python stack.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, TYPE_CHECKING

from .values import Value, pubkey_val, bytes_val
from ..errors import RecursionLimitError, VarNotFoundError
from ...config import DEFAULT_MAX_DEPTH, EvalConfig
from ... import descriptors

if TYPE_CHECKING:
    from .builtins import BuiltinRegistry


@dataclass
class Scope:
    """
    A single scope containing variable bindings.

    Scopes form a chain via the `parent` field for lexical scoping.  A child
    is never visible to its parent: bindings made inside a block or a call
    disappear when it finishes.
    """
    variables: Dict[str, Value] = field(default_factory=dict)
    parent: Optional["Scope"] = None
    name: str = "anonymous"  # For debugging
    depth: int = 0
    max_depth: int = DEFAULT_MAX_DEPTH

    def get(self, name: str) -> Optional[Value]:
        """Look up a variable in this scope or parent scopes."""
        scope: Optional[Scope] = self
        while scope is not None:
            if name in scope.variables:
                return scope.variables[name]
            scope = scope.parent
        return None

    def lookup(self, name: str) -> Value:
        """Like ``get`` but raises VarNotFoundError for unbound names."""
        value = self.get(name)
        if value is None:
            raise VarNotFoundError(name)
        return value

    def set(self, name: str, value: Value) -> None:
        """Bind a variable in this scope, shadowing any outer binding."""
        self.variables[name] = value

    def contains(self, name: str) -> bool:
        return self.get(name) is not None

    def child(self, name: str = "block") -> "Scope":
        """Create a nested scope one level deeper than this one."""
        if self.depth + 1 > self.max_depth:
            raise RecursionLimitError(self.max_depth)
        return Scope(parent=self, name=name, depth=self.depth + 1, max_depth=self.max_depth)

    def names(self):
        """All names visible from this scope, innermost binding first."""
        seen = {}
        scope: Optional[Scope] = self
        while scope is not None:
            for key in scope.variables:
                seen.setdefault(key, None)
            scope = scope.parent
        return list(seen)


# Well-known keys and hashes bound by the demo scope
DEMO_KEYS = {
    "A": "029ffbe722b147f3035c87cb1c60b9a5947dd49c774cc31e94773478711a929ac0",
    "B": "025f05815e3a1a8a83bfbb03ce016c9a2ee31066b98f567f6227df1d76ec4bd143",
    "C": "025625f41e4a065efc06d5019cbbd56fe8c07595af1231e7cbc03fafb87ebb71ec",
    "D": "02a27c8b850a00f67da3499b60562673dcf5fdfb82b7e17652a7ac54416812aefd",
    "E": "03e618ec5f384d6e19ca9ebdb8e2119e5bef978285076828ce054e55c4daf473e2",
    "F": "03deae92101c790b12653231439f27b8897264125ecb2f46f48278603102573165",
    "G": "033841045a531e1adf9910a6ec279589a90b3b8a904ee64ffd692bd08a8996c1aa",
    "I": "02aebf2d10b040eb936a6f02f44ee82f8b34f5c1ccb20ff3949c2b28206b7c1068",
    "J": "03d2810d442a784e93133760af5ac05e4eb72364a3257e5a5eafc618ccb15e580a",
    "K": "03a81dca4cde2edf3d193e2b2446b40aa04f33dd11a4599c7fa55415fc274f0f70",
    "L": "029e5de3f2391700fdb5f45aa5db40b953de8bd4a147663b1cd89aa0703a0c2fcf",
    "user_pk": "03c620141755e90c86ec35fe57594e0b4b1a32f09f15bc0a43b06f9feb71c1b06c",
    "service_pk": "02f8b2c15f9e301d7e46169a35088724cbcb264f678d628d615c38ee964f836245",
    "buyer_pk": "03829e91bb8d4df87fea147f98ef5d3e71c7c26204a5ed5de2d1d966938d017ac2",
    "seller_pk": "0215152236dd9f518dd2bba50487857b98bdb4778c3618780a25a0cbc660092185",
    "arbiter_pk": "0203bc5458e2b77b5f5a68a738a57bee0271a27e603100c4110533bf8811c19e2e",
    "ceo_pk": "03e9035b99913ea072be74032489f7d20725ae496f8809b1c1924dbeacf590c5ed",
    "desktop_pk": "02e0e913c8e67ee002ed4a877a54722b0483f999ad49111081318f204f1a470c58",
    "mobile_pk": "02065bf89fb085e06188a885fc191e25469ebd2868b160bd525778eedbe2f987cf",
    "$alice": "xpub68Gmy5EdvgibQVfPdqkBBCHxA5htiqg55crXYuXoQRKfDBFA1WEjWgP6LHhwBZeNK1VTsfTFUHCdrfp1bgwQ9xv5ski8PX9rL2dZXvgGDnw/9/0",
}

DEMO_HASHES = {
    "H": "01ba4719c80b6fe911b091a7c05124b64eeece964e09c058ef8f9805daca546b",
    "H1": "4355a46b19d348dc2f57c046f8ef63d4538ebb93",
}


def create_root_scope(config: Optional[EvalConfig] = None,
                      registry: Optional["BuiltinRegistry"] = None) -> Scope:
    """
    Create the global scope with every native function and constant bound.

    With ``config.demo`` set, the demo keys and hashes are added on top.
    """
    from .builtins import get_builtin_registry

    config = config or EvalConfig()
    registry = registry or get_builtin_registry()
    scope = Scope(name="global", max_depth=config.max_depth)
    registry.populate(scope, network=config.network)
    if config.demo:
        add_demo_bindings(scope)
    return scope


def add_demo_bindings(scope: Scope) -> None:
    """Bind the demo keys ``A``..``L``, the named role keys, ``$alice`` and the hashes ``H``, ``H1``."""
    for name, text in DEMO_KEYS.items():
        scope.set(name, pubkey_val(descriptors.parse_key(text)))
    for name, digest in DEMO_HASHES.items():
        scope.set(name, bytes_val(bytes.fromhex(digest)))


def create_demo_scope(config: Optional[EvalConfig] = None) -> Scope:
    """Root scope with the demo bindings, whatever ``config.demo`` says."""
    config = (config or EvalConfig()).replace(demo=True)
    return create_root_scope(config)
