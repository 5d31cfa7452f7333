"""
Keys, miniscript and output descriptors, backed by embit.

Everything that touches embit goes through this module; embit failures are
re-raised as ``DescriptorValueError`` (or ``KeyValueError`` for keys) so the
evaluator can report them with its own error types.

Deriving from a key appends steps to its derivation path, so ``xpub.../0/*``
stays in the shape a user could have written by hand. Deriving a descriptor
resolves its keys to concrete children with their origin attached.
"""

from contextlib import contextmanager
from typing import Iterator, Optional, Sequence

from embit.base import EmbitError
from embit.descriptor import Descriptor
from embit.descriptor.arguments import AllowedDerivation, Key
from embit.descriptor.miniscript import Miniscript
from embit.networks import NETWORKS
from embit.script import Script

HARDENED_INDEX = 0x80000000
COMPRESSED_KEY_SIZE = 33

NETWORK_ALIASES = {
    "mainnet": "main",
    "bitcoin": "main",
    "testnet": "test",
}


class DescriptorValueError(ValueError):
    """Raised when embit rejects a key, miniscript or descriptor."""


class KeyValueError(DescriptorValueError):
    def __init__(self, text: str, reason: str):
        self.text = text
        self.reason = reason
        super().__init__(f"invalid public key {text!r}: {reason}")


@contextmanager
def _embit_errors(context: str) -> Iterator[None]:
    try:
        yield
    except (EmbitError, ValueError, IndexError) as e:
        if isinstance(e, DescriptorValueError):
            raise
        raise DescriptorValueError(f"{context}: {e}") from e


def network_params(name: str) -> dict:
    """embit network parameters for ``name`` (``main``, ``test``, ``signet``, ``regtest``)."""
    name = NETWORK_ALIASES.get(name, name)
    if name not in NETWORKS:
        raise DescriptorValueError(f"unknown network {name!r}")
    return NETWORKS[name]


# --- Keys ---

def parse_key(text: str) -> Key:
    """Parse a hex public key or an extended key with optional derivation path."""
    try:
        return Key.from_string(text)
    except (EmbitError, ValueError, IndexError) as e:
        raise KeyValueError(text, str(e) or type(e).__name__) from e


def key_from_bytes(data: bytes) -> Key:
    """Parse a 33-byte compressed public key; origin information is never attached."""
    if len(data) != COMPRESSED_KEY_SIZE:
        raise KeyValueError(data.hex(), f"expected {COMPRESSED_KEY_SIZE} bytes, got {len(data)}")
    return parse_key(data.hex())


def is_extended(key: Key) -> bool:
    """True for xpub/tpub keys, False for plain hex public keys."""
    return key.is_extended


def is_wildcard(item) -> bool:
    """True for keys or descriptors still containing a wildcard or multipath step."""
    if item.is_wildcard:
        return True
    keys = item.keys if isinstance(item, Descriptor) else [item]
    return any(key.branches is not None for key in keys)


def derive_key(key: Key, path: Sequence[int], wildcard: bool) -> Key:
    """Append ``path`` to an extended key, ending in ``/*`` when ``wildcard`` is set.

    An existing trailing wildcard is replaced by the new steps.
    """
    indexes = list(key.allowed_derivation.indexes) if key.allowed_derivation else []
    if indexes and indexes[-1] is None:
        indexes.pop()
    indexes.extend(path)
    if wildcard:
        indexes.append(None)
    with _embit_errors(f"cannot derive from key {key}"):
        return Key(key.key, key.origin, AllowedDerivation(indexes), key.taproot)


def key_sec(key: Key) -> bytes:
    """Serialized compressed public key, deriving along the key's fixed path."""
    if is_wildcard(key):
        raise DescriptorValueError(f"wildcard key {key} has no single public key")
    with _embit_errors(f"cannot serialize key {key}"):
        if key.can_derive:
            # no wildcard left, the index is never used
            key = key.derive(0)
        return key.get_public_key().sec()


# --- Miniscript and descriptors ---

def parse_miniscript(text: str) -> Miniscript:
    with _embit_errors(f"invalid miniscript {text!r}"):
        return Miniscript.from_string(text)


def parse_descriptor(text: str) -> Descriptor:
    with _embit_errors(f"invalid descriptor {text!r}"):
        return Descriptor.from_string(text)


def wsh(miniscript: Miniscript) -> Descriptor:
    """Wrap a miniscript in a pay-to-witness-script-hash descriptor."""
    return parse_descriptor(f"wsh({miniscript})")


def wpkh(key: Key) -> Descriptor:
    """Single-key pay-to-witness-pubkey-hash descriptor."""
    return parse_descriptor(f"wpkh({key})")


def derive_descriptor(desc: Descriptor, index: int) -> Descriptor:
    """Fill the descriptor's wildcard steps with ``index``."""
    with _embit_errors(f"cannot derive child {index} of {desc}"):
        return desc.derive(index)


def _concrete(desc: Descriptor) -> Descriptor:
    """``desc`` with every key resolved along its fixed derivation path."""
    if is_wildcard(desc):
        raise DescriptorValueError(
            f"descriptor {desc} contains a wildcard; derive a child first"
        )
    # no wildcard left, the index is never used
    return derive_descriptor(desc, 0)


def script_pubkey(desc: Descriptor) -> bytes:
    desc = _concrete(desc)
    with _embit_errors(f"cannot build output script for {desc}"):
        return desc.script_pubkey().data


def explicit_script(desc: Descriptor) -> bytes:
    """The script that is actually executed when spending ``desc``.

    The witness script for ``wsh``; the equivalent pay-to-pubkey-hash script
    for ``wpkh``; the output script itself otherwise.
    """
    desc = _concrete(desc)
    with _embit_errors(f"cannot build script for {desc}"):
        witness_script = desc.witness_script()
        if witness_script is not None:
            return witness_script.data
        spk = desc.script_pubkey().data
    if len(spk) == 22 and spk[:2] == b"\x00\x14":
        return b"\x76\xa9\x14" + spk[2:] + b"\x88\xac"
    return spk


def address(desc: Descriptor, network: str) -> str:
    desc = _concrete(desc)
    params = network_params(network)
    with _embit_errors(f"cannot build address for {desc}"):
        return desc.address(params)


def script_address(raw: bytes, network: str) -> Optional[str]:
    """Address for a standard output script, or None when it has no address form."""
    params = network_params(network)
    try:
        return Script(raw).address(params)
    except (EmbitError, ValueError, IndexError):
        return None
