"""
Tests for the embit-backed key and descriptor helpers.
"""

import pytest

from embit import bip32

from bitpolicy import descriptors
from bitpolicy.descriptors import DescriptorValueError

KEY_A = "029ffbe722b147f3035c87cb1c60b9a5947dd49c774cc31e94773478711a929ac0"
XPUB = (
    "xpub68Gmy5EdvgibQVfPdqkBBCHxA5htiqg55crXYuXoQRKfDBFA1WEjWgP6LHhwBZeNK1VTsfTFUHCdrfp1bgwQ9xv5ski8PX9rL2dZXvgGDnw"
)


def child_hex(*path):
    """Compressed public key of ``XPUB`` derived along ``path``."""
    return bip32.HDKey.from_base58(XPUB).derive(list(path)).key.sec().hex()


class TestKeys:
    """Key inspection, derivation and serialization."""

    def test_is_extended(self):
        assert descriptors.is_extended(descriptors.parse_key(f"{XPUB}/9/0"))
        assert not descriptors.is_extended(descriptors.parse_key(KEY_A))

    def test_is_wildcard(self):
        assert descriptors.is_wildcard(descriptors.parse_key(f"{XPUB}/0/*"))
        assert not descriptors.is_wildcard(descriptors.parse_key(f"{XPUB}/0/1"))
        assert not descriptors.is_wildcard(descriptors.parse_key(KEY_A))

    def test_derive_key_appends_steps(self):
        key = descriptors.derive_key(descriptors.parse_key(f"{XPUB}/9/0"), [1, 5], False)
        assert str(key) == f"{XPUB}/9/0/1/5"

    def test_derive_key_replaces_trailing_wildcard(self):
        key = descriptors.derive_key(descriptors.parse_key(f"{XPUB}/9/*"), [2], True)
        assert str(key) == f"{XPUB}/9/2/*"
        assert descriptors.is_wildcard(key)

    def test_key_sec_plain(self):
        assert descriptors.key_sec(descriptors.parse_key(KEY_A)).hex() == KEY_A

    def test_key_sec_follows_fixed_path(self):
        key = descriptors.parse_key(f"{XPUB}/9/0")
        assert descriptors.key_sec(key).hex() == child_hex(9, 0)

    def test_key_sec_wildcard_rejected(self):
        with pytest.raises(DescriptorValueError):
            descriptors.key_sec(descriptors.parse_key(f"{XPUB}/*"))


class TestDescriptors:
    """Descriptor derivation and output scripts."""

    def test_is_wildcard(self):
        assert descriptors.is_wildcard(descriptors.parse_descriptor(f"wpkh({XPUB}/0/*)"))
        assert not descriptors.is_wildcard(descriptors.parse_descriptor(f"wpkh({KEY_A})"))

    def test_keyless_descriptor_is_not_wildcard(self):
        assert not descriptors.is_wildcard(descriptors.parse_descriptor("wsh(older(10))"))

    def test_derive_descriptor(self):
        desc = descriptors.derive_descriptor(descriptors.parse_descriptor(f"wpkh({XPUB}/0/*)"), 4)
        assert not descriptors.is_wildcard(desc)
        expected = descriptors.parse_descriptor(f"wpkh({child_hex(0, 4)})")
        assert descriptors.script_pubkey(desc) == descriptors.script_pubkey(expected)

    def test_fixed_path_resolved_for_scripts(self):
        desc = descriptors.parse_descriptor(f"wpkh({XPUB}/9/0)")
        expected = descriptors.parse_descriptor(f"wpkh({child_hex(9, 0)})")
        assert descriptors.script_pubkey(desc) == descriptors.script_pubkey(expected)
        assert descriptors.address(desc, "main") == descriptors.address(expected, "main")

    def test_wildcard_has_no_script(self):
        with pytest.raises(DescriptorValueError):
            descriptors.script_pubkey(descriptors.parse_descriptor(f"wpkh({XPUB}/*)"))

    def test_invalid_descriptor(self):
        with pytest.raises(DescriptorValueError):
            descriptors.parse_descriptor("wsh(nonsense)")
