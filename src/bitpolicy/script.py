"""Raw script construction and disassembly on top of verystable's ``CScript``."""

from typing import Dict

from verystable.core.script import CScript, CScriptInvalidError, CScriptOp, OPCODE_NAMES

# Opcode name -> byte value, plus the common aliases
OPCODES: Dict[str, int] = {name: int(op) for op, name in OPCODE_NAMES.items()}
_ALIASES = {
    "OP_FALSE": "OP_0",
    "OP_TRUE": "OP_1",
    "OP_CLTV": "OP_CHECKLOCKTIMEVERIFY",
    "OP_CSV": "OP_CHECKSEQUENCEVERIFY",
}
for _alias, _target in _ALIASES.items():
    if _target in OPCODES:
        OPCODES.setdefault(_alias, OPCODES[_target])


def push_int(n: int) -> bytes:
    """Minimal push of a script number (OP_0..OP_16, OP_1NEGATE or data)."""
    return bytes(CScript([int(n)]))


def push_data(data: bytes) -> bytes:
    """Push ``data`` with the smallest PUSHDATA prefix."""
    return bytes(CScript([bytes(data)]))


def opcode(name: str) -> bytes:
    """Single-opcode script for ``name``; raises KeyError for unknown names."""
    return bytes([OPCODES[name]])


def disassemble(raw: bytes) -> str:
    """Render a script as space-separated asm.

    Data pushes are shown as hex, small integers as decimal numbers. A script
    that cannot be decoded (truncated push) falls back to plain hex.
    """
    parts = []
    try:
        for element in CScript(raw):
            if isinstance(element, CScriptOp):
                parts.append(repr(element))
            elif isinstance(element, int):
                parts.append(str(element))
            elif element:
                parts.append(element.hex())
            else:
                parts.append("0")
    except CScriptInvalidError:
        return raw.hex()
    return " ".join(parts)
