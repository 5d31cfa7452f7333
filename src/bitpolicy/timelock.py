"""
Relative and absolute timelock helpers.

Relative timelocks (``older``) are encoded as BIP68 sequence numbers; absolute
timelocks (``after``) given as dates become unix timestamps.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Union

SEQUENCE_TYPE_FLAG = 1 << 22        # BIP68: value counts 512-second units
SEQUENCE_GRANULARITY = 512          # seconds per time-based sequence unit
SEQUENCE_MASK = 0xFFFF              # BIP68 relative locks are 16 bits wide
BLOCK_INTERVAL = 600                # target seconds per block
LOCKTIME_THRESHOLD = 500_000_000    # nLockTime values below this are heights

DATETIME_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%Y-%m-%d")


class TimelockValueError(ValueError):
    """Raised when a duration or date cannot be expressed as a timelock."""


@dataclass(frozen=True)
class BlockHeight:
    """A relative timelock measured in blocks."""
    blocks: int

    def __str__(self) -> str:
        return f"{self.blocks} blocks"


@dataclass(frozen=True)
class BlockTime:
    """A relative timelock measured in seconds.

    When ``heightwise`` is set the duration is converted into an approximate
    block count instead of 512-second units.
    """
    seconds: int
    heightwise: bool = False

    def __str__(self) -> str:
        text = f"{self.seconds} seconds"
        return f"{text} heightwise" if self.heightwise else text


Duration = Union[BlockHeight, BlockTime]


def duration_to_sequence(duration: Duration) -> int:
    """Encode ``duration`` as a BIP68 sequence number.

    Time durations are rounded up so the lock is never shorter than requested.
    """
    if isinstance(duration, BlockHeight):
        blocks = duration.blocks
        flag = 0
    elif duration.heightwise:
        blocks = math.ceil(duration.seconds / BLOCK_INTERVAL)
        flag = 0
    else:
        blocks = math.ceil(duration.seconds / SEQUENCE_GRANULARITY)
        flag = SEQUENCE_TYPE_FLAG

    if blocks < 1:
        raise TimelockValueError(f"relative timelock must be positive, got {duration}")
    if blocks > SEQUENCE_MASK:
        raise TimelockValueError(f"relative timelock too long: {duration}")
    return blocks | flag


def parse_datetime(text: str) -> int:
    """Parse a UTC date/time literal into a unix timestamp usable with ``after``."""
    normalized = text.replace("T", " ")
    for fmt in DATETIME_FORMATS:
        try:
            parsed = datetime.strptime(normalized, fmt)
        except ValueError:
            continue
        timestamp = int(parsed.replace(tzinfo=timezone.utc).timestamp())
        if timestamp < LOCKTIME_THRESHOLD:
            raise TimelockValueError(
                f"{text} is before {LOCKTIME_THRESHOLD} and would be read as a block height"
            )
        return timestamp
    raise TimelockValueError(f"unrecognised date/time {text!r}")
