"""
Spending-policy trees and a straightforward policy-to-miniscript compiler.

A policy is an immutable tree of leaves (key checks, timelocks, hash locks)
combined with ``and``/``or``/``thresh``.  ``str()`` renders the usual
concrete-policy text, e.g. ``or(9@pk(A),1@and(pk(B),older(144)))``.

The compiler is deliberately naive: it does not search for the cheapest
miniscript, it only produces a valid one.

    pk(K)        -> c:pk_k(K)
    and(A,B)     -> and_v(v:A,B)
    or(A,B)      -> or_i(A,B)          (likelier branch first)
    thresh(k,..) -> multi(k,...) when every branch is a key,
                    an and_v chain when k == n, an or_i chain when k == 1,
                    otherwise an or_i over every k-combination of and_v chains
"""

from __future__ import annotations

from dataclasses import dataclass
from itertools import combinations
from math import comb
from typing import List, Sequence, Tuple

MAX_MULTI_KEYS = 20
MAX_THRESH_COMBINATIONS = 64
MAX_LOCK_VALUE = 2 ** 31 - 1

HASH_LENGTHS = {
    "sha256": 32,
    "hash256": 32,
    "ripemd160": 20,
    "hash160": 20,
}


class PolicyError(ValueError):
    """Raised for policies that are malformed or cannot be compiled."""


class Policy:
    """Base class for policy tree nodes."""

    def children(self) -> Tuple["Policy", ...]:
        return ()

    def keys(self) -> List[str]:
        """Every key referenced by the policy, in order of appearance."""
        found: List[str] = []
        for child in self.children():
            for key in child.keys():
                if key not in found:
                    found.append(key)
        return found


@dataclass(frozen=True)
class KeyPolicy(Policy):
    key: str

    def keys(self) -> List[str]:
        return [self.key]

    def __str__(self) -> str:
        return f"pk({self.key})"


@dataclass(frozen=True)
class AfterPolicy(Policy):
    """Absolute timelock (block height or unix timestamp)."""
    locktime: int

    def __str__(self) -> str:
        return f"after({self.locktime})"


@dataclass(frozen=True)
class OlderPolicy(Policy):
    """Relative timelock as a BIP68 sequence number."""
    sequence: int

    def __str__(self) -> str:
        return f"older({self.sequence})"


@dataclass(frozen=True)
class HashPolicy(Policy):
    """Hash preimage lock; ``function`` is one of ``HASH_LENGTHS``."""
    function: str
    digest: bytes

    def __str__(self) -> str:
        return f"{self.function}({self.digest.hex()})"


@dataclass(frozen=True)
class AndPolicy(Policy):
    subs: Tuple[Policy, ...]

    def children(self) -> Tuple[Policy, ...]:
        return self.subs

    def __str__(self) -> str:
        return f"and({','.join(str(s) for s in self.subs)})"


@dataclass(frozen=True)
class OrPolicy(Policy):
    """Disjunction of weighted branches; weights bias branch ordering only."""
    branches: Tuple[Tuple[int, Policy], ...]

    def children(self) -> Tuple[Policy, ...]:
        return tuple(p for _, p in self.branches)

    def __str__(self) -> str:
        weighted = any(w != 1 for w, _ in self.branches)
        parts = [f"{w}@{p}" if weighted else str(p) for w, p in self.branches]
        return f"or({','.join(parts)})"


@dataclass(frozen=True)
class ThreshPolicy(Policy):
    k: int
    subs: Tuple[Policy, ...]

    def children(self) -> Tuple[Policy, ...]:
        return self.subs

    def __str__(self) -> str:
        return f"thresh({self.k},{','.join(str(s) for s in self.subs)})"


# --- Constructors with validation ---

def key_policy(key: str) -> Policy:
    return KeyPolicy(key)


def after_policy(locktime: int) -> Policy:
    if not 1 <= locktime <= MAX_LOCK_VALUE:
        raise PolicyError(f"after() locktime out of range: {locktime}")
    return AfterPolicy(locktime)


def older_policy(sequence: int) -> Policy:
    if not 1 <= sequence <= MAX_LOCK_VALUE:
        raise PolicyError(f"older() sequence out of range: {sequence}")
    return OlderPolicy(sequence)


def hash_policy(function: str, digest: bytes) -> Policy:
    expected = HASH_LENGTHS[function]
    if len(digest) != expected:
        raise PolicyError(f"{function}() expects {expected} bytes, got {len(digest)}")
    return HashPolicy(function, bytes(digest))


def and_policy(subs: Sequence[Policy]) -> Policy:
    if len(subs) < 2:
        raise PolicyError("and() needs at least two sub-policies")
    return AndPolicy(tuple(subs))


def or_policy(branches: Sequence[Tuple[int, Policy]]) -> Policy:
    if len(branches) < 2:
        raise PolicyError("or() needs at least two sub-policies")
    for weight, _ in branches:
        if weight < 1:
            raise PolicyError(f"branch weights must be positive, got {weight}")
    return OrPolicy(tuple(branches))


def thresh_policy(k: int, subs: Sequence[Policy]) -> Policy:
    if not subs:
        raise PolicyError("thresh() needs at least one sub-policy")
    if not 1 <= k <= len(subs):
        raise PolicyError(f"threshold {k} out of range for {len(subs)} sub-policies")
    return ThreshPolicy(k, tuple(subs))


def all_of(subs: Sequence[Policy]) -> Policy:
    """Require every sub-policy: the policy itself, ``and`` or ``thresh(n, ...)``."""
    if not subs:
        raise PolicyError("all() of an empty list")
    if len(subs) == 1:
        return subs[0]
    if len(subs) == 2:
        return and_policy(subs)
    return thresh_policy(len(subs), subs)


def any_of(subs: Sequence[Policy]) -> Policy:
    """Require any one sub-policy: the policy itself, ``or`` or ``thresh(1, ...)``."""
    if not subs:
        raise PolicyError("any() of an empty list")
    if len(subs) == 1:
        return subs[0]
    if len(subs) == 2:
        return or_policy([(1, s) for s in subs])
    return thresh_policy(1, subs)


# --- Compilation ---

@dataclass(frozen=True)
class _Fragment:
    """A compiled miniscript expression with its pending wrapper letters."""
    wrappers: str
    body: str

    def wrap(self, letters: str) -> "_Fragment":
        return _Fragment(letters + self.wrappers, self.body)

    def __str__(self) -> str:
        if self.wrappers:
            return f"{self.wrappers}:{self.body}"
        return self.body


def _and_chain(frags: Sequence[_Fragment]) -> _Fragment:
    result = frags[-1]
    for frag in reversed(frags[:-1]):
        result = _Fragment("", f"and_v({frag.wrap('v')},{result})")
    return result


def _or_chain(frags: Sequence[_Fragment]) -> _Fragment:
    result = frags[-1]
    for frag in reversed(frags[:-1]):
        result = _Fragment("", f"or_i({frag},{result})")
    return result


def _compile(policy: Policy) -> _Fragment:
    if isinstance(policy, KeyPolicy):
        return _Fragment("c", f"pk_k({policy.key})")
    elif isinstance(policy, AfterPolicy):
        return _Fragment("", f"after({policy.locktime})")
    elif isinstance(policy, OlderPolicy):
        return _Fragment("", f"older({policy.sequence})")
    elif isinstance(policy, HashPolicy):
        return _Fragment("", str(policy))
    elif isinstance(policy, AndPolicy):
        return _and_chain([_compile(s) for s in policy.subs])
    elif isinstance(policy, OrPolicy):
        # Stable sort keeps source order among equally likely branches
        ordered = sorted(policy.branches, key=lambda b: -b[0])
        return _or_chain([_compile(p) for _, p in ordered])
    elif isinstance(policy, ThreshPolicy):
        return _compile_thresh(policy)
    raise PolicyError(f"unknown policy node: {type(policy).__name__}")


def _compile_thresh(policy: ThreshPolicy) -> _Fragment:
    k, subs = policy.k, policy.subs
    n = len(subs)
    if all(isinstance(s, KeyPolicy) for s in subs) and n <= MAX_MULTI_KEYS:
        keys = ",".join(s.key for s in subs)
        return _Fragment("", f"multi({k},{keys})")
    compiled = [_compile(s) for s in subs]
    if k == n:
        return _and_chain(compiled)
    if k == 1:
        return _or_chain(compiled)
    if comb(n, k) > MAX_THRESH_COMBINATIONS:
        raise PolicyError(
            f"thresh({k}) over {n} sub-policies expands to {comb(n, k)} branches "
            f"(limit {MAX_THRESH_COMBINATIONS})"
        )
    branches = [_and_chain(list(group)) for group in combinations(compiled, k)]
    return _or_chain(branches)


def compile_policy(policy: Policy) -> str:
    """Compile ``policy`` into miniscript text suitable for a ``wsh()`` descriptor."""
    return str(_compile(policy))
