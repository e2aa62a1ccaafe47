"""
Addresses exempt from the proximity check.
"""

from typing import FrozenSet, Iterable


class Allowlist:
    """Exact-match set of addresses (no CIDR, case-sensitive)."""

    def __init__(self, addresses: Iterable[str] = ()):
        self._addresses: FrozenSet[str] = frozenset(addresses)

    def contains(self, address: str) -> bool:
        return address in self._addresses

    __contains__ = contains

    def __len__(self) -> int:
        return len(self._addresses)

    def __repr__(self) -> str:
        return f"Allowlist({sorted(self._addresses)!r})"
