"""Signing order for a signer within a request.

A signer is either unordered (may sign at any time) or carries a positive rank
that must wait for every lower rank. The database stores the rank in the
``signers.order`` column, with 0 meaning unordered.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Protocol


class _Ranked(Protocol):
    order: int
    signed: bool


@dataclass(frozen=True)
class SigningOrder:
    rank: Optional[int] = None

    @classmethod
    def ranked(cls, rank: int) -> "SigningOrder":
        if rank < 1:
            raise ValueError("Signing rank must be a positive integer")
        return cls(rank=rank)

    @classmethod
    def from_column(cls, value: int) -> "SigningOrder":
        return UNORDERED if value <= 0 else cls(rank=value)

    @property
    def is_ordered(self) -> bool:
        return self.rank is not None

    def to_column(self) -> int:
        return self.rank if self.rank is not None else 0


UNORDERED = SigningOrder()


def assign_orders(explicit_orders: list[Optional[int]], ordered_signing: bool) -> list[SigningOrder]:
    """Explicit order when given, otherwise position (1-based); unordered when not enforced."""
    if not ordered_signing:
        return [UNORDERED for _ in explicit_orders]
    return [
        SigningOrder.ranked(explicit if explicit is not None else index + 1)
        for index, explicit in enumerate(explicit_orders)
    ]


def pending_predecessors(order: SigningOrder, siblings: Iterable[_Ranked]) -> list[_Ranked]:
    """Ranked siblings below ``order`` that have not signed yet."""
    if not order.is_ordered:
        return []
    return [s for s in siblings if 0 < s.order < order.rank and not s.signed]
