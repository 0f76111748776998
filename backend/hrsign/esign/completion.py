from typing import Iterable, Optional, Protocol, Sequence

from pydantic import BaseModel


class _SignerState(Protocol):
    signed: bool


class CompletionStatus(BaseModel):
    total: int
    signed_count: int
    percentage: int
    complete: bool


def evaluate_completion(signers: Iterable[_SignerState]) -> CompletionStatus:
    states = list(signers)
    total = len(states)
    signed_count = sum(1 for s in states if s.signed)
    # Half-up rounding in integer arithmetic: 1/3 -> 33, 2/3 -> 67, 1/8 -> 13.
    percentage = (signed_count * 200 + total) // (2 * total) if total else 0
    return CompletionStatus(
        total=total,
        signed_count=signed_count,
        percentage=percentage,
        complete=total > 0 and signed_count == total,
    )


class _OrderedSignature(Protocol):
    order: int
    signed: bool
    signed_at: Optional[object]


def signatures_in_order(signers: Sequence[_OrderedSignature]) -> bool:
    """True when ranked signatures carry non-decreasing timestamps by rank."""
    ranked = sorted(
        (s for s in signers if s.order > 0 and s.signed and s.signed_at is not None),
        key=lambda s: s.order,
    )
    return all(prev.signed_at <= cur.signed_at for prev, cur in zip(ranked, ranked[1:]))
