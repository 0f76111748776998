"""
Tests for the pure e-signature building blocks.

Covers document hashing and the integrity gate, completion arithmetic,
signing order resolution, and certificate generation/verification.
"""

import hashlib
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import pytest

from hrsign.esign.certificate import (
    CERTIFICATE_VERSION,
    CertificateInput,
    generate_certificate,
    render_certificate_text,
    verify_certificate,
)
from hrsign.esign.completion import evaluate_completion, signatures_in_order
from hrsign.esign.integrity import DOCUMENT_MODIFIED_MESSAGE, compute_document_hash, verify_integrity
from hrsign.esign.ordering import UNORDERED, SigningOrder, assign_orders, pending_predecessors


@dataclass
class FakeSigner:
    order: int = 0
    signed: bool = False
    signed_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Integrity
# ---------------------------------------------------------------------------


class TestDocumentIntegrity:
    def test_hash_is_sha256_hex(self):
        content = b"%PDF-1.4 payroll agreement"
        assert compute_document_hash(content) == hashlib.sha256(content).hexdigest()

    def test_hash_of_empty_content(self):
        assert compute_document_hash(b"") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

    def test_hash_is_deterministic(self):
        assert compute_document_hash(b"abc") == compute_document_hash(b"abc")

    def test_unchanged_content_is_valid(self):
        content = b"contract v1"
        result = verify_integrity(content, compute_document_hash(content))
        assert result.valid is True
        assert result.reason is None

    def test_uppercase_expected_hash_still_matches(self):
        content = b"contract v1"
        result = verify_integrity(content, compute_document_hash(content).upper())
        assert result.valid is True

    def test_single_byte_change_is_detected(self):
        original = b"contract v1"
        result = verify_integrity(b"contract v2", compute_document_hash(original))
        assert result.valid is False
        assert result.reason == DOCUMENT_MODIFIED_MESSAGE
        assert result.expected_hash == compute_document_hash(original)
        assert result.current_hash == compute_document_hash(b"contract v2")


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


class TestCompletion:
    @pytest.mark.parametrize(
        "signed, total, expected",
        [(0, 3, 0), (1, 3, 33), (2, 3, 67), (3, 3, 100), (1, 2, 50), (1, 8, 13)],
    )
    def test_percentage_rounds_half_up(self, signed, total, expected):
        signers = [FakeSigner(signed=i < signed) for i in range(total)]
        assert evaluate_completion(signers).percentage == expected

    def test_complete_only_when_everyone_signed(self):
        assert evaluate_completion([FakeSigner(signed=True), FakeSigner()]).complete is False
        assert evaluate_completion([FakeSigner(signed=True), FakeSigner(signed=True)]).complete is True

    def test_no_signers(self):
        status = evaluate_completion([])
        assert status.total == 0
        assert status.percentage == 0
        assert status.complete is False

    def test_counts(self):
        status = evaluate_completion([FakeSigner(signed=True), FakeSigner(), FakeSigner()])
        assert status.total == 3
        assert status.signed_count == 1

    def test_signatures_in_order(self):
        t0 = datetime(2026, 3, 1, 9, 0)
        signers = [
            FakeSigner(order=1, signed=True, signed_at=t0),
            FakeSigner(order=2, signed=True, signed_at=t0 + timedelta(minutes=5)),
            FakeSigner(order=3),
        ]
        assert signatures_in_order(signers) is True

    def test_signatures_out_of_order(self):
        t0 = datetime(2026, 3, 1, 9, 0)
        signers = [
            FakeSigner(order=1, signed=True, signed_at=t0 + timedelta(hours=1)),
            FakeSigner(order=2, signed=True, signed_at=t0),
        ]
        assert signatures_in_order(signers) is False


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


class TestSigningOrder:
    def test_ranked_requires_positive_rank(self):
        with pytest.raises(ValueError):
            SigningOrder.ranked(0)

    def test_column_round_trip_for_unordered(self):
        assert SigningOrder.from_column(0) == UNORDERED
        assert UNORDERED.to_column() == 0
        assert UNORDERED.is_ordered is False

    def test_assign_orders_by_position(self):
        orders = assign_orders([None, None, None], ordered_signing=True)
        assert [o.rank for o in orders] == [1, 2, 3]

    def test_assign_orders_prefers_explicit(self):
        orders = assign_orders([2, 1], ordered_signing=True)
        assert [o.rank for o in orders] == [2, 1]

    def test_assign_orders_unordered_ignores_explicit(self):
        orders = assign_orders([2, None], ordered_signing=False)
        assert orders == [UNORDERED, UNORDERED]

    def test_pending_predecessors(self):
        first, second, third = FakeSigner(order=1), FakeSigner(order=2), FakeSigner(order=3)
        siblings = [first, second, third]
        assert pending_predecessors(SigningOrder.ranked(1), siblings) == []
        assert pending_predecessors(SigningOrder.ranked(3), siblings) == [first, second]

        first.signed = True
        assert pending_predecessors(SigningOrder.ranked(2), siblings) == []

    def test_unordered_never_waits(self):
        assert pending_predecessors(UNORDERED, [FakeSigner(order=1)]) == []

    def test_equal_ranks_do_not_block_each_other(self):
        siblings = [FakeSigner(order=1), FakeSigner(order=2), FakeSigner(order=2)]
        siblings[0].signed = True
        assert pending_predecessors(SigningOrder.ranked(2), siblings) == []


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------


def _certificate_input(**overrides) -> CertificateInput:
    fields = dict(
        signature_request_id=uuid.UUID("11111111-1111-1111-1111-111111111111"),
        signer_id=uuid.UUID("22222222-2222-2222-2222-222222222222"),
        employee_id=uuid.UUID("33333333-3333-3333-3333-333333333333"),
        employee_name="Ana Lopez",
        employee_email="ana@acme-hr.com",
        document_id=uuid.UUID("44444444-4444-4444-4444-444444444444"),
        document_name="contract.pdf",
        document_hash=hashlib.sha256(b"contract").hexdigest(),
        signed_at="2026-03-01T09:00:00+00:00",
        ip_address="10.0.0.7",
        user_agent="Mozilla/5.0",
        capture_method="click",
    )
    fields.update(overrides)
    return CertificateInput(**fields)


class TestCertificate:
    def test_hash_is_deterministic(self):
        assert generate_certificate(_certificate_input()).certificate_hash == (
            generate_certificate(_certificate_input()).certificate_hash
        )

    def test_hash_changes_with_any_field(self):
        base = generate_certificate(_certificate_input()).certificate_hash
        assert generate_certificate(_certificate_input(ip_address="10.0.0.8")).certificate_hash != base
        assert generate_certificate(_certificate_input(signed_at="2026-03-01T09:00:01+00:00")).certificate_hash != base

    def test_version_is_stamped(self):
        assert generate_certificate(_certificate_input()).version == CERTIFICATE_VERSION

    def test_verify_accepts_untouched_certificate(self):
        assert verify_certificate(generate_certificate(_certificate_input())) is True

    def test_verify_rejects_tampered_certificate(self):
        cert = generate_certificate(_certificate_input())
        tampered = cert.model_copy(update={"employee_name": "Mallory"})
        assert verify_certificate(tampered) is False

    def test_render_text(self):
        cert = generate_certificate(_certificate_input())
        text = render_certificate_text(cert)
        assert "Ana Lopez" in text
        assert cert.certificate_hash in text
        assert cert.document_hash in text
