import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hrsign.auth.service import get_company_users
from hrsign.common.exceptions import (
    ConflictError,
    DependencyFailureError,
    ESignError,
    IntegrityViolationError,
    NotFoundError,
    ValidationFailedError,
)
from hrsign.common.storage import ObjectStorage
from hrsign.config import settings
from hrsign.documents.service import (
    get_document,
    mark_document_requires_signature,
    mark_document_signed,
    replace_document_content,
)
from hrsign.esign import repository
from hrsign.esign.certificate import (
    CertificateInput,
    SigningCertificate,
    generate_certificate,
    render_certificate_text,
    verify_certificate,
)
from hrsign.esign.completion import CompletionStatus, evaluate_completion, signatures_in_order
from hrsign.esign.integrity import compute_document_hash, verify_integrity
from hrsign.esign.models import (
    CaptureMethod,
    SignatureAuditEntry,
    SignatureRequest,
    SignatureRequestStatus,
    SignatureType,
    Signer,
)
from hrsign.esign.ordering import assign_orders, pending_predecessors
from hrsign.esign.schemas import (
    CapturedSignatureData,
    CertificateResponse,
    PendingSignature,
    RequestStatus,
    SignatureRequestCreate,
    SignatureRequestListItem,
    SignatureRequestResponse,
    SignerResult,
)
from hrsign.esign.stamping import DocumentStamper, SignaturePosition, StampDescriptor

logger = logging.getLogger(__name__)

ALREADY_SIGNED = "This document has already been signed by this signer"
REQUEST_CANCELLED = "This signature request has been cancelled"
WAIT_FOR_EARLIER = "You must wait for the earlier signers to complete their signature"

OPEN_STATES = (SignatureRequestStatus.pending, SignatureRequestStatus.in_progress)


@dataclass
class SignResult:
    signer: Signer
    certificate: SigningCertificate
    completion: CompletionStatus
    # True only for the call that moved the request into ``completed``.
    request_completed: bool


async def create_signature_request(
    db: AsyncSession,
    storage: ObjectStorage,
    company_id: uuid.UUID,
    data: SignatureRequestCreate,
    created_by: uuid.UUID,
) -> SignatureRequest:
    if not data.signers:
        raise ValidationFailedError("At least one signer is required")
    employee_ids = [s.employee_id for s in data.signers]
    if len(set(employee_ids)) != len(employee_ids):
        raise ValidationFailedError("Each employee can only be invited once per request")
    if data.title is not None and not data.title.strip():
        raise ValidationFailedError("Title cannot be blank")

    document = await get_document(db, company_id, data.document_id)
    if document is None:
        raise NotFoundError("Document not found")

    employees = await get_company_users(db, company_id, employee_ids)
    missing = [str(e) for e in employee_ids if e not in employees]
    if missing:
        raise NotFoundError(f"Signer not found: {', '.join(missing)}")

    content = await storage.download(document.storage_key)
    document_hash = compute_document_hash(content)

    sig_request = await repository.create_request(
        db,
        SignatureRequest(
            company_id=company_id,
            document_id=document.id,
            created_by=created_by,
            title=data.title.strip() if data.title else document.filename,
            message=data.message,
            ordered_signing=data.ordered_signing,
            status=SignatureRequestStatus.pending,
            document_name=document.filename,
            document_hash=document_hash,
            signature_positions=[p.model_dump() for p in data.signature_positions] or None,
            keep_original=data.keep_original,
        ),
    )

    orders = assign_orders([s.order for s in data.signers], data.ordered_signing)
    await repository.create_signers(
        db,
        [
            Signer(
                signature_request_id=sig_request.id,
                employee_id=signer_data.employee_id,
                order=order.to_column(),
                signature_type=SignatureType.simple,
                signer_name=employees[signer_data.employee_id].full_name,
                signer_email=employees[signer_data.employee_id].email,
            )
            for signer_data, order in zip(data.signers, orders)
        ],
    )

    await mark_document_requires_signature(db, document.id, document_hash)
    await repository.add_audit_entry(
        db,
        sig_request.id,
        "created",
        details=f"Signature request created with {len(data.signers)} signer(s)",
    )
    logger.info(
        "Signature request %s created for document %s with %d signer(s)",
        sig_request.id,
        document.id,
        len(data.signers),
    )
    return await repository.get_request(db, sig_request.id)


async def _signing_conflict(db: AsyncSession, signer_id: uuid.UUID) -> ESignError:
    """Explain why a conditional sign update matched no row."""
    current = await repository.get_signer(db, signer_id)
    if current is None:
        return NotFoundError("Signature not found")
    if current.signed:
        return ConflictError(ALREADY_SIGNED)
    sig_request = await repository.get_request(db, current.signature_request_id)
    if sig_request is not None and sig_request.status == SignatureRequestStatus.cancelled:
        return ConflictError(REQUEST_CANCELLED)
    return ConflictError(WAIT_FOR_EARLIER)


def _format_signed_at(value: Optional[datetime]) -> str:
    if value is None:
        return "N/A"
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%d/%m/%Y %H:%M") + " UTC"


def _position_for(positions: list[SignaturePosition], index: int) -> Optional[SignaturePosition]:
    if not positions:
        return None
    return positions[min(index, len(positions) - 1)]


async def _generate_signed_artifact(
    db: AsyncSession,
    storage: ObjectStorage,
    stamper: DocumentStamper,
    sig_request: SignatureRequest,
    signers: list[Signer],
    content: bytes,
) -> Optional[str]:
    signed = sorted((s for s in signers if s.signed), key=lambda s: s.signed_at)
    positions = [SignaturePosition.model_validate(p) for p in sig_request.signature_positions or []]
    descriptors = [
        StampDescriptor(
            signer_name=s.signer_name,
            signed_at_label=_format_signed_at(s.signed_at),
            capture_method=(s.captured_data or {}).get("method", CaptureMethod.click.value),
            certificate_hash=s.certificate_hash,
            position=_position_for(positions, i),
        )
        for i, s in enumerate(signed)
    ]
    storage_key = f"{settings.signed_artifact_prefix}/{sig_request.company_id}/{sig_request.id}/signed.pdf"

    try:
        stamped = await stamper.stamp(content, descriptors)
        await storage.upload(stamped, storage_key, "application/pdf")
    except DependencyFailureError as exc:
        # The signatures are already committed; the stamped copy is best-effort.
        logger.warning("Signed document for request %s was not generated: %s", sig_request.id, exc)
        await repository.add_audit_entry(db, sig_request.id, "artifact_failed", details=exc.message)
        await db.commit()
        return None

    await repository.set_signed_artifact_key(db, sig_request.id, storage_key)
    await repository.add_audit_entry(db, sig_request.id, "artifact_generated", details=storage_key)
    if not sig_request.keep_original:
        await replace_document_content(
            db, sig_request.document_id, storage_key, len(stamped), compute_document_hash(stamped)
        )
        await repository.add_audit_entry(
            db, sig_request.id, "document_replaced", details=f"Document now points at {storage_key}"
        )
    await db.commit()
    logger.info("Signed document for request %s stored at %s", sig_request.id, storage_key)
    return storage_key


async def sign_document(
    db: AsyncSession,
    storage: ObjectStorage,
    stamper: DocumentStamper,
    signer_id: uuid.UUID,
    employee_id: uuid.UUID,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    client_timestamp: Optional[datetime] = None,
) -> SignResult:
    signer = await repository.get_signer(db, signer_id)
    if signer is None:
        raise NotFoundError("Signature not found")
    if signer.employee_id != employee_id:
        raise NotFoundError("Signature not found")
    if signer.signed:
        raise ConflictError(ALREADY_SIGNED)

    sig_request = await repository.get_request(db, signer.signature_request_id)
    if sig_request.status == SignatureRequestStatus.cancelled:
        raise ConflictError(REQUEST_CANCELLED)

    if sig_request.ordered_signing:
        siblings = await repository.list_signers(db, sig_request.id)
        if pending_predecessors(signer.signing_order, siblings):
            raise ConflictError(WAIT_FOR_EARLIER)

    # Always the live bytes: the baseline hash is only meaningful against a fresh read.
    content = await storage.download(sig_request.document.storage_key)
    integrity = verify_integrity(content, sig_request.document_hash)
    if not integrity.valid:
        logger.warning(
            "Integrity violation on request %s: expected %s, found %s",
            sig_request.id,
            integrity.expected_hash,
            integrity.current_hash,
        )
        await repository.add_audit_entry(
            db,
            sig_request.id,
            "integrity_violation",
            signer_id=signer.id,
            ip_address=ip_address,
            user_agent=user_agent,
            details=f"Expected document hash {integrity.expected_hash}, found {integrity.current_hash}",
        )
        await db.commit()
        raise IntegrityViolationError(integrity.reason, integrity.expected_hash, integrity.current_hash)

    now = datetime.now(timezone.utc)
    captured = CapturedSignatureData(
        method=CaptureMethod.click.value,
        ip=ip_address or "unknown",
        user_agent=user_agent or "unknown",
        timestamp=(client_timestamp or now).isoformat(),
    )
    certificate = generate_certificate(
        CertificateInput(
            signature_request_id=sig_request.id,
            signer_id=signer.id,
            employee_id=signer.employee_id,
            employee_name=signer.signer_name,
            employee_email=signer.signer_email,
            document_id=sig_request.document_id,
            document_name=sig_request.document_name,
            document_hash=sig_request.document_hash,
            signed_at=captured.timestamp,
            ip_address=captured.ip,
            user_agent=captured.user_agent,
            capture_method=captured.method,
        )
    )

    flipped = await repository.mark_signer_signed(
        db,
        signer,
        signed_at=now,
        captured_data=captured.model_dump(),
        certificate_hash=certificate.certificate_hash,
        enforce_order=sig_request.ordered_signing,
    )
    if not flipped:
        raise await _signing_conflict(db, signer.id)

    await repository.add_audit_entry(
        db,
        sig_request.id,
        "signed",
        signer_id=signer.id,
        ip_address=ip_address,
        user_agent=user_agent,
        details=f"{signer.signer_name} signed the document",
    )
    await db.commit()
    logger.info("Signer %s signed request %s", signer.id, sig_request.id)

    siblings = await repository.list_signers(db, sig_request.id)
    completion = evaluate_completion(siblings)

    request_completed = False
    if completion.complete:
        request_completed = await repository.transition_request_status(
            db, sig_request.id, OPEN_STATES, SignatureRequestStatus.completed, completed_at=now
        )
        if request_completed:
            await mark_document_signed(db, sig_request.document_id, now)
            await repository.add_audit_entry(
                db, sig_request.id, "completed", details="All signers have signed. Request completed."
            )
            await db.commit()
            logger.info("Signature request %s completed", sig_request.id)
            await _generate_signed_artifact(db, storage, stamper, sig_request, siblings, content)
    else:
        await repository.transition_request_status(
            db, sig_request.id, (SignatureRequestStatus.pending,), SignatureRequestStatus.in_progress
        )
        await db.commit()

    return SignResult(
        signer=await repository.get_signer(db, signer.id),
        certificate=certificate,
        completion=completion,
        request_completed=request_completed,
    )


async def cancel_signature_request(
    db: AsyncSession,
    company_id: uuid.UUID,
    request_id: uuid.UUID,
    ip_address: Optional[str] = None,
) -> SignatureRequest:
    sig_request = await repository.get_request(db, request_id, company_id)
    if sig_request is None:
        raise NotFoundError("Signature request not found")

    cancelled = await repository.transition_request_status(
        db,
        request_id,
        OPEN_STATES,
        SignatureRequestStatus.cancelled,
        cancelled_at=datetime.now(timezone.utc),
    )
    if not cancelled:
        current = await repository.get_request(db, request_id)
        raise ConflictError(f"Cannot cancel a {current.status.value} request")

    await repository.add_audit_entry(
        db, request_id, "cancelled", ip_address=ip_address, details="Signature request cancelled by HR"
    )
    logger.info("Signature request %s cancelled", request_id)
    return await repository.get_request(db, request_id)


async def get_request_status(db: AsyncSession, company_id: uuid.UUID, request_id: uuid.UUID) -> RequestStatus:
    sig_request = await repository.get_request(db, request_id, company_id)
    if sig_request is None:
        raise NotFoundError("Signature request not found")

    signers = await repository.list_signers(db, request_id)
    completion = evaluate_completion(signers)
    return RequestStatus(
        request_id=sig_request.id,
        document_id=sig_request.document_id,
        document_name=sig_request.document_name,
        status=sig_request.status.value,
        total_signers=completion.total,
        signed_count=completion.signed_count,
        percentage=completion.percentage,
        signed_in_order=signatures_in_order(signers),
        signers=[
            SignerResult(
                signer_id=s.id,
                employee_id=s.employee_id,
                employee_name=s.signer_name,
                order=s.order,
                signed=s.signed,
                signed_at=s.signed_at,
                certificate_hash=s.certificate_hash,
            )
            for s in signers
        ],
        created_by=sig_request.created_by,
        created_at=sig_request.created_at,
        completed_at=sig_request.completed_at,
        signed_artifact_key=sig_request.signed_artifact_key,
    )


async def list_signature_requests(
    db: AsyncSession,
    company_id: uuid.UUID,
    status: Optional[SignatureRequestStatus] = None,
    document_id: Optional[uuid.UUID] = None,
    employee_id: Optional[uuid.UUID] = None,
    page: int = 1,
    page_size: int = 25,
) -> tuple[list[SignatureRequestListItem], int]:
    filters = [SignatureRequest.company_id == company_id]
    if status:
        filters.append(SignatureRequest.status == status)
    if document_id:
        filters.append(SignatureRequest.document_id == document_id)
    if employee_id:
        filters.append(SignatureRequest.signers.any(Signer.employee_id == employee_id))

    total = (await db.execute(select(func.count(SignatureRequest.id)).where(*filters))).scalar_one()
    offset = (page - 1) * page_size
    result = await db.execute(
        select(SignatureRequest)
        .where(*filters)
        .order_by(SignatureRequest.created_at.desc())
        .offset(offset)
        .limit(page_size)
        .execution_options(populate_existing=True)
    )
    items = [
        SignatureRequestListItem(
            **SignatureRequestResponse.model_validate(r).model_dump(),
            progress=evaluate_completion(r.signers),
        )
        for r in result.scalars().all()
    ]
    return items, total


async def list_pending_signatures(
    db: AsyncSession,
    company_id: uuid.UUID,
    employee_id: uuid.UUID,
) -> list[PendingSignature]:
    result = await db.execute(
        select(Signer, SignatureRequest)
        .join(SignatureRequest, Signer.signature_request_id == SignatureRequest.id)
        .where(
            Signer.employee_id == employee_id,
            Signer.signed.is_(False),
            SignatureRequest.company_id == company_id,
            SignatureRequest.status.in_(OPEN_STATES),
        )
        .order_by(Signer.created_at.desc())
        .execution_options(populate_existing=True)
    )
    pending = []
    for signer, sig_request in result.all():
        blocked = sig_request.ordered_signing and pending_predecessors(signer.signing_order, sig_request.signers)
        pending.append(
            PendingSignature(
                signer_id=signer.id,
                signature_request_id=sig_request.id,
                request_title=sig_request.title,
                message=sig_request.message,
                document_id=sig_request.document_id,
                document_name=sig_request.document_name,
                order=signer.order,
                can_sign_now=not blocked,
                created_at=signer.created_at,
            )
        )
    return pending


async def get_signer_certificate(
    db: AsyncSession,
    company_id: uuid.UUID,
    signer_id: uuid.UUID,
) -> CertificateResponse:
    """Rebuild a signer's certificate from the retained fields and re-derive its hash."""
    signer = await repository.get_signer(db, signer_id)
    if signer is None:
        raise NotFoundError("Signature not found")
    sig_request = await repository.get_request(db, signer.signature_request_id, company_id)
    if sig_request is None:
        raise NotFoundError("Signature not found")
    if not signer.signed or signer.certificate_hash is None:
        raise ConflictError("This signer has not signed yet")

    captured = CapturedSignatureData(**(signer.captured_data or {}))
    certificate = SigningCertificate(
        signature_request_id=sig_request.id,
        signer_id=signer.id,
        employee_id=signer.employee_id,
        employee_name=signer.signer_name,
        employee_email=signer.signer_email,
        document_id=sig_request.document_id,
        document_name=sig_request.document_name,
        document_hash=sig_request.document_hash,
        signed_at=captured.timestamp,
        ip_address=captured.ip,
        user_agent=captured.user_agent,
        capture_method=captured.method,
        certificate_hash=signer.certificate_hash,
    )
    return CertificateResponse(
        certificate=certificate,
        verified=verify_certificate(certificate),
        text=render_certificate_text(certificate),
    )


async def get_audit_trail(
    db: AsyncSession,
    company_id: uuid.UUID,
    request_id: uuid.UUID,
) -> list[SignatureAuditEntry]:
    sig_request = await repository.get_request(db, request_id, company_id)
    if sig_request is None:
        raise NotFoundError("Signature request not found")
    result = await db.execute(
        select(SignatureAuditEntry)
        .where(SignatureAuditEntry.signature_request_id == request_id)
        .order_by(SignatureAuditEntry.timestamp.asc())
    )
    return list(result.scalars().all())
