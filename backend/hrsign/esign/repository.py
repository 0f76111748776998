"""Persistence operations for signature requests and signers.

State changes that race (signing a record, moving a request between states)
are single conditional UPDATE statements; callers learn whether they won from
the affected row count.
"""

import uuid
from collections.abc import Collection
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from hrsign.esign.models import SignatureAuditEntry, SignatureRequest, SignatureRequestStatus, Signer


async def create_request(db: AsyncSession, sig_request: SignatureRequest) -> SignatureRequest:
    db.add(sig_request)
    await db.flush()
    return sig_request


async def create_signers(db: AsyncSession, signers: list[Signer]) -> list[Signer]:
    db.add_all(signers)
    await db.flush()
    return signers


async def add_audit_entry(
    db: AsyncSession,
    request_id: uuid.UUID,
    action: str,
    details: Optional[str] = None,
    signer_id: Optional[uuid.UUID] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> None:
    db.add(
        SignatureAuditEntry(
            signature_request_id=request_id,
            signer_id=signer_id,
            action=action,
            ip_address=ip_address,
            user_agent=user_agent,
            details=details,
        )
    )
    await db.flush()


async def get_request(
    db: AsyncSession,
    request_id: uuid.UUID,
    company_id: Optional[uuid.UUID] = None,
) -> Optional[SignatureRequest]:
    query = select(SignatureRequest).where(SignatureRequest.id == request_id)
    if company_id is not None:
        query = query.where(SignatureRequest.company_id == company_id)
    result = await db.execute(query.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def get_signer(db: AsyncSession, signer_id: uuid.UUID) -> Optional[Signer]:
    result = await db.execute(
        select(Signer).where(Signer.id == signer_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_signers(db: AsyncSession, request_id: uuid.UUID) -> list[Signer]:
    """Fresh read of every signer of a request, bypassing identity-map state."""
    result = await db.execute(
        select(Signer)
        .where(Signer.signature_request_id == request_id)
        .order_by(Signer.order.asc(), Signer.created_at.asc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def mark_signer_signed(
    db: AsyncSession,
    signer: Signer,
    signed_at: datetime,
    captured_data: dict,
    certificate_hash: str,
    enforce_order: bool,
) -> bool:
    """Flip ``signed`` to true if, at this instant, the record is unsigned,
    the request is not cancelled and (when ordered) no earlier rank is unsigned.

    Returns False when any of those no longer holds.
    """
    conditions = [
        Signer.id == signer.id,
        Signer.signed.is_(False),
        exists().where(
            SignatureRequest.id == signer.signature_request_id,
            SignatureRequest.status != SignatureRequestStatus.cancelled,
        ),
    ]
    if enforce_order and signer.order > 0:
        earlier = aliased(Signer)
        conditions.append(
            ~exists().where(
                and_(
                    earlier.signature_request_id == signer.signature_request_id,
                    earlier.order > 0,
                    earlier.order < signer.order,
                    earlier.signed.is_(False),
                )
            )
        )

    result = await db.execute(
        update(Signer)
        .where(*conditions)
        .values(
            signed=True,
            signed_at=signed_at,
            captured_data=captured_data,
            signed_ip=captured_data.get("ip"),
            signed_user_agent=captured_data.get("user_agent"),
            certificate_hash=certificate_hash,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def transition_request_status(
    db: AsyncSession,
    request_id: uuid.UUID,
    expected: Collection[SignatureRequestStatus],
    new_status: SignatureRequestStatus,
    **values,
) -> bool:
    """Move the request to ``new_status`` only if it is currently in ``expected``."""
    result = await db.execute(
        update(SignatureRequest)
        .where(SignatureRequest.id == request_id, SignatureRequest.status.in_(list(expected)))
        .values(status=new_status, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def set_signed_artifact_key(db: AsyncSession, request_id: uuid.UUID, storage_key: str) -> bool:
    result = await db.execute(
        update(SignatureRequest)
        .where(SignatureRequest.id == request_id, SignatureRequest.signed_artifact_key.is_(None))
        .values(signed_artifact_key=storage_key)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
