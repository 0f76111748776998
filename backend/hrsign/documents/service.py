import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hrsign.common.storage import ObjectStorage
from hrsign.documents.models import Document


async def get_document(db: AsyncSession, company_id: uuid.UUID, document_id: uuid.UUID) -> Optional[Document]:
    result = await db.execute(
        select(Document).where(Document.id == document_id, Document.company_id == company_id)
    )
    return result.scalar_one_or_none()


async def upload_document(
    db: AsyncSession,
    storage: ObjectStorage,
    company_id: uuid.UUID,
    uploaded_by: uuid.UUID,
    filename: str,
    content: bytes,
    mime_type: str,
) -> Document:
    storage_key = f"{company_id}/{uuid.uuid4()}/{filename}"
    await storage.upload(content, storage_key, mime_type)

    doc = Document(
        company_id=company_id,
        uploaded_by=uploaded_by,
        filename=filename,
        storage_key=storage_key,
        mime_type=mime_type,
        size_bytes=len(content),
    )
    db.add(doc)
    await db.flush()
    await db.refresh(doc)
    return doc


async def mark_document_requires_signature(db: AsyncSession, document_id: uuid.UUID, content_hash: str) -> None:
    await db.execute(
        update(Document)
        .where(Document.id == document_id)
        .values(requires_signature=True, content_hash=content_hash)
        .execution_options(synchronize_session=False)
    )


async def mark_document_signed(db: AsyncSession, document_id: uuid.UUID, signed_at: datetime) -> None:
    await db.execute(
        update(Document)
        .where(Document.id == document_id)
        .values(signed=True, signed_at=signed_at)
        .execution_options(synchronize_session=False)
    )


async def replace_document_content(
    db: AsyncSession, document_id: uuid.UUID, storage_key: str, size_bytes: int, content_hash: str
) -> None:
    """Point the document at new bytes, such as its stamped signed copy."""
    await db.execute(
        update(Document)
        .where(Document.id == document_id)
        .values(
            storage_key=storage_key,
            mime_type="application/pdf",
            size_bytes=size_bytes,
            content_hash=content_hash,
        )
        .execution_options(synchronize_session=False)
    )
