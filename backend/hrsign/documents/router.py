import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from hrsign.auth.models import User
from hrsign.common.exceptions import ESignError
from hrsign.common.storage import ObjectStorage, get_storage
from hrsign.database import get_db
from hrsign.dependencies import get_current_user, require_roles
from hrsign.documents.schemas import DocumentResponse
from hrsign.documents.service import get_document, upload_document

router = APIRouter()


@router.post("", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def upload(
    db: Annotated[AsyncSession, Depends(get_db)],
    storage: Annotated[ObjectStorage, Depends(get_storage)],
    current_user: Annotated[User, Depends(require_roles("hr_admin"))],
    file: UploadFile = File(...),
):
    content = await file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")
    try:
        doc = await upload_document(
            db,
            storage,
            company_id=current_user.company_id,
            uploaded_by=current_user.id,
            filename=file.filename or "document",
            content=content,
            mime_type=file.content_type or "application/octet-stream",
        )
    except ESignError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return doc


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document_detail(
    document_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    doc = await get_document(db, current_user.company_id, document_id)
    if doc is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return doc
