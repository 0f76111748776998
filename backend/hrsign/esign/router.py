import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from hrsign.auth.models import User, UserRole
from hrsign.common.exceptions import ESignError
from hrsign.common.storage import ObjectStorage, get_storage
from hrsign.database import get_db
from hrsign.dependencies import get_current_user, require_roles
from hrsign.esign import repository
from hrsign.esign.models import SignatureRequestStatus
from hrsign.esign.schemas import (
    CertificateResponse,
    PendingSignature,
    RequestStatus,
    SignatureAuditEntryResponse,
    SignatureRequestCreate,
    SignatureRequestPage,
    SignatureRequestResponse,
    SignBody,
    SignerResponse,
    SignResponse,
)
from hrsign.esign.service import (
    cancel_signature_request,
    create_signature_request,
    get_audit_trail,
    get_request_status,
    get_signer_certificate,
    list_pending_signatures,
    list_signature_requests,
    sign_document,
)
from hrsign.esign.stamping import DocumentStamper, get_stamper

router = APIRouter()


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


# ── HR routes ───────────────────────────────────────────────────────────────────


@router.post("", response_model=SignatureRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_request(
    data: SignatureRequestCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    storage: Annotated[ObjectStorage, Depends(get_storage)],
    current_user: Annotated[User, Depends(require_roles("hr_admin"))],
):
    try:
        return await create_signature_request(db, storage, current_user.company_id, data, current_user.id)
    except ESignError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("", response_model=SignatureRequestPage)
async def list_requests(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    request_status: Optional[SignatureRequestStatus] = None,
    document_id: Optional[uuid.UUID] = None,
    employee_id: Optional[uuid.UUID] = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=25, ge=1, le=100),
):
    # Employees only ever see the requests they were invited to.
    if current_user.role != UserRole.hr_admin:
        employee_id = current_user.id

    items, total = await list_signature_requests(
        db,
        current_user.company_id,
        status=request_status,
        document_id=document_id,
        employee_id=employee_id,
        page=page,
        page_size=page_size,
    )
    return SignatureRequestPage.create(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/pending", response_model=list[PendingSignature])
async def pending_signatures(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    return await list_pending_signatures(db, current_user.company_id, current_user.id)


@router.get("/{request_id}", response_model=RequestStatus)
async def get_request_detail(
    request_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    try:
        request_status = await get_request_status(db, current_user.company_id, request_id)
    except ESignError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    if current_user.role != UserRole.hr_admin and all(
        s.employee_id != current_user.id for s in request_status.signers
    ):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Signature request not found")
    return request_status


@router.get("/{request_id}/audit", response_model=list[SignatureAuditEntryResponse])
async def get_request_audit_trail(
    request_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_roles("hr_admin"))],
):
    try:
        return await get_audit_trail(db, current_user.company_id, request_id)
    except ESignError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{request_id}/cancel", response_model=SignatureRequestResponse)
async def cancel_request(
    request_id: uuid.UUID,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_roles("hr_admin"))],
):
    try:
        return await cancel_signature_request(
            db, current_user.company_id, request_id, ip_address=_client_ip(request)
        )
    except ESignError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{request_id}/signed-document")
async def download_signed_document(
    request_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    storage: Annotated[ObjectStorage, Depends(get_storage)],
    current_user: Annotated[User, Depends(require_roles("hr_admin"))],
):
    sig_request = await repository.get_request(db, request_id, current_user.company_id)
    if sig_request is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Signature request not found")
    if not sig_request.signed_artifact_key:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Signed document not available")

    try:
        url = storage.download_url(sig_request.signed_artifact_key)
    except ESignError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return RedirectResponse(url=url)


# ── Signer routes ───────────────────────────────────────────────────────────────


@router.post("/signers/{signer_id}/sign", response_model=SignResponse)
async def sign(
    signer_id: uuid.UUID,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    storage: Annotated[ObjectStorage, Depends(get_storage)],
    stamper: Annotated[DocumentStamper, Depends(get_stamper)],
    current_user: Annotated[User, Depends(get_current_user)],
    body: SignBody = SignBody(),
):
    try:
        result = await sign_document(
            db,
            storage,
            stamper,
            signer_id,
            current_user.id,
            ip_address=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
            client_timestamp=body.client_timestamp,
        )
    except ESignError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return SignResponse(
        signer=SignerResponse.model_validate(result.signer),
        certificate=result.certificate,
        progress=result.completion,
        request_completed=result.request_completed,
    )


@router.get("/signers/{signer_id}/certificate", response_model=CertificateResponse)
async def signer_certificate(
    signer_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    try:
        certificate = await get_signer_certificate(db, current_user.company_id, signer_id)
    except ESignError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    if current_user.role != UserRole.hr_admin and certificate.certificate.employee_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Signature not found")
    return certificate
