import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from hrsign.esign.certificate import SigningCertificate
from hrsign.esign.completion import CompletionStatus
from hrsign.esign.stamping import SignaturePosition

# ── Create schemas ──────────────────────────────────────────────────────────────


class SignerCreate(BaseModel):
    employee_id: uuid.UUID
    order: Optional[int] = Field(default=None, ge=1)


class SignatureRequestCreate(BaseModel):
    document_id: uuid.UUID
    title: Optional[str] = Field(default=None, max_length=500)
    message: Optional[str] = None
    ordered_signing: bool = False
    signers: list[SignerCreate]
    # Applied to signers in signing-time order; the last one repeats for any extra signers.
    signature_positions: list[SignaturePosition] = Field(default_factory=list)
    # False replaces the document content with the signed copy once it exists.
    keep_original: bool = True


class SignBody(BaseModel):
    client_timestamp: Optional[datetime] = None


class CapturedSignatureData(BaseModel):
    method: str = "click"
    ip: str = "unknown"
    user_agent: str = "unknown"
    timestamp: str


# ── Response schemas ────────────────────────────────────────────────────────────


class SignerResponse(BaseModel):
    id: uuid.UUID
    signature_request_id: uuid.UUID
    employee_id: uuid.UUID
    signer_name: str
    signer_email: str
    order: int
    signature_type: str
    signed: bool
    signed_at: Optional[datetime]
    certificate_hash: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class SignatureRequestResponse(BaseModel):
    id: uuid.UUID
    company_id: uuid.UUID
    document_id: uuid.UUID
    created_by: uuid.UUID
    title: str
    message: Optional[str]
    ordered_signing: bool
    status: str
    document_name: str
    document_hash: str
    completed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    signed_artifact_key: Optional[str]
    signature_positions: Optional[list[SignaturePosition]] = None
    keep_original: bool = True
    signers: list[SignerResponse] = []
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SignatureRequestListItem(SignatureRequestResponse):
    progress: CompletionStatus


class SignatureAuditEntryResponse(BaseModel):
    id: uuid.UUID
    signature_request_id: uuid.UUID
    signer_id: Optional[uuid.UUID]
    action: str
    ip_address: Optional[str]
    user_agent: Optional[str]
    details: Optional[str]
    timestamp: datetime

    model_config = {"from_attributes": True}


class SignerResult(BaseModel):
    signer_id: uuid.UUID
    employee_id: uuid.UUID
    employee_name: str
    order: int
    signed: bool
    signed_at: Optional[datetime] = None
    certificate_hash: Optional[str] = None


class RequestStatus(BaseModel):
    request_id: uuid.UUID
    document_id: uuid.UUID
    document_name: str
    status: str
    total_signers: int
    signed_count: int
    percentage: int
    signed_in_order: bool = True
    signers: list[SignerResult]
    created_by: uuid.UUID
    created_at: datetime
    completed_at: Optional[datetime] = None
    signed_artifact_key: Optional[str] = None


class PendingSignature(BaseModel):
    signer_id: uuid.UUID
    signature_request_id: uuid.UUID
    request_title: str
    message: Optional[str]
    document_id: uuid.UUID
    document_name: str
    order: int
    can_sign_now: bool
    created_at: datetime


class SignResponse(BaseModel):
    signer: SignerResponse
    certificate: SigningCertificate
    progress: CompletionStatus
    request_completed: bool


class CertificateResponse(BaseModel):
    certificate: SigningCertificate
    verified: bool
    text: str


class SignatureRequestPage(BaseModel):
    items: list[SignatureRequestListItem]
    total: int
    page: int
    page_size: int
    total_pages: int

    @classmethod
    def create(
        cls, items: list[SignatureRequestListItem], total: int, page: int, page_size: int
    ) -> "SignatureRequestPage":
        total_pages = -(-total // page_size) if total > 0 else 0
        return cls(items=items, total=total, page=page, page_size=page_size, total_pages=total_pages)
