import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrsign.common.base_models import GUID, CompanyOwnedMixin, TimestampMixin, UUIDBase
from hrsign.esign.ordering import SigningOrder


class SignatureRequestStatus(str, enum.Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class SignatureType(str, enum.Enum):
    simple = "simple"


class CaptureMethod(str, enum.Enum):
    click = "click"


class SignatureRequest(UUIDBase, TimestampMixin, CompanyOwnedMixin):
    __tablename__ = "signature_requests"

    document_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("documents.id"), nullable=False, index=True)
    created_by: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("users.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ordered_signing: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[SignatureRequestStatus] = mapped_column(
        Enum(SignatureRequestStatus, name="signaturerequeststatus"),
        default=SignatureRequestStatus.pending,
        nullable=False,
        index=True,
    )
    document_name: Mapped[str] = mapped_column(String(500), nullable=False)
    # Integrity baseline: hash of the document bytes when the request was created.
    document_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    signed_artifact_key: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    # SignaturePosition dicts, in the order signers are stamped.
    signature_positions: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    keep_original: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    signers = relationship(
        "Signer",
        back_populates="signature_request",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="Signer.order",
    )
    document = relationship("Document", lazy="selectin")


class Signer(UUIDBase):
    __tablename__ = "signers"
    __table_args__ = (UniqueConstraint("signature_request_id", "employee_id", name="uq_signers_request_employee"),)

    signature_request_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("signature_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("users.id"), nullable=False, index=True)
    # 0 = unordered; N > 0 = rank when the request enforces signing order.
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    signature_type: Mapped[SignatureType] = mapped_column(
        Enum(SignatureType, name="signaturetype"),
        default=SignatureType.simple,
        nullable=False,
    )
    signer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    signer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    signed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    signed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    captured_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    signed_ip: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    signed_user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    certificate_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    signature_request = relationship("SignatureRequest", back_populates="signers")

    @property
    def signing_order(self) -> SigningOrder:
        return SigningOrder.from_column(self.order)


class SignatureAuditEntry(UUIDBase):
    __tablename__ = "signature_audit_entries"

    signature_request_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("signature_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    signer_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("signers.id"), nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
