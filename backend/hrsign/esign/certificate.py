"""Signing certificates for simple (click-based) signatures.

A certificate binds one signature event to the signer, the document snapshot
and the capture context. Only ``certificate_hash`` is stored on the signer row;
the fields it is derived from are retained alongside it so the hash can be
re-derived and checked later.
"""

import hashlib
import hmac
import json
import uuid

from pydantic import BaseModel

CERTIFICATE_VERSION = "1.0-simple"


class CertificateInput(BaseModel):
    signature_request_id: uuid.UUID
    signer_id: uuid.UUID
    employee_id: uuid.UUID
    employee_name: str
    employee_email: str
    document_id: uuid.UUID
    document_name: str
    document_hash: str
    signed_at: str
    ip_address: str
    user_agent: str
    capture_method: str
    version: str = CERTIFICATE_VERSION


class SigningCertificate(CertificateInput):
    certificate_hash: str


def _canonical_hash(fields: dict) -> str:
    payload = json.dumps(fields, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def generate_certificate(data: CertificateInput) -> SigningCertificate:
    fields = data.model_dump(mode="json")
    return SigningCertificate(**fields, certificate_hash=_canonical_hash(fields))


def verify_certificate(certificate: SigningCertificate) -> bool:
    fields = certificate.model_dump(mode="json", exclude={"certificate_hash"})
    return hmac.compare_digest(_canonical_hash(fields), certificate.certificate_hash)


def render_certificate_text(certificate: SigningCertificate) -> str:
    lines = [
        "DIGITAL SIGNATURE CERTIFICATE (SIMPLE)",
        "",
        "Signer:",
        f"  Name: {certificate.employee_name}",
        f"  Email: {certificate.employee_email}",
        f"  ID: {certificate.employee_id}",
        "",
        "Document:",
        f"  Name: {certificate.document_name}",
        f"  Hash: {certificate.document_hash}",
        "",
        "Signature:",
        f"  Date/time: {certificate.signed_at}",
        f"  IP: {certificate.ip_address}",
        f"  User agent: {certificate.user_agent}",
        f"  Method: {certificate.capture_method}",
        "",
        "Certificate:",
        f"  Hash: {certificate.certificate_hash}",
        f"  Version: {certificate.version}",
    ]
    return "\n".join(lines)
