import hashlib
import hmac
from typing import Optional

from pydantic import BaseModel

DOCUMENT_MODIFIED_MESSAGE = (
    "The document has been modified since the signature request was created. Signing cannot proceed."
)


class IntegrityResult(BaseModel):
    valid: bool
    current_hash: str
    expected_hash: str
    reason: Optional[str] = None


def compute_document_hash(content: bytes) -> str:
    """SHA-256 hex digest over the full document bytes."""
    return hashlib.sha256(content).hexdigest()


def verify_integrity(content: bytes, expected_hash: str) -> IntegrityResult:
    current_hash = compute_document_hash(content)
    valid = hmac.compare_digest(current_hash, expected_hash.lower())
    return IntegrityResult(
        valid=valid,
        current_hash=current_hash,
        expected_hash=expected_hash,
        reason=None if valid else DOCUMENT_MODIFIED_MESSAGE,
    )
