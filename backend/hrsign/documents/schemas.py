import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class DocumentResponse(BaseModel):
    id: uuid.UUID
    company_id: uuid.UUID
    uploaded_by: uuid.UUID
    filename: str
    mime_type: str
    size_bytes: int
    content_hash: Optional[str]
    requires_signature: bool
    signed: bool
    signed_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}
