from pydantic import BaseModel, Field
from typing import Optional
from uuid import UUID
from app.modules.sequences.models import DocumentType


class SequenceConfigure(BaseModel):
    branch_id: Optional[UUID] = None
    prefix: Optional[str] = Field(None, max_length=20)
    suffix: Optional[str] = Field(None, max_length=20)
    width: Optional[int] = Field(None, ge=1, le=20)
    last_number: Optional[int] = Field(None, ge=0, description="Solo puede avanzar, nunca retroceder")


class SequenceOut(BaseModel):
    id: UUID
    document_type: str
    branch_id: Optional[UUID] = None
    prefix: str
    suffix: str
    width: int
    last_number: int

    model_config = {"from_attributes": True}


class NumberOut(BaseModel):
    document_type: DocumentType
    branch_id: Optional[UUID] = None
    number: int
    formatted: str
