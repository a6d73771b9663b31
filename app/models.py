from pydantic import BaseModel, Field
from typing import List, Optional

from app.documents import Document
from app.types import QARequest, QAResult


class DocumentCreate(BaseModel):
    title: Optional[str] = None
    body: str = ""

class DocumentUpdate(BaseModel):
    body: str
    title: Optional[str] = None

class DocumentSummary(BaseModel):
    id: str
    title: str
    version: int

class DocumentResponse(DocumentSummary):
    body: str

    @classmethod
    def from_document(cls, doc: Document) -> "DocumentResponse":
        return cls(id=doc.id, title=doc.title, version=doc.version, body=doc.body)

class DocumentList(BaseModel):
    documents: List[DocumentSummary]

class AskRequest(BaseModel):
    question: str = Field(..., min_length=1)

class AskResponse(BaseModel):
    document_id: str
    version: int
    found: bool
    answer: Optional[str] = None
    start: Optional[int] = None
    end: Optional[int] = None
    score: Optional[float] = None
    truncated: bool = False
    reason: Optional[str] = None

    @classmethod
    def from_result(cls, request: QARequest, result: QAResult) -> "AskResponse":
        if result.found:
            return cls(
                document_id=request.document_id,
                version=request.version,
                found=True,
                answer=result.text,
                start=result.start_offset,
                end=result.end_offset,
                score=result.score,
                truncated=result.truncated,
            )
        return cls(
            document_id=request.document_id,
            version=request.version,
            found=False,
            score=result.best_score,
            truncated=result.truncated,
            reason=result.reason,
        )

class UploadResponse(BaseModel):
    filename: str
    document: DocumentSummary
    num_chars: int
    message: str

class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None
