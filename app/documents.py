import json
import logging
import os
import threading
import uuid
from dataclasses import asdict, dataclass, field, replace
from typing import Dict, List, Optional

from app.types import QARequest

logger = logging.getLogger(__name__)

EXAMPLE_TITLE = "Fox & Dog"
EXAMPLE_TEXT = "The quick brown fox jumps over the lethargic dog."
DEFAULT_TITLE = "New Document"


@dataclass(frozen=True)
class Document:
    title: str = DEFAULT_TITLE
    body: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    version: int = 1


class DocumentStore:
    """
    In-memory document collection, newest first.

    Replacing a body bumps the version, which is how answers computed
    against an older snapshot are recognized as stale.
    """

    def __init__(self, documents: Optional[List[Document]] = None):
        self._lock = threading.Lock()
        self._docs: Dict[str, Document] = {}
        for doc in documents or []:
            self._docs[doc.id] = doc

    @classmethod
    def with_example(cls) -> "DocumentStore":
        return cls([Document(title=EXAMPLE_TITLE, body=EXAMPLE_TEXT)])

    def __len__(self) -> int:
        with self._lock:
            return len(self._docs)

    def list(self) -> List[Document]:
        with self._lock:
            return list(reversed(list(self._docs.values())))

    def get(self, document_id: str) -> Optional[Document]:
        with self._lock:
            return self._docs.get(document_id)

    def create(self, title: str = DEFAULT_TITLE, body: str = "") -> Document:
        doc = Document(title=title or DEFAULT_TITLE, body=body)
        with self._lock:
            self._docs[doc.id] = doc
        logger.info("Created document %s (%r)", doc.id, doc.title)
        return doc

    def replace_body(self, document_id: str, body: str, title: Optional[str] = None) -> Optional[Document]:
        with self._lock:
            doc = self._docs.get(document_id)
            if doc is None:
                return None
            updated = replace(
                doc,
                body=body,
                title=title or doc.title,
                version=doc.version + 1 if body != doc.body else doc.version,
            )
            self._docs[document_id] = updated
            return updated

    def delete(self, document_id: str) -> bool:
        with self._lock:
            return self._docs.pop(document_id, None) is not None

    def snapshot(self, document_id: str, question: str) -> Optional[QARequest]:
        """Freeze the current body and version of a document for one question."""
        doc = self.get(document_id)
        if doc is None:
            return None
        return QARequest(document_id=doc.id, body=doc.body, question=question, version=doc.version)

    def is_current(self, request: QARequest) -> bool:
        doc = self.get(request.document_id)
        return doc is not None and doc.version == request.version

    def save(self, path: str) -> None:
        with self._lock:
            payload = [asdict(doc) for doc in self._docs.values()]
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)

    @classmethod
    def load(cls, path: str) -> "DocumentStore":
        """
        Load a saved collection; fall back to the example document when
        nothing has been saved yet.
        """
        if not os.path.exists(path):
            return cls.with_example()
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
        return cls([Document(**item) for item in payload])
