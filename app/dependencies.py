import threading
from functools import lru_cache
from typing import Optional

from app.config import settings
from app.documents import DocumentStore
from app.encoder import TransformersEncoder
from app.service import AnswerService
from app.tokenizer import build_tokenizer

# FastAPI runs sync dependencies on a thread pool, so concurrent first
# requests would otherwise each load the model
_service_lock = threading.Lock()
_service: Optional[AnswerService] = None


@lru_cache
def get_document_store() -> DocumentStore:
    return DocumentStore.load(settings.documents_path)


def build_answer_service() -> AnswerService:
    """
    Load the vocabulary and encoder; every request shares them read-only.
    """
    tokenizer = build_tokenizer(
        settings.model_name,
        vocab_path=settings.vocab_path,
        lowercase=settings.lowercase,
        max_sequence_length=settings.max_sequence_length,
    )
    encoder = TransformersEncoder(
        settings.model_name,
        sep_token_id=tokenizer.sep_id,
        device=settings.device,
        max_length=settings.max_sequence_length,
    )
    return AnswerService(
        tokenizer,
        encoder,
        max_answer_tokens=settings.max_answer_tokens,
        min_score=settings.min_score,
        max_workers=settings.workers,
    )


def get_answer_service() -> AnswerService:
    global _service
    with _service_lock:
        if _service is None:
            _service = build_answer_service()
        return _service


def loaded_answer_service() -> Optional[AnswerService]:
    return _service


def reset_caches() -> None:
    global _service
    get_document_store.cache_clear()
    with _service_lock:
        _service = None
