import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _optional_float(raw: Optional[str]) -> Optional[float]:
    if raw is None or raw.strip().lower() in {"", "none", "off"}:
        return None
    return float(raw)


@dataclass(frozen=True)
class Settings:
    model_name: str = os.getenv("QA_MODEL_NAME", "distilbert-base-uncased-distilled-squad")
    vocab_path: Optional[str] = os.getenv("QA_VOCAB_PATH") or None
    lowercase: bool = os.getenv("QA_LOWERCASE", "true").lower() in {"1", "true", "yes"}
    max_sequence_length: int = int(os.getenv("QA_MAX_SEQUENCE_LENGTH", "384"))
    max_answer_tokens: int = int(os.getenv("QA_MAX_ANSWER_TOKENS", "30"))
    min_score: Optional[float] = _optional_float(os.getenv("QA_MIN_SCORE", "0.0"))
    workers: int = int(os.getenv("QA_WORKERS", "2"))
    device: str = os.getenv("QA_DEVICE", "cpu")
    documents_path: str = os.getenv("DOCUMENTS_PATH", "documents.json")
    max_upload_mb: int = int(os.getenv("MAX_UPLOAD_MB", "25"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


settings = Settings()
