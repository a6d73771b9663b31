"""Value types passed between the tokenizer, encoder, decoder and service."""

from dataclasses import dataclass
from typing import Optional, Tuple, Union

import numpy as np

# Offset used for question and marker tokens, which never map into the document.
NO_OFFSET = -1


@dataclass(frozen=True)
class Token:
    text: str
    token_id: int
    start_offset: int = NO_OFFSET
    end_offset: int = NO_OFFSET
    is_special: bool = False


@dataclass(frozen=True)
class TokenizedInput:
    """
    `[CLS] question [SEP] document [SEP]` for one request.

    Document tokens occupy `tokens[document_start:document_end]` and carry
    offsets into `document`; every other position has NO_OFFSET.
    """
    tokens: Tuple[Token, ...]
    document: str
    document_start: int
    document_end: int
    truncated: bool = False

    @property
    def token_ids(self) -> Tuple[int, ...]:
        return tuple(token.token_id for token in self.tokens)

    @property
    def document_tokens(self) -> Tuple[Token, ...]:
        return self.tokens[self.document_start:self.document_end]

    @property
    def scanned_chars(self) -> int:
        """Number of leading document characters the tokens cover."""
        if self.document_end <= self.document_start:
            return 0
        if not self.truncated:
            return len(self.document)
        return self.tokens[self.document_end - 1].end_offset


@dataclass(frozen=True)
class LogitVector:
    start_scores: np.ndarray
    end_scores: np.ndarray

    def __len__(self) -> int:
        return len(self.start_scores)


@dataclass(frozen=True)
class Answer:
    text: str
    start_offset: int
    end_offset: int
    score: float
    truncated: bool = False

    found = True


@dataclass(frozen=True)
class NoAnswerFound:
    """A valid outcome: no admissible span scored at or above the threshold."""
    reason: str
    best_score: Optional[float] = None
    truncated: bool = False

    found = False


QAResult = Union[Answer, NoAnswerFound]


@dataclass(frozen=True)
class QARequest:
    """Immutable snapshot of a document taken when a question is submitted."""
    document_id: str
    body: str
    question: str
    version: int = 0
