"""Shared pytest fixtures and test environment defaults."""

import os
import tempfile
from pathlib import Path

import numpy as np
import pytest

os.environ.setdefault("DOCUMENTS_PATH", str(Path(tempfile.mkdtemp()) / "documents.json"))
os.environ.setdefault("QA_MIN_SCORE", "none")

from app.encoder import CallableEncoder
from app.tokenizer import Tokenizer

FOX_TEXT = "The quick brown fox jumps over the lethargic dog."
FOX_QUESTION = "What does the fox jump over?"

VOCAB = [
    "[PAD]", "[UNK]", "[CLS]", "[SEP]",
    "the", "quick", "brown", "fox", "jump", "##s", "over", "le", "##thar", "##gic", "dog",
    "what", "does", "where", "did", "is", "a", "cat", "sat", "on", "mat", "open",
    "caf", "##e", "un", "##believ", "##able", "co", "##oper", "##ate", "email", "price", "42",
    ".", ",", "?", "!", "'", ":",
]


def write_vocab(path: Path, tokens=VOCAB) -> Path:
    path.write_text("\n".join(tokens) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def vocab_path(tmp_path) -> Path:
    return write_vocab(tmp_path / "vocab.txt")


@pytest.fixture
def tokenizer(vocab_path: Path) -> Tokenizer:
    return Tokenizer.from_vocab_file(vocab_path, lowercase=True, max_sequence_length=64)


def make_span_encoder(tokenizer: Tokenizer, answer: str, on_call=None) -> CallableEncoder:
    """
    Encoder stand-in that scores the first document occurrence of `answer`
    with a high start logit on its first token and a high end logit on its last.
    """
    answer_ids = list(tokenizer.backend.encode(answer, add_special_tokens=False).ids)

    def fn(token_ids):
        ids = list(token_ids)
        if on_call is not None:
            on_call(ids)
        start = np.zeros(len(ids))
        end = np.zeros(len(ids))
        document_start = ids.index(tokenizer.sep_id) + 1
        for i in range(document_start, len(ids) - len(answer_ids) + 1):
            if ids[i:i + len(answer_ids)] == answer_ids:
                start[i] = 5.0
                end[i + len(answer_ids) - 1] = 5.0
                break
        return start, end

    return CallableEncoder(fn)


@pytest.fixture
def span_encoder(tokenizer: Tokenizer):
    def factory(answer: str, on_call=None) -> CallableEncoder:
        return make_span_encoder(tokenizer, answer, on_call=on_call)

    return factory
