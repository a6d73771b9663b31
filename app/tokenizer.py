"""
Reversible subword tokenization on top of a Hugging Face fast tokenizer.

The tokenizer the model was trained with does the normalization and
WordPiece split; its offset mapping ties every document token to the
`[start, end)` character range it was cut from, so an answer span can
always be sliced back out of the untouched text.
"""

import logging
import os
from typing import Optional

from app.errors import TokenizationError, VocabularyError
from app.types import Token, TokenizedInput

logger = logging.getLogger(__name__)


class Tokenizer:
    """
    Builds `[CLS] question [SEP] document [SEP]` sequences for one request.

    Truncation is configured once here; afterwards `encode` only reads the
    backend, so one instance can be shared across worker threads.
    """

    def __init__(
        self,
        backend,
        max_sequence_length: int = 384,
        cls_token: str = "[CLS]",
        sep_token: str = "[SEP]",
        unk_token: str = "[UNK]",
    ):
        if max_sequence_length < 4:
            raise ValueError("max_sequence_length must leave room for markers and text")
        marker_ids = {}
        for marker in (cls_token, sep_token, unk_token):
            marker_ids[marker] = backend.token_to_id(marker)
        missing = [m for m, i in marker_ids.items() if i is None]
        if missing:
            raise VocabularyError(f"Vocabulary is missing marker tokens: {', '.join(missing)}")
        self.backend = backend
        self.max_sequence_length = max_sequence_length
        self.cls_id = marker_ids[cls_token]
        self.sep_id = marker_ids[sep_token]
        self.unk_id = marker_ids[unk_token]
        # the question is never cut; only the document loses its tail
        backend.no_padding()
        backend.enable_truncation(max_sequence_length, strategy="only_second")

    @classmethod
    def from_pretrained(cls, model_name: str, max_sequence_length: int = 384) -> "Tokenizer":
        """Use the fast tokenizer shipped with a Hugging Face checkpoint."""
        try:
            from transformers import AutoTokenizer
            hf_tokenizer = AutoTokenizer.from_pretrained(model_name, use_fast=True)
        except (ImportError, OSError, ValueError) as exc:
            raise VocabularyError(f"Tokenizer for {model_name!r} unavailable: {exc}") from exc
        if not hf_tokenizer.is_fast:
            raise VocabularyError(f"{model_name!r} has no fast tokenizer with offset mapping")
        logger.info("Loaded tokenizer of %s (%d entries)", model_name, len(hf_tokenizer))
        return cls(
            hf_tokenizer.backend_tokenizer,
            max_sequence_length=max_sequence_length,
            cls_token=hf_tokenizer.cls_token,
            sep_token=hf_tokenizer.sep_token,
            unk_token=hf_tokenizer.unk_token,
        )

    @classmethod
    def from_vocab_file(cls, path, lowercase: bool = True, max_sequence_length: int = 384) -> "Tokenizer":
        """
        Build a BERT WordPiece tokenizer from a vocab file: one subword per
        line, id = line number.
        """
        if not os.path.isfile(path):
            raise VocabularyError(f"Vocabulary file unavailable: {path}")
        try:
            from tokenizers import BertWordPieceTokenizer
            backend = BertWordPieceTokenizer(str(path), lowercase=lowercase)
        except Exception as exc:
            # tokenizers reports unreadable vocab files and missing markers with
            # plain Exception/TypeError
            raise VocabularyError(f"Vocabulary file {path} unusable: {exc}") from exc
        logger.info("Loaded vocabulary from %s (%d entries)", os.path.basename(str(path)), backend.get_vocab_size())
        return cls(backend, max_sequence_length=max_sequence_length)

    def tokenize(self, question: str, document: str) -> TokenizedInput:
        if not question or not question.strip():
            raise TokenizationError("Question is empty.")
        if not document or not document.strip():
            raise TokenizationError("Document is empty.")

        try:
            encoding = self.backend.encode(question, document)
        except Exception as exc:
            # raised when the question alone leaves no room for the document
            raise TokenizationError(
                f"Question leaves no room for the document within {self.max_sequence_length} positions: {exc}"
            ) from exc

        sequence_ids = encoding.sequence_ids
        question_positions = [i for i, s in enumerate(sequence_ids) if s == 0]
        document_positions = [i for i, s in enumerate(sequence_ids) if s == 1]
        if not question_positions:
            raise TokenizationError("Question contains no tokenizable text.")
        if not document_positions:
            if encoding.overflowing:
                raise TokenizationError(
                    f"Question uses {len(question_positions)} tokens; "
                    f"no room left for the document within {self.max_sequence_length} positions."
                )
            raise TokenizationError("Document contains no tokenizable text.")

        tokens = []
        for text, token_id, (start, end), sequence_id in zip(
            encoding.tokens, encoding.ids, encoding.offsets, sequence_ids
        ):
            if sequence_id == 1:
                tokens.append(Token(text, token_id, start, end))
            else:
                # question offsets point into the question, never into the document
                tokens.append(Token(text, token_id, is_special=sequence_id is None))

        truncated = bool(encoding.overflowing)
        if truncated:
            logger.info(
                "Document truncated to %d tokens (%d of %d chars scanned)",
                len(document_positions),
                tokens[document_positions[-1]].end_offset,
                len(document),
            )
        return TokenizedInput(
            tokens=tuple(tokens),
            document=document,
            document_start=document_positions[0],
            document_end=document_positions[-1] + 1,
            truncated=truncated,
        )


def build_tokenizer(
    model_name: str,
    vocab_path: Optional[str] = None,
    lowercase: bool = True,
    max_sequence_length: int = 384,
) -> Tokenizer:
    if vocab_path:
        return Tokenizer.from_vocab_file(vocab_path, lowercase=lowercase, max_sequence_length=max_sequence_length)
    return Tokenizer.from_pretrained(model_name, max_sequence_length=max_sequence_length)
