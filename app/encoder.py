"""
Encoder invocation: token ids in, per-position start/end scores out.
"""

import inspect
import logging
import time
from typing import Callable, Optional, Protocol, Sequence, Tuple

import numpy as np

from app.errors import InferenceError
from app.types import LogitVector

logger = logging.getLogger(__name__)


class Encoder(Protocol):
    """Deterministic, costly mapping from a token-id sequence to a LogitVector."""

    def infer(self, token_ids: Sequence[int]) -> LogitVector:
        raise NotImplementedError


def validate_logits(start_scores, end_scores, expected_length: int) -> LogitVector:
    """
    Check that both score vectors are 1-D, finite and one score per token.
    """
    try:
        start = np.array(start_scores, dtype=np.float64).reshape(-1)
        end = np.array(end_scores, dtype=np.float64).reshape(-1)
    except (TypeError, ValueError) as exc:
        raise InferenceError(f"Encoder returned non-numeric scores: {exc}") from exc
    if len(start) != expected_length or len(end) != expected_length:
        raise InferenceError(
            f"Encoder returned {len(start)}/{len(end)} scores for {expected_length} tokens"
        )
    if not (np.all(np.isfinite(start)) and np.all(np.isfinite(end))):
        raise InferenceError("Encoder returned non-finite scores")
    start.setflags(write=False)
    end.setflags(write=False)
    return LogitVector(start_scores=start, end_scores=end)


def _check_input(token_ids: Sequence[int], max_length: Optional[int]) -> None:
    if not token_ids:
        raise InferenceError("Cannot run the encoder on an empty token sequence")
    if max_length is not None and len(token_ids) > max_length:
        raise InferenceError(f"Token sequence of {len(token_ids)} exceeds encoder limit {max_length}")


class CallableEncoder:
    """
    Adapts a plain function `ids -> (start_scores, end_scores)` to the Encoder contract.
    """

    def __init__(self, fn: Callable[[Sequence[int]], Tuple], max_length: Optional[int] = None):
        self.fn = fn
        self.max_length = max_length

    def infer(self, token_ids: Sequence[int]) -> LogitVector:
        _check_input(token_ids, self.max_length)
        try:
            start, end = self.fn(token_ids)
        except InferenceError:
            raise
        except Exception as exc:
            raise InferenceError(f"Encoder call failed: {exc}") from exc
        return validate_logits(start, end, len(token_ids))


class TransformersEncoder:
    """
    Extractive QA head of a Hugging Face checkpoint, loaded once and shared.

    Inference runs under `torch.no_grad()` with the model in eval mode, so
    concurrent calls only read the weights.
    """

    def __init__(self, model_name: str, sep_token_id: int, device: str = "cpu", max_length: int = 384):
        self.model_name = model_name
        self.sep_token_id = sep_token_id
        self.max_length = max_length
        try:
            import torch
            from transformers import AutoModelForQuestionAnswering
        except ImportError as exc:
            raise InferenceError("torch and transformers are required for TransformersEncoder") from exc
        self._torch = torch
        started = time.perf_counter()
        try:
            model = AutoModelForQuestionAnswering.from_pretrained(model_name)
        except (OSError, ValueError) as exc:
            raise InferenceError(f"Encoder model {model_name!r} unavailable: {exc}") from exc
        self.device = torch.device(device)
        self._model = model.to(self.device).eval()
        # DistilBERT-style heads take no segment ids
        self._uses_segments = "token_type_ids" in inspect.signature(self._model.forward).parameters
        logger.info(
            "Loaded encoder %s on %s in %.2fs", model_name, self.device, time.perf_counter() - started
        )

    def _segments(self, token_ids: Sequence[int]):
        # 0 through the first separator (question part), 1 afterwards
        try:
            boundary = list(token_ids).index(self.sep_token_id) + 1
        except ValueError:
            boundary = len(token_ids)
        return [0] * boundary + [1] * (len(token_ids) - boundary)

    def infer(self, token_ids: Sequence[int]) -> LogitVector:
        _check_input(token_ids, self.max_length)
        torch = self._torch
        input_ids = torch.tensor([list(token_ids)], dtype=torch.long, device=self.device)
        inputs = {"input_ids": input_ids, "attention_mask": torch.ones_like(input_ids)}
        if self._uses_segments:
            inputs["token_type_ids"] = torch.tensor(
                [self._segments(token_ids)], dtype=torch.long, device=self.device
            )
        try:
            with torch.no_grad():
                outputs = self._model(**inputs)
        except RuntimeError as exc:
            raise InferenceError(f"Encoder forward pass failed: {exc}") from exc
        start = outputs.start_logits[0].detach().cpu().numpy()
        end = outputs.end_logits[0].detach().cpu().numpy()
        return validate_logits(start, end, len(token_ids))
