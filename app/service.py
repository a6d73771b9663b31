"""
Answer service: runs tokenize → infer → decode on worker threads.

The service keeps no per-document state. Two questions about the same
document both run to completion; the caller decides which result is still
current by comparing the snapshot version it submitted with the live one.
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, Optional

from app.decoder import decode
from app.encoder import Encoder
from app.tokenizer import Tokenizer
from app.types import QARequest, QAResult

logger = logging.getLogger(__name__)

# Receives a zero-argument callable and runs it in the consumer's context,
# e.g. `loop.call_soon_threadsafe` or `executor.submit`.
Deliver = Callable[[Callable[[], None]], Any]
ResultCallback = Callable[[QARequest, "Future[QAResult]"], None]


class AnswerService:
    def __init__(
        self,
        tokenizer: Tokenizer,
        encoder: Encoder,
        max_answer_tokens: int = 30,
        min_score: Optional[float] = None,
        max_workers: int = 2,
    ):
        self.tokenizer = tokenizer
        self.encoder = encoder
        self.max_answer_tokens = max_answer_tokens
        self.min_score = min_score
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="qa-worker")

    def answer(self, request: QARequest) -> QAResult:
        """
        Answer one request synchronously on the calling thread.
        """
        started = time.perf_counter()
        tokenized = self.tokenizer.tokenize(request.question, request.body)
        logits = self.encoder.infer(tokenized.token_ids)
        result = decode(
            tokenized,
            logits,
            max_answer_tokens=self.max_answer_tokens,
            min_score=self.min_score,
        )
        logger.info(
            "Answered document %s v%d in %.3fs (found=%s, truncated=%s)",
            request.document_id,
            request.version,
            time.perf_counter() - started,
            result.found,
            result.truncated,
        )
        return result

    def submit(
        self,
        document_id: str,
        body: str,
        question: str,
        version: int = 0,
        callback: Optional[ResultCallback] = None,
        deliver: Optional[Deliver] = None,
    ) -> "Future[QAResult]":
        """
        Schedule a request and return immediately.

        The future resolves to an Answer or NoAnswerFound, or carries the
        QAError that stopped the request. If `callback` is given it is called
        with `(request, future)` once done: through `deliver` when supplied,
        otherwise on the worker thread that finished the request.
        """
        request = QARequest(document_id=document_id, body=body, question=question, version=version)
        return self.submit_request(request, callback=callback, deliver=deliver)

    def submit_request(
        self,
        request: QARequest,
        callback: Optional[ResultCallback] = None,
        deliver: Optional[Deliver] = None,
    ) -> "Future[QAResult]":
        logger.debug("Submitting question for document %s v%d", request.document_id, request.version)
        future = self._executor.submit(self._run, request)
        if callback is not None:
            def on_done(done: "Future[QAResult]") -> None:
                if deliver is None:
                    callback(request, done)
                else:
                    deliver(partial(callback, request, done))

            future.add_done_callback(on_done)
        return future

    def _run(self, request: QARequest) -> QAResult:
        try:
            return self.answer(request)
        except Exception:
            logger.warning("Question on document %s v%d failed", request.document_id, request.version, exc_info=True)
            raise

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.shutdown()
