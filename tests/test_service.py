"""Answer service orchestration, delivery and concurrency tests."""

import queue
import threading

import numpy as np
import pytest

from app.encoder import CallableEncoder
from app.errors import InferenceError, TokenizationError
from app.service import AnswerService
from app.types import Answer, NoAnswerFound, QARequest

from conftest import FOX_QUESTION, FOX_TEXT


def test_answers_fox_question_with_exact_offsets(tokenizer, span_encoder) -> None:
    with AnswerService(tokenizer, span_encoder("the lethargic dog")) as service:
        result = service.submit("fox", FOX_TEXT, FOX_QUESTION).result(timeout=5)

    assert isinstance(result, Answer)
    assert result.text == "the lethargic dog"
    assert result.start_offset == FOX_TEXT.index("the lethargic dog")
    assert FOX_TEXT[result.start_offset:result.end_offset] == result.text
    assert not result.truncated


def test_synchronous_answer_matches_submitted_one(tokenizer, span_encoder) -> None:
    with AnswerService(tokenizer, span_encoder("brown fox")) as service:
        request = QARequest(document_id="fox", body=FOX_TEXT, question="what is brown?")
        assert service.answer(request) == service.submit_request(request).result(timeout=5)


def test_requests_for_same_document_resolve_against_own_snapshot(tokenizer, span_encoder) -> None:
    v1 = FOX_TEXT
    v2 = "A cat sat on the mat. " + FOX_TEXT
    # both requests must be inside the encoder at the same time to pass the barrier
    barrier = threading.Barrier(2, timeout=5)
    encoder = span_encoder("the lethargic dog", on_call=lambda ids: barrier.wait())

    with AnswerService(tokenizer, encoder, max_workers=2) as service:
        first = service.submit("doc", v1, FOX_QUESTION, version=1)
        second = service.submit("doc", v2, FOX_QUESTION, version=2)
        a1 = first.result(timeout=5)
        a2 = second.result(timeout=5)

    assert a1.text == a2.text == "the lethargic dog"
    assert v1[a1.start_offset:a1.end_offset] == a1.text
    assert v2[a2.start_offset:a2.end_offset] == a2.text
    assert a2.start_offset - a1.start_offset == len("A cat sat on the mat. ")


def test_callback_is_marshaled_through_deliver(tokenizer, span_encoder) -> None:
    handoff = queue.Queue()
    seen = []

    def on_result(request, future):
        seen.append((request.version, future.result().text, threading.current_thread()))

    with AnswerService(tokenizer, span_encoder("the lethargic dog")) as service:
        service.submit("fox", FOX_TEXT, FOX_QUESTION, version=3, callback=on_result, deliver=handoff.put)
        # run the delivered callback on this (consumer) thread
        handoff.get(timeout=5)()

    assert seen == [(3, "the lethargic dog", threading.current_thread())]


def test_callback_without_deliver_runs_when_done(tokenizer, span_encoder) -> None:
    done = threading.Event()
    received = []

    def on_result(request, future):
        received.append(request.document_id)
        done.set()

    with AnswerService(tokenizer, span_encoder("dog")) as service:
        service.submit("fox", FOX_TEXT, FOX_QUESTION, callback=on_result)
        assert done.wait(timeout=5)

    assert received == ["fox"]


def test_tokenization_error_surfaces_through_future(tokenizer, span_encoder) -> None:
    with AnswerService(tokenizer, span_encoder("dog")) as service:
        future = service.submit("empty", "   ", FOX_QUESTION)
        with pytest.raises(TokenizationError):
            future.result(timeout=5)


def test_inference_error_surfaces_through_future(tokenizer) -> None:
    encoder = CallableEncoder(lambda ids: (np.zeros(len(ids) - 1), np.zeros(len(ids))))
    with AnswerService(tokenizer, encoder) as service:
        future = service.submit("fox", FOX_TEXT, FOX_QUESTION)
        assert isinstance(future.exception(timeout=5), InferenceError)


def test_low_scores_resolve_to_no_answer(tokenizer) -> None:
    encoder = CallableEncoder(lambda ids: (np.full(len(ids), -3.0), np.full(len(ids), -3.0)))
    with AnswerService(tokenizer, encoder, min_score=0.0) as service:
        result = service.submit("fox", FOX_TEXT, FOX_QUESTION).result(timeout=5)

    assert isinstance(result, NoAnswerFound)
    assert result.reason == "below_threshold"
