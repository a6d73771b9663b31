"""
Span selection over start/end logits.
"""

import logging
from typing import Optional

import numpy as np

from app.errors import InferenceError
from app.types import Answer, LogitVector, NoAnswerFound, QAResult, TokenizedInput

logger = logging.getLogger(__name__)


def decode(
    tokenized: TokenizedInput,
    logits: LogitVector,
    max_answer_tokens: int = 30,
    min_score: Optional[float] = None,
) -> QAResult:
    """
    Pick the document span (s, e) maximizing start_scores[s] + end_scores[e].

    Only pairs with s <= e, at most `max_answer_tokens` long, and both ends on
    non-special document tokens are admissible. Ties go to the shorter span,
    then to the smaller s. A best score below `min_score` yields NoAnswerFound.
    """
    if max_answer_tokens < 1:
        raise ValueError("max_answer_tokens must be at least 1")
    if len(logits.start_scores) != len(tokenized.tokens) or len(logits.end_scores) != len(tokenized.tokens):
        raise InferenceError(
            f"Got {len(logits.start_scores)}/{len(logits.end_scores)} scores "
            f"for {len(tokenized.tokens)} tokens"
        )

    lo, hi = tokenized.document_start, tokenized.document_end
    n = hi - lo
    if n <= 0:
        return NoAnswerFound(reason="no_document_tokens", truncated=tokenized.truncated)

    start = np.asarray(logits.start_scores, dtype=np.float64)[lo:hi]
    end = np.asarray(logits.end_scores, dtype=np.float64)[lo:hi]
    usable = np.array([not t.is_special for t in tokenized.document_tokens])

    # scores[i, j] = start[i] + end[j]; lengths[i, j] = j - i + 1
    scores = start[:, None] + end[None, :]
    idx = np.arange(n)
    lengths = idx[None, :] - idx[:, None] + 1
    admissible = (lengths >= 1) & (lengths <= max_answer_tokens)
    admissible &= usable[:, None] & usable[None, :]
    if not admissible.any():
        return NoAnswerFound(reason="no_admissible_span", truncated=tokenized.truncated)

    masked = np.where(admissible, scores, -np.inf)
    best = float(masked.max())
    if min_score is not None and best < min_score:
        logger.info("Best span score %.3f below threshold %.3f", best, min_score)
        return NoAnswerFound(reason="below_threshold", best_score=best, truncated=tokenized.truncated)

    rows, cols = np.nonzero(masked == best)
    # primary key: span length, secondary: start index
    winner = np.lexsort((rows, cols - rows))[0]
    s, e = int(rows[winner]) + lo, int(cols[winner]) + lo

    tokens = tokenized.tokens
    start_offset = tokens[s].start_offset
    end_offset = tokens[e].end_offset
    # the span may run into text the encoder never saw
    near_cut = tokenized.truncated and (hi - 1 - e) < max_answer_tokens
    return Answer(
        text=tokenized.document[start_offset:end_offset],
        start_offset=start_offset,
        end_offset=end_offset,
        score=best,
        truncated=near_cut,
    )
