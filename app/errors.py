class QAError(Exception):
    """Base class for failures scoped to a single question-answering request."""


class TokenizationError(QAError):
    """Raised when input text is empty or the vocabulary cannot be used."""


class VocabularyError(TokenizationError):
    """Raised when the vocabulary or tokenizer resource cannot be loaded."""


class InferenceError(QAError):
    """Raised when the encoder is unavailable or returns malformed scores."""
