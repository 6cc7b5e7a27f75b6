"""Error taxonomy of the RAG core.

Every error that crosses the core boundary is a RAGError carrying a stable,
machine-readable ``kind`` plus a human-readable message. Provider payloads and
stack traces are logged where they occur and never attached to the message.
"""


class RAGError(Exception):
    """Base class for all errors surfaced by the RAG core.

    Attributes:
        kind:    Stable machine-readable error kind (e.g. "validation_error").
        message: Human-readable description, safe to show to API callers.
    """

    kind: str = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        """Serialise the error for API responses."""
        return {"kind": self.kind, "message": self.message}


class ValidationError(RAGError):
    """Bad or missing input. Always raised before any network call."""

    kind = "validation_error"


class AuthorizationError(RAGError):
    """Session or tenant ownership mismatch."""

    kind = "authorization_error"


class NotFoundError(RAGError):
    """Unknown session, video or message."""

    kind = "not_found"


class ProviderError(RAGError):
    """Embedding, generation or datastore provider failure.

    Attributes:
        status_code: HTTP status returned by the provider, if any.
        retryable:   True for transient failures (timeouts, 429, 5xx).
    """

    kind = "provider_error"

    def __init__(self, message: str, status_code: int | None = None, retryable: bool = False) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class GenerationUnavailableError(ProviderError):
    """The language model could not produce an answer after all retries."""

    kind = "generation_unavailable"

    def __init__(self, message: str = "Couldn't generate an answer right now. Please try again later.") -> None:
        super().__init__(message, retryable=False)


class RateLimitedError(RAGError):
    """Raised by the external rate limiter; passed through untouched."""

    kind = "rate_limited"


class PartialIngestionError(RAGError):
    """Embeddings were produced for some but not all chunks of a video.

    Treated as a total ingestion failure: the video's chunks are rolled back.

    Attributes:
        video_id:  The video whose ingestion failed.
        generated: Number of vectors produced before the failure.
        expected:  Number of chunks that needed a vector.
    """

    kind = "partial_ingestion"

    def __init__(self, video_id: str, generated: int, expected: int) -> None:
        super().__init__(
            f"Embedding failed for video '{video_id}' after {generated} of {expected} chunks; ingestion rolled back."
        )
        self.video_id = video_id
        self.generated = generated
        self.expected = expected
