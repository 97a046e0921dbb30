"""
Pipeline exception taxonomy.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base exception for listing ingestion failures."""


class FetchError(PipelineError):
    """
    Raised when one fetch for a source cannot complete.
    """

    def __init__(
        self,
        message: str,
        *,
        source: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.source = source
        self.status_code = status_code


class NetworkError(FetchError):
    """
    Transient transport or server failure. Retried by the fetcher's own policy
    when ``retryable`` is set.
    """

    def __init__(
        self,
        message: str,
        *,
        source: str | None = None,
        status_code: int | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message, source=source, status_code=status_code)
        self.retryable = retryable


class RateLimitError(FetchError):
    """Raised when the origin or the local token reservoir refuses a request."""


class CircuitOpenError(FetchError):
    """Raised without touching the network while the circuit is open."""


class ProxyError(FetchError):
    """Raised when the configured proxy rejects or cannot relay a request."""


class ScrapeCancelledError(PipelineError):
    """Raised at the next suspension point after a scrape was cancelled."""


class ParseError(PipelineError):
    """Raised when markup cannot be turned into a document tree."""


class ConfigurationError(PipelineError):
    """
    Raised when scraper or queue options are incomplete or invalid.
    """

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class PublishError(PipelineError):
    """
    Raised when a message cannot be serialized or the broker does not
    acknowledge it in time. Only the latter is ``retryable``.
    """

    def __init__(self, message: str, *, topic: str, retryable: bool = True) -> None:
        super().__init__(message)
        self.topic = topic
        self.retryable = retryable
