"""Errors raised by the model stream adapters.

Every provider failure surfaces as an ``UpstreamError`` subclass with a
stable ``error_code`` so the orchestrator can report and log it uniformly
without knowing which provider produced it.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, eq=False)
class UpstreamError(Exception):
    """Base class for upstream model provider failures."""

    message: str
    error_code: str
    provider: str = "unknown"
    status_code: int | None = None

    def __str__(self) -> str:
        status = f" [{self.status_code}]" if self.status_code is not None else ""
        return f"{self.provider} {self.error_code}{status}: {self.message}"


class UpstreamStatusError(UpstreamError):
    def __init__(
        self,
        provider: str,
        status_code: int,
        message: str = "Provider returned a non-success status",
    ) -> None:
        super().__init__(
            message=message,
            error_code="upstream_status",
            provider=provider,
            status_code=status_code,
        )


class UpstreamConnectionError(UpstreamError):
    def __init__(
        self, provider: str, message: str = "Connection to provider failed"
    ) -> None:
        super().__init__(
            message=message, error_code="upstream_connection", provider=provider
        )


class UpstreamProtocolError(UpstreamError):
    def __init__(
        self, provider: str, message: str = "Malformed frame in provider stream"
    ) -> None:
        super().__init__(
            message=message, error_code="upstream_protocol", provider=provider
        )


class UpstreamIncompleteError(UpstreamError):
    def __init__(
        self,
        provider: str,
        message: str = "Provider stream ended before its terminal frame",
    ) -> None:
        super().__init__(
            message=message, error_code="upstream_incomplete", provider=provider
        )


class UpstreamProviderError(UpstreamError):
    def __init__(
        self, provider: str, message: str = "Provider reported an error"
    ) -> None:
        super().__init__(
            message=message, error_code="upstream_provider", provider=provider
        )
