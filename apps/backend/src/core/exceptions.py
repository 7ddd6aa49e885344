class DomainError(Exception):
    """Base class for domain-specific errors."""

    pass


class SessionNotFoundError(DomainError):
    """Raised when a chat session has no persisted turns or does not exist."""

    pass


class ArtifactsNotFoundError(DomainError):
    """Raised when no cached code artifacts exist for a chat session."""

    pass
