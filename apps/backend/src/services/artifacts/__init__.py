from services.artifacts.cache import ArtifactCache


__all__ = ["ArtifactCache"]
