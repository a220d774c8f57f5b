"""Exception types shared across the classification and storage layers."""

from __future__ import annotations

from typing import Optional


class MemoryGardenError(RuntimeError):
    """Base class for memory garden failures."""


class ClassifierError(MemoryGardenError):
    """Any failure on the way to a model-derived analysis.

    The classifier never lets these escape; each one routes the memory to the
    heuristic fallback.
    """

    reason = "classifier_error"

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConfigError(ClassifierError):
    """The external service credential is missing or the classifier is disabled."""

    reason = "config"


class AuthError(ClassifierError):
    """The external service rejected the credential (401/403)."""

    reason = "auth"


class NotFoundError(ClassifierError):
    """The configured model or endpoint does not exist (404)."""

    reason = "not_found"


class ServiceError(ClassifierError):
    """Any other non-2xx answer from the external service."""

    reason = "service"


class TransientError(ClassifierError):
    """Timeout or connection failure."""

    reason = "transient"


class ParseError(ClassifierError):
    """The model answered, but nothing usable could be extracted."""

    reason = "parse"


class StorageError(MemoryGardenError):
    """A persisted record (cache entry, memory batch, cluster file) could not be read or written."""


class MemoryNotFoundError(MemoryGardenError):
    """An operation named a memory id that is not in the store."""

    def __init__(self, memory_id: str) -> None:
        super().__init__(f"Memory not found: {memory_id}")
        self.memory_id = memory_id


class ClusterNotFoundError(MemoryGardenError):
    """A cluster identifier resolved to neither an action bucket nor a stored record."""

    def __init__(self, cluster_id: str) -> None:
        super().__init__(f"Cluster not found: {cluster_id}")
        self.cluster_id = cluster_id
