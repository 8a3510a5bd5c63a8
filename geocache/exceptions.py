"""
Custom Exceptions for the Feature Cache.

Provides a hierarchy of cache exceptions for the different failure modes
of the caching layer. Every error is scoped to the call that raised it;
the cache instance remains usable afterwards.
"""


class FeatureCacheError(Exception):
    """
    Base exception for feature cache failures.

    All cache-specific exceptions inherit from this class,
    allowing for broad exception handling when needed.

    Attributes:
        message: Human-readable error description
        details: Additional context about the failure
    """

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


class SchemaMismatchError(FeatureCacheError):
    """
    Backing store does not have the requested feature type.

    Raised at construction time when the store has no schema for the
    type name, or when its schema differs from the requested one.

    Attributes:
        type_name: Requested feature type name
    """

    def __init__(self, type_name: str, reason: str = "not found in store"):
        message = f"Feature type '{type_name}' {reason}"
        super().__init__(message, {"type_name": type_name})
        self.type_name = type_name


class TypeMismatchError(FeatureCacheError, ValueError):
    """
    Query addresses a feature type the cache was not built for.

    Attributes:
        expected: Type name served by the cache
        actual: Type name found in the query
    """

    def __init__(self, expected: str, actual: str):
        message = f"Cache serves '{expected}', query asked for '{actual}'"
        super().__init__(message, {"expected": expected, "actual": actual})
        self.expected = expected
        self.actual = actual


class UnsupportedOperationError(FeatureCacheError, NotImplementedError):
    """
    Write-path operation invoked on the read-only cache layer.

    Attributes:
        operation: Name of the rejected operation
    """

    def __init__(self, operation: str):
        message = (
            f"'{operation}' is not supported by the cache, "
            f"write to the backing store instead"
        )
        super().__init__(message, {"operation": operation})
        self.operation = operation


class StoreReadError(FeatureCacheError, IOError):
    """
    Reading from the backing store failed.

    Attributes:
        type_name: Feature type being read
    """

    def __init__(self, type_name: str, cause: Exception):
        message = f"Failed to read '{type_name}' from backing store: {cause}"
        super().__init__(message, {"type_name": type_name})
        self.type_name = type_name


class SpatialIndexError(FeatureCacheError):
    """Spatial index is inconsistent with the cached features."""

    pass


class CacheFullError(FeatureCacheError):
    """Raised when cache is full and cannot evict entries."""

    pass
