# nutricache/domain/errors.py
from typing import Optional


class CatalogError(Exception):
    """Base class for catalog synchronization failures."""


class CatalogApiError(CatalogError):
    """The commerce API answered, but with GraphQL errors or a payload we cannot read."""


class RateLimitedError(CatalogError):
    """The product detail source answered 429 Too Many Requests."""

    def __init__(self, handle: str, retry_after: Optional[float] = None):
        super().__init__(f"rate limited while fetching product page handle={handle}")
        self.handle = handle
        self.retry_after = retry_after


class CatalogUnavailableError(CatalogError):
    """Refresh failed and there is no previous snapshot to fall back on."""
