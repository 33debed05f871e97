from __future__ import annotations


class ShortVideoError(Exception):
    """Base class for every error raised by the short video service."""


class ValidationError(ShortVideoError, ValueError):
    pass


class NotFoundError(ShortVideoError, LookupError):
    pass


class ConflictError(ShortVideoError):
    pass


class ProviderError(ShortVideoError):
    """Upstream failure from footage search, narration or alignment."""


class ProviderTimeoutError(ProviderError, TimeoutError):
    """An upstream call exceeded its deadline."""


class RenderError(ShortVideoError):
    pass


class JobCancelledError(ShortVideoError):
    pass
