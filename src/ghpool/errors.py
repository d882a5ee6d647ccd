class GHPoolError(Exception):
    """Base class for errors raised by ghpool."""


class InvalidConfiguration(GHPoolError, ValueError):
    """Token configuration produced no usable credential where one was required."""


class RemoteNotFound(GHPoolError):
    """GitHub answered 404 for the requested resource."""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url


class PoolClosed(GHPoolError):
    """The pool was closed; its handles are gone."""
