from __future__ import annotations


class HRSError(Exception):
    """Base class for errors raised by the hot-reload server."""


class ConfigReadError(HRSError):
    """The dotenv file is missing, unreadable or not decodable."""


class ConnectError(HRSError):
    """The database could not be reached, authenticated or probed in time."""


class CloseError(HRSError):
    """Tearing down a pool or a listener failed. The resource counts as released."""


class QueryError(HRSError):
    """A query failed on an open pool."""


class DatabaseUnavailable(HRSError):
    """No open pool is available for queries."""


class ServerStartError(HRSError):
    """The HTTP listener could not be bound or did not come up."""
