"""Error types raised while fetching and configuring topology snapshots"""

from typing import Optional


class FetchError(Exception):
    """Base class for failures while fetching a graph snapshot"""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class NetworkError(FetchError):
    """Connection failure or request timeout"""


class HttpError(FetchError):
    """Non-success HTTP response"""

    def __init__(self, status_code: int, reason: str = ""):
        super().__init__(f"HTTP {status_code}: {reason or 'request failed'}")
        self.status_code = status_code
        self.reason = reason


class ParseError(FetchError):
    """Malformed response body"""


class EmptyDataError(FetchError):
    """Snapshot contained no nodes; usually the collector has not finished a cluster query"""

    def __init__(self, snapshot):
        super().__init__("Snapshot contains no nodes")
        self.snapshot = snapshot


class ConfigurationError(Exception):
    """Invalid viewer configuration"""
