class ScanError(Exception):
    """Base scan exception."""


class FetchError(ScanError):
    """Raised when a single area lookup against the upstream API failed."""


class NetworkError(FetchError):
    """Raised when the upstream API could not be reached."""


class FetchTimeoutError(NetworkError):
    """Raised when the upstream API did not answer within the request timeout."""


class DecodeError(FetchError):
    """Raised when the upstream response is not valid json or reports a non-200 code."""


class PersistenceError(ScanError):
    """Raised when the area store rejected a read or write."""


class ConfigError(ScanError):
    """Raised when the configuration cannot be used to start a scan."""


class ExportError(ScanError):
    """Raised when there is nothing to export."""
