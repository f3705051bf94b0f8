"""Error taxonomy for history queries."""


class UDFError(Exception):
    """Base exception for history query errors."""

    pass


class SymbolNotFound(UDFError):
    """Symbol is not in the exchange catalog."""

    pass


class InvalidResolution(UDFError):
    """Resolution or interval string cannot be mapped."""

    pass


class UpstreamFetchError(UDFError):
    """Upstream exchange call failed (network, rate limit, malformed response)."""

    pass


class CorruptCache(UDFError):
    """Persisted cache file cannot be parsed into candles."""

    pass


class CacheWriteError(UDFError):
    """Persisting a cache file failed; the previous file is left intact."""

    pass
