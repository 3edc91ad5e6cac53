"""Error taxonomy for provider calls and the durable cache."""

import requests


class MarketDataError(Exception):
    """Base class for market data failures."""

    retryable = False

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class NetworkError(MarketDataError):
    """No response received (timeout, connection failure)."""

    retryable = True


class RateLimitError(MarketDataError):
    """Provider answered HTTP 429."""

    retryable = True


class ServerError(MarketDataError):
    """Provider answered HTTP 5xx."""

    retryable = True


class ClientError(MarketDataError):
    """Provider answered a 4xx other than 429."""


class ProviderDataError(MarketDataError):
    """Provider answered 2xx with a payload that cannot be used."""


class CacheCorruptionError(MarketDataError):
    """The durable cache snapshot could not be parsed."""


def error_for_status(status_code: int, url: str) -> MarketDataError:
    """Map an HTTP error status to its error class."""
    message = f"HTTP {status_code} from {url}"
    if status_code == 429:
        return RateLimitError(message, url=url, status_code=status_code)
    if status_code >= 500:
        return ServerError(message, url=url, status_code=status_code)
    return ClientError(message, url=url, status_code=status_code)


def error_for_exception(exc: requests.RequestException, url: str) -> MarketDataError:
    """Map a requests exception raised before any response arrived."""
    response = getattr(exc, "response", None)
    if response is not None:
        return error_for_status(response.status_code, url)
    return NetworkError(f"{type(exc).__name__} calling {url}: {exc}", url=url)
