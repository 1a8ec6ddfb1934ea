"""
Client Error Types

Every failure raised by the REST client, the signing helpers and the
WebSocket manager derives from ParadexError, so callers can catch the whole
family with a single except clause or handle the individual kinds.

Error kinds:
    - RestError: HTTP transport failure (connection refused, timeout, ...)
    - RestEmptyResponseError: 2xx response with an empty body
    - DeserializationError: response body could not be parsed
    - JsonParseError: WebSocket notification payload could not be parsed
    - ParadexAPIError: non-2xx response carrying an {error, message} body
    - HTTPStatusError: non-2xx response with no body
    - StarknetError: short-string encoding or curve operation failure
    - TypeConversionError: decimal quantization does not fit in 64 bits
    - TimeError: system clock is before the UNIX epoch
    - MissingPrivateKeyError: private endpoint called on a public client
    - WebSocketSendError: command submitted to a stopped WebSocket manager

Usage:
    from core.errors import ParadexAPIError

    try:
        await client.create_order(request)
    except ParadexAPIError as e:
        logger.error(f"Order rejected: {e.error} {e.message}")
"""

from typing import Optional


class ParadexError(Exception):
    """Base class for all client errors"""


class RestError(ParadexError):
    """HTTP transport failure"""


class RestEmptyResponseError(ParadexError):
    """Successful HTTP status with an empty body"""

    def __init__(self, message: str = "Rest Empty Response"):
        super().__init__(message)


class DeserializationError(ParadexError):
    """Response body could not be decoded into the expected model"""


class JsonParseError(DeserializationError):
    """WebSocket notification could not be decoded into the channel's model"""


class ParadexAPIError(ParadexError):
    """
    Business error returned by the exchange.

    Attributes:
        status_code: HTTP status of the response
        error: Exchange error code (may be empty)
        message: Human readable error message
    """

    def __init__(self, status_code: int, error: Optional[str], message: str):
        self.status_code = status_code
        self.error = error or ""
        self.message = message
        super().__init__(
            f"Paradex Error: status_code={status_code} error={self.error!r}, message={message!r}"
        )


class HTTPStatusError(ParadexError):
    """Non-2xx HTTP response without a body"""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"HTTP Error: status_code={status_code}")


class StarknetError(ParadexError):
    """Short-string encoding, felt parsing or signing failure"""


class TypeConversionError(ParadexError):
    """Numeric conversion overflow (e.g. quantized price outside i64)"""


class TimeError(ParadexError):
    """System clock could not produce a valid UNIX timestamp"""


class MissingPrivateKeyError(ParadexError):
    """Private endpoint called on a client constructed without a key"""

    def __init__(self, message: str = "Missing Private Key"):
        super().__init__(message)


class WebSocketSendError(ParadexError):
    """Command could not be submitted because the WebSocket manager has stopped"""
