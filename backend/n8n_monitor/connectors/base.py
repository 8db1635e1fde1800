"""Errors raised when talking to remote n8n instances."""


class ConnectorError(Exception):
    """Base exception for connector errors."""

    def __init__(self, message: str, system: str | None = None, retriable: bool = False):
        super().__init__(message)
        self.system = system
        self.retriable = retriable


class TransportError(ConnectorError):
    """The request never produced a response (DNS, connect, TLS, timeout)."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("retriable", True)
        super().__init__(message, **kwargs)


class RemoteAPIError(ConnectorError):
    """The remote instance answered with a non-200 status."""

    def __init__(self, status_code: int, body: str, **kwargs):
        super().__init__(
            f"API request failed with status {status_code}: {body}",
            retriable=status_code >= 500 or status_code == 429,
            **kwargs,
        )
        self.status_code = status_code
        self.body = body


class DecodeError(ConnectorError):
    """The response body was not the JSON we expected."""

    pass
