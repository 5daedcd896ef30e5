"""Custom exceptions for the Asterisk ARI library.

This module provides the exception hierarchy for the two ARI transports:
the REST interface used for commands and the WebSocket event stream.
"""

from typing import Optional, Dict, Any, Union
import json


class ARIError(Exception):
    """Base exception class for all ARI-related errors.

    Attributes:
        message: Human-readable error message
        details: Additional error details (optional)
        asterisk_response: Original response from Asterisk (optional)
    """

    def __init__(
            self,
            message: str,
            details: Optional[Dict[str, Any]] = None,
            asterisk_response: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.asterisk_response = asterisk_response

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"asterisk_response={self.asterisk_response!r})"
        )


class ConfigurationError(ARIError):
    """Exception raised for invalid arguments or settings.

    Raised before any I/O takes place (for example when connecting the
    event stream with an empty application list). Never retried.

    Attributes:
        field: Name of the offending argument or setting
        invalid_value: The value that was rejected
    """

    def __init__(
            self,
            message: str,
            field: Optional[str] = None,
            invalid_value: Optional[Any] = None,
            details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.field = field
        self.invalid_value = invalid_value

    def __str__(self) -> str:
        if self.field:
            return f"{self.message} (field: {self.field})"
        return self.message


class ConnectionError(ARIError):
    """Exception raised when connection to Asterisk fails.

    This includes a failed WebSocket handshake, network connectivity issues,
    DNS resolution failures and connection timeouts.

    Attributes:
        host: Asterisk host that connection failed to reach
        port: Asterisk port that connection failed to reach
        timeout: Connection timeout value (if applicable)
    """

    def __init__(
            self,
            message: str,
            host: Optional[str] = None,
            port: Optional[int] = None,
            timeout: Optional[float] = None,
            details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.host = host
        self.port = port
        self.timeout = timeout

    def __str__(self) -> str:
        parts = [self.message]
        if self.host:
            parts.append(f"host={self.host}")
        if self.port:
            parts.append(f"port={self.port}")
        if self.timeout:
            parts.append(f"timeout={self.timeout}s")

        if len(parts) > 1:
            return f"{parts[0]} ({', '.join(parts[1:])})"
        return parts[0]


class WebSocketError(ARIError):
    """Base exception for event stream errors.

    Attributes:
        close_code: WebSocket close code (if applicable)
        close_reason: WebSocket close reason (if applicable)
    """

    def __init__(
            self,
            message: str,
            close_code: Optional[int] = None,
            close_reason: Optional[str] = None,
            details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.close_code = close_code
        self.close_reason = close_reason

    def __str__(self) -> str:
        parts = [self.message]
        if self.close_code:
            parts.append(f"code={self.close_code}")
        if self.close_reason:
            parts.append(f"reason={self.close_reason}")

        if len(parts) > 1:
            return f"{parts[0]} ({', '.join(parts[1:])})"
        return parts[0]


class ProtocolError(WebSocketError):
    """Exception describing a malformed inbound frame.

    Frames that are not JSON objects or lack a ``type`` discriminant are
    logged and dropped; the connection stays up.

    Attributes:
        frame: The raw frame text (truncated)
    """

    def __init__(self, message: str, frame: Optional[str] = None) -> None:
        super().__init__(message)
        self.frame = frame[:200] if frame else frame

    def __str__(self) -> str:
        if self.frame:
            return f"{self.message} (frame: {self.frame!r})"
        return self.message


class ReconnectExhausted(WebSocketError):
    """Raised (as a ``reconnectFailed`` payload) when reconnection gives up.

    Attributes:
        attempts: Number of reconnection attempts that were made
        last_error: The error of the final attempt, if any
    """

    def __init__(self, message: str, attempts: int, last_error: Optional[BaseException] = None) -> None:
        super().__init__(message, details={"attempts": attempts})
        self.attempts = attempts
        self.last_error = last_error

    def __str__(self) -> str:
        if self.last_error is not None:
            return f"{self.message} after {self.attempts} attempts: {self.last_error}"
        return f"{self.message} after {self.attempts} attempts"


class RestError(ARIError):
    """Exception raised for non-success responses from the REST interface.

    The exception provides detailed information about the HTTP request and
    response. It is propagated to the caller of the operation that issued
    the request and never affects the event stream.

    Attributes:
        status_code: HTTP status code
        method: HTTP method (GET, POST, etc.)
        url: Request URL
        response_text: Raw response text
    """

    def __init__(
            self,
            message: str,
            status_code: int,
            method: Optional[str] = None,
            url: Optional[str] = None,
            response_text: Optional[str] = None,
            details: Optional[Dict[str, Any]] = None,
            asterisk_response: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details, asterisk_response)
        self.status_code = status_code
        self.method = method
        self.url = url
        self.response_text = response_text

    @property
    def is_client_error(self) -> bool:
        """Return True if this is a 4xx client error."""
        return 400 <= self.status_code < 500

    @property
    def is_server_error(self) -> bool:
        """Return True if this is a 5xx server error."""
        return 500 <= self.status_code < 600

    @property
    def is_retryable(self) -> bool:
        return self.is_server_error or self.status_code == 429

    def __str__(self) -> str:
        parts = [f"{self.status_code}: {self.message}"]
        if self.method and self.url:
            parts.append(f"{self.method} {self.url}")
        elif self.method:
            parts.append(f"method={self.method}")
        elif self.url:
            parts.append(f"url={self.url}")

        if len(parts) > 1:
            return f"{parts[0]} ({', '.join(parts[1:])})"
        return parts[0]


class AuthenticationError(RestError):
    """Exception raised when Asterisk rejects the ARI credentials (401).

    Attributes:
        username: Username used for authentication
    """

    def __init__(
            self,
            message: str,
            username: Optional[str] = None,
            status_code: int = 401,
            method: Optional[str] = None,
            url: Optional[str] = None,
            asterisk_response: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, status_code, method, url, asterisk_response=asterisk_response)
        self.username = username


class ResourceNotFoundError(RestError):
    """Exception raised when a requested ARI resource is not found (404).

    Attributes:
        resource_type: Type of resource (channel, bridge, etc.)
        resource_id: ID of the resource that was not found
    """

    def __init__(
            self,
            message: str,
            resource_type: Optional[str] = None,
            resource_id: Optional[str] = None,
            method: Optional[str] = None,
            url: Optional[str] = None,
            asterisk_response: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, 404, method, url, asterisk_response=asterisk_response)
        self.resource_type = resource_type
        self.resource_id = resource_id

    def __str__(self) -> str:
        parts = [self.message]
        if self.resource_type and self.resource_id:
            parts.append(f"{self.resource_type}={self.resource_id}")
        elif self.resource_type:
            parts.append(f"type={self.resource_type}")
        elif self.resource_id:
            parts.append(f"id={self.resource_id}")

        if len(parts) > 1:
            return f"{parts[0]} ({', '.join(parts[1:])})"
        return parts[0]


_RESOURCE_COLLECTIONS = {
    "channels": "channel",
    "bridges": "bridge",
    "playbacks": "playback",
    "endpoints": "endpoint",
}


def parse_asterisk_error(
        response_data: Union[Dict[str, Any], str, None],
        status_code: int,
        method: Optional[str] = None,
        url: Optional[str] = None,
) -> RestError:
    """Map an Asterisk error response to the most specific RestError.

    Args:
        response_data: Response body (decoded JSON or raw text)
        status_code: HTTP status code
        method: HTTP method
        url: Request URL

    Returns:
        RestError subclass instance

    Example:
        ```python
        async with session.request(method, url) as response:
            if not response.ok:
                raise parse_asterisk_error(await response.text(), response.status, method, url)
        ```
    """
    if isinstance(response_data, str):
        try:
            data = json.loads(response_data)
        except json.JSONDecodeError:
            data = {"message": response_data} if response_data else {}
    else:
        data = response_data or {}

    if not isinstance(data, dict):
        data = {"message": str(data)}

    message = data.get("message") or data.get("error") or f"HTTP {status_code} error"

    if status_code == 401:
        return AuthenticationError(
            message,
            status_code=status_code,
            method=method,
            url=url,
            asterisk_response=data,
        )

    if status_code == 404:
        # /ari/channels/<id>[/<operation>]
        resource_type = None
        resource_id = None
        if url:
            url_parts = url.split("?", 1)[0].strip("/").split("/")
            for index, part in enumerate(url_parts[:-1]):
                if part in _RESOURCE_COLLECTIONS:
                    resource_type = _RESOURCE_COLLECTIONS[part]
                    resource_id = url_parts[index + 1]

        return ResourceNotFoundError(
            message,
            resource_type=resource_type,
            resource_id=resource_id,
            method=method,
            url=url,
            asterisk_response=data,
        )

    return RestError(
        message,
        status_code=status_code,
        method=method,
        url=url,
        asterisk_response=data,
    )
