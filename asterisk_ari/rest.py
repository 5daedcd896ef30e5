"""HTTP transport for the ARI REST interface.

A thin request layer: it builds the URL, authenticates, retries transient
failures and maps error responses to exceptions. It keeps no per-resource
state.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import aiohttp
from aiohttp import BasicAuth, ClientTimeout

from asterisk_ari.backoff import ExponentialBackoff
from asterisk_ari.config import ARIConfig
from asterisk_ari.exceptions import AuthenticationError, ConnectionError, parse_asterisk_error
from asterisk_ari.log import LoggerLike


class RestClient:
    """Authenticated aiohttp client for ``<base>/ari`` endpoints.

    The session is created on first use and released by :meth:`close`.

    Args:
        config: Configuration object with connection settings
        logger: Logger for the owning client
    """

    def __init__(self, config: ARIConfig, logger: Optional[LoggerLike] = None) -> None:
        self.config = config
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._session: Optional[aiohttp.ClientSession] = None
        self._backoff = ExponentialBackoff(
            initial_delay=config.retry_backoff,
            max_delay=config.max_retry_delay,
        )

    @property
    def closed(self) -> bool:
        return self._session is None or self._session.closed

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=ClientTimeout(**self.config.get_timeout_config()),
                auth=BasicAuth(*self.config.auth_tuple),
                headers={"User-Agent": self.config.user_agent},
                json_serialize=json.dumps,
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def request(
            self,
            method: str,
            path: str,
            params: Optional[Dict[str, Any]] = None,
            json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make an authenticated request to the ARI API.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE)
            path: API path relative to ``/ari`` (e.g. '/channels')
            params: Query parameters
            json: JSON request body

        Returns:
            Decoded JSON response, response text, or None for empty bodies

        Raises:
            AuthenticationError: If authentication fails
            ResourceNotFoundError: If the resource does not exist
            RestError: For any other non-success status
            ConnectionError: If the server cannot be reached
        """
        url = f"{self.config.ari_url}{path}"
        params = _stringify_params(params)
        last_exception: Optional[Exception] = None

        for attempt in range(self.config.retry_attempts + 1):
            try:
                async with self._get_session().request(method, url, params=params, json=json) as response:
                    if response.ok:
                        return await _read_body(response)

                    error = parse_asterisk_error(await response.text(), response.status, method, url)
                    if isinstance(error, AuthenticationError):
                        error.username = self.config.username
                    if not error.is_retryable:
                        raise error
                    last_exception = error

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_exception = ConnectionError(
                    f"Network error during {method} {url}: {e or type(e).__name__}",
                    host=self.config.host,
                    port=self.config.port,
                )
                last_exception.__cause__ = e

            if attempt < self.config.retry_attempts:
                delay = self._backoff.delay(attempt)
                self._logger.warning(
                    f"{method} {path} failed ({last_exception}), "
                    f"retrying in {delay:.2f}s (attempt {attempt + 1})"
                )
                await asyncio.sleep(delay)

        raise last_exception

    async def ping(self) -> Dict[str, Any]:
        """Ping Asterisk (``GET /asterisk/ping``)."""
        return await self.request("GET", "/asterisk/ping")

    async def get_info(self) -> Dict[str, Any]:
        """Return Asterisk system information."""
        return await self.request("GET", "/asterisk/info")


def _stringify_params(params: Optional[Dict[str, Any]]) -> Optional[Dict[str, str]]:
    """Drop None values and render booleans the way ARI expects."""
    if not params:
        return None
    rendered = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            rendered[key] = "true" if value else "false"
        else:
            rendered[key] = str(value)
    return rendered


async def _read_body(response: aiohttp.ClientResponse) -> Any:
    text = await response.text()
    if not text:
        return None
    if response.content_type == "application/json":
        return json.loads(text)
    return text


__all__ = ["RestClient"]
