"""Per-client logging for the Asterisk ARI library.

Every ARIClient gets its own adapter over the ``asterisk_ari`` logger, so
records from several clients in one process can be told apart. Components
accept any object with the ``logging.Logger`` interface.
"""

import logging
from typing import Any, MutableMapping, Tuple, Union

LOGGER_NAME = "asterisk_ari"

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]


class ClientLoggerAdapter(logging.LoggerAdapter):
    """Prefix messages with the client name and expose it as ``ari_client``."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("ari_client", self.extra["ari_client"])
        kwargs["extra"] = extra
        return f"[{self.extra['ari_client']}] {msg}", kwargs


def get_client_logger(client_name: str, name: str = LOGGER_NAME) -> ClientLoggerAdapter:
    """Create a logger adapter scoped to one client instance."""
    return ClientLoggerAdapter(logging.getLogger(name), {"ari_client": client_name})


def configure_level(debug: bool, log_level: str) -> None:
    """Apply the configured level to the library logger."""
    if debug:
        logging.getLogger(LOGGER_NAME).setLevel(logging.DEBUG)
        logging.getLogger("aiohttp").setLevel(logging.DEBUG)
    else:
        logging.getLogger(LOGGER_NAME).setLevel(getattr(logging, log_level))
