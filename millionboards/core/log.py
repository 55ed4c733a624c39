"""Logging helpers shared by the client classes."""

import logging
from typing import Any, MutableMapping

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class ClientLogAdapter(logging.LoggerAdapter):
    """Prefix every record with the client's tag, so logs of many parallel clients can be told apart."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        tag = self.extra.get("k") if self.extra else None
        if tag is None:
            return msg, kwargs
        return f"({tag}): {msg}", kwargs


def client_logger(name: str, k: int | None = None) -> ClientLogAdapter:
    return ClientLogAdapter(logging.getLogger(name), {"k": k})


def configure_logging(level: int | str = logging.INFO) -> None:
    """Convenience for scripts: send everything to stderr in one format."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
