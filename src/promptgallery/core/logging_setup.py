"""Process-wide logging configuration."""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger once for the server process.

    Args:
        level: Log level name such as ``"INFO"`` or ``"DEBUG"``.  Unknown
            names fall back to ``INFO``.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    # httpx logs every request at INFO, which would include inference URLs.
    logging.getLogger("httpx").setLevel(logging.WARNING)
