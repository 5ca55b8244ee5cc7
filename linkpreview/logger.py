"""
Logger names and the one-time root setup for the preview service.

Server code logs to ``linkpreview``, the controller to ``linkpreview_client``.
Set ``LINKPREVIEW_LOGLEVEL`` (DEBUG, INFO, WARNING ...) to change the level;
it is read when :func:`configure_logging` runs, not at import.
"""

import logging
import os

_FMT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(default: int = logging.INFO) -> None:
    """No-op when the host process (uvicorn, pytest) already set up handlers."""
    root = logging.getLogger()
    if root.handlers:
        return
    name = os.getenv("LINKPREVIEW_LOGLEVEL", "")
    level = logging.getLevelName(name.upper()) if name else default
    if not isinstance(level, int):
        level = default
    logging.basicConfig(level=level, format=_FMT)
    # one INFO line per outbound request is too chatty
    logging.getLogger("httpx").setLevel(logging.WARNING)


log = logging.getLogger("linkpreview")
client_log = logging.getLogger("linkpreview_client")
