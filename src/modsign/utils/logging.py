import logging
import sys

from ..config import LOG_LEVEL

_ROOT = "modsign"


def get_logger(name: str | None = None):
    root = logging.getLogger(_ROOT)
    if not root.handlers:
        h = logging.StreamHandler(sys.stdout)
        fmt = logging.Formatter("[%(asctime)s] %(levelname)s %(message)s")
        h.setFormatter(fmt)
        root.addHandler(h)
        root.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    if name:
        return root.getChild(name)
    return root


def set_verbose(verbose: bool) -> None:
    get_logger().setLevel(logging.DEBUG if verbose else getattr(logging, LOG_LEVEL, logging.INFO))
