import logging
import os
import re

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False


def get_logger(name: str) -> logging.Logger:
    """Return a module logger, configuring the root handler on first use."""
    global _configured
    if not _configured:
        logging.basicConfig(
            level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            format=LOG_FORMAT,
        )
        _configured = True
    return logging.getLogger(name)


def slugify(value: str) -> str:
    """
    Build a url-safe slug from a display name.

    "Blog Editor" -> "blog-editor". Wildcards survive so that a permission
    named "posts.*" keeps a usable slug.
    """
    value = value.strip().lower()
    value = re.sub(r"[^a-z0-9.*:_\s-]", "", value)
    value = re.sub(r"[\s_-]+", "-", value)
    return value.strip("-")
