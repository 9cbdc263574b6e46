"""Load images as base64 for multimodal (LLaVA) prompts."""

from __future__ import annotations

import base64
import logging
from pathlib import Path

import httpx

_logger = logging.getLogger(__name__)


def load_image(
    source: str,
    use_fetch: bool = False,
    client: httpx.Client | None = None,
) -> str:
    """Return the base64 encoding of an image file or URL.

    Local paths are read from disk unless *use_fetch* is set or *source*
    starts with ``http``; everything else is downloaded with httpx.
    """
    if not use_fetch and not source.startswith("http"):
        return base64.b64encode(Path(source).read_bytes()).decode("ascii")

    _logger.debug("Fetching image %s", source)
    if client is not None:
        resp = client.get(source)
    else:
        resp = httpx.get(source, follow_redirects=True)
    resp.raise_for_status()
    return base64.b64encode(resp.content).decode("ascii")
