from __future__ import annotations
import logging
from typing import Optional

import requests

from .errors import FatalError, TransientError

logger = logging.getLogger("menuboard.images")

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

RETRYABLE_STATUS = {408, 425, 429, 500, 502, 503, 504}


class ImageFetcher:
    """Downloads menu images and sorts failures into transient vs fatal."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 30):
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)
        self.timeout = timeout

    def fetch(self, image_ref: str) -> tuple[bytes, str]:
        """Return (bytes, content_type)."""
        url = "https:" + image_ref if image_ref.startswith("//") else image_ref
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientError(f"image download failed: {e}") from e
        except requests.RequestException as e:
            raise FatalError(f"image download failed: {e}") from e

        if resp.status_code in RETRYABLE_STATUS:
            raise TransientError(f"image download returned HTTP {resp.status_code}")
        if resp.status_code >= 400:
            raise FatalError(f"image download returned HTTP {resp.status_code}")

        ctype = (resp.headers.get("Content-Type") or "").split(";")[0].strip().lower()
        if ctype and not ctype.startswith("image/"):
            raise FatalError(f"unsupported content type {ctype!r} for {url}")
        if not resp.content:
            raise FatalError(f"empty image body for {url}")
        logger.debug("Fetched %s (%d bytes, %s)", url, len(resp.content), ctype or "unknown")
        return resp.content, ctype or "image/jpeg"
