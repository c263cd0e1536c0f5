"""Per-render image fetcher with a memo of hits and misses."""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional

import requests
from PIL import Image, UnidentifiedImageError

from .text_utils import is_http_url

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 9000
MIN_TIMEOUT_MS = 1000

# Formats python-pptx can embed directly; anything else is re-encoded as PNG.
EMBEDDABLE_FORMATS = {"PNG", "JPEG", "GIF", "BMP", "TIFF"}

_EXTENSION_MIME = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "bmp": "image/bmp",
    "svg": "image/svg+xml",
}
_EXTENSION_RE = re.compile(r"\.([a-z0-9]+)(?:$|[?#])", re.IGNORECASE)


@dataclass(frozen=True)
class FetchedImage:
    url: str
    mime: str
    data: bytes

    def stream(self) -> io.BytesIO:
        return io.BytesIO(self.data)


def guess_mime(url: str, content_type: Optional[str] = None) -> str:
    header = (content_type or "").split(";", 1)[0].strip().lower()
    if header.startswith("image/"):
        return header
    match = _EXTENSION_RE.search(url or "")
    if match:
        return _EXTENSION_MIME.get(match.group(1).lower(), "image/jpeg")
    return "image/jpeg"


def to_embeddable(data: bytes) -> Optional[bytes]:
    """Return bytes python-pptx can embed, or ``None`` if Pillow cannot read them."""

    try:
        with Image.open(io.BytesIO(data)) as image:
            if image.format in EMBEDDABLE_FORMATS:
                return data
            buffer = io.BytesIO()
            image.convert("RGBA").save(buffer, format="PNG")
            return buffer.getvalue()
    except (UnidentifiedImageError, OSError) as exc:
        logger.debug("Unreadable image payload: %s", exc)
        return None


class ImageCache:
    """Fetch remote images once per render; failures are remembered as misses."""

    def __init__(self, timeout_ms: int = DEFAULT_TIMEOUT_MS, session: Optional[requests.Session] = None) -> None:
        self.timeout_ms = max(MIN_TIMEOUT_MS, int(timeout_ms or DEFAULT_TIMEOUT_MS))
        self._session = session or requests.Session()
        self._entries: Dict[str, Optional[FetchedImage]] = {}

    def __contains__(self, url: str) -> bool:
        return url in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, url: str) -> Optional[FetchedImage]:
        if not is_http_url(url):
            return None
        if url in self._entries:
            return self._entries[url]
        fetched = self._fetch(url)
        self._entries[url] = fetched
        return fetched

    def _fetch(self, url: str) -> Optional[FetchedImage]:
        try:
            response = self._session.get(url, timeout=self.timeout_ms / 1000.0)
        except requests.RequestException as exc:
            logger.warning("Image fetch failed for %s: %s", url, exc)
            return None
        if not response.ok:
            logger.warning("Image fetch for %s returned HTTP %s", url, response.status_code)
            return None
        data = to_embeddable(response.content)
        if data is None:
            return None
        return FetchedImage(url=url, mime=guess_mime(url, response.headers.get("content-type")), data=data)


__all__ = ["FetchedImage", "ImageCache", "guess_mime", "to_embeddable"]
