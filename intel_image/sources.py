import base64
import binascii
import io
import logging
from pathlib import Path
from typing import Optional

import requests
from PIL import Image

from .errors import DecodeError, FetchError

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class SourceFetcher:
    """
    Resolves a `sourceUrl` to raw bytes.

    Supported references, in order of detection:
    - http(s) URLs, downloaded with a browser-like User-Agent
    - `data:` URIs carrying base64 payloads
    - local paths, absolute or relative to `public_dir`
    """

    def __init__(
        self,
        public_dir: Path = Path("public"),
        timeout: float = 20.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.public_dir = public_dir
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self, source_url: str) -> bytes:
        if not source_url:
            raise FetchError("empty source reference")
        if source_url.startswith(("http://", "https://")):
            return self._fetch_http(source_url)
        if source_url.startswith("data:"):
            return self._fetch_data_uri(source_url)
        return self._fetch_local(source_url)

    def _fetch_http(self, url: str) -> bytes:
        logger.info("Fetching %s", url)
        try:
            response = self.session.get(url, headers={"User-Agent": USER_AGENT}, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchError(f"request to {url} failed: {e}") from e
        if not 200 <= response.status_code < 300:
            raise FetchError(
                f"source returned HTTP {response.status_code}",
                details={"status": response.status_code, "url": url},
            )
        logger.debug("Downloaded %d bytes", len(response.content))
        return response.content

    @staticmethod
    def _fetch_data_uri(uri: str) -> bytes:
        header, sep, payload = uri.partition(",")
        if not sep:
            raise FetchError("data URI has no payload")
        try:
            if header.endswith(";base64"):
                return base64.b64decode(payload, validate=True)
            return payload.encode("utf-8")
        except (binascii.Error, ValueError) as e:
            raise FetchError(f"malformed data URI: {e}") from e

    def _fetch_local(self, reference: str) -> bytes:
        path = Path(reference)
        if not path.is_absolute() or not path.exists():
            path = self.public_dir / reference.lstrip("/")
        try:
            return path.read_bytes()
        except OSError as e:
            raise FetchError(f"cannot read {path}: {e}") from e


def decode_image(data: bytes) -> Image.Image:
    """Decode raw bytes into an RGB bitmap, fully loaded."""
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeError(f"not a decodable image: {e}") from e
    return img.convert("RGB")
