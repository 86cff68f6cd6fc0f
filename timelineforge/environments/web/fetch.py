import logging
from typing import Tuple

import requests

from timelineforge.config import settings
from timelineforge.environments.web.url_guard import is_valid_external_url, resolves_to_public_address
from timelineforge.errors import UpstreamServiceError, ValidationError

logger = logging.getLogger(__name__)


def _disallowed(message: str) -> ValidationError:
    return ValidationError(message, public_message="Invalid or disallowed URL")


class ImageFetcher:
    def __init__(self, timeout: float = 15, max_bytes: int = settings.MAX_IMAGE_BYTES):
        self.timeout = timeout
        self.max_bytes = max_bytes

    def fetch(self, url: str) -> Tuple[bytes, str]:
        """
        Download an image. Returns (bytes, mime_type).
        The URL must pass the external-URL check and its host must resolve
        to public addresses only; redirects are not followed.
        """
        if not is_valid_external_url(url):
            raise _disallowed(f"Blocked outbound URL: {url}")
        if not resolves_to_public_address(url):
            raise _disallowed(f"Host of {url} does not resolve to a public address")

        headers = {
            "User-Agent": "TimelineForge-Vision/1.0"
        }
        try:
            with requests.get(
                url,
                headers=headers,
                timeout=self.timeout,
                allow_redirects=False,
                stream=True,
            ) as response:
                response.raise_for_status()
                if response.is_redirect:
                    raise _disallowed(f"Redirect refused for {url}")
                body = response.raw.read(self.max_bytes + 1, decode_content=True)
                content_type = response.headers.get("content-type", "image/jpeg")
        except requests.RequestException as e:
            raise UpstreamServiceError(f"Image fetch failed for {url}: {e}") from e

        if len(body) > self.max_bytes:
            raise ValidationError(
                f"Image at {url} exceeds {self.max_bytes} bytes",
                public_message="Image too large",
            )

        mime_type = content_type.split(";")[0].strip()
        logger.info("Fetched %d bytes (%s) from %s", len(body), mime_type, url)
        return body, mime_type or "image/jpeg"
