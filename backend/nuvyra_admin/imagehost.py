from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Optional

import requests
from PIL import Image, UnidentifiedImageError

from nuvyra_admin.database import settings

LOGGER = logging.getLogger(__name__)

IMGUR_UPLOAD_URL = "https://api.imgur.com/3/image"
ALLOWED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
REQUEST_TIMEOUT_SECONDS = 30


class ImageHostError(Exception):
    """Raised when an image cannot be uploaded to the image host."""


class InvalidImageError(ImageHostError):
    """Raised when the payload is not an image we accept."""


class ImageHostNotConfiguredError(ImageHostError):
    pass


@dataclass(frozen=True)
class ImgurConfig:
    client_id: str
    rehost_prefix: str


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def get_imgur_config() -> Optional[ImgurConfig]:
    """Imgur is enabled when IMGUR_CLIENT_ID is set."""
    client_id = _clean(settings.imgur_client_id)
    if not client_id:
        return None
    return ImgurConfig(client_id=client_id, rehost_prefix=settings.image_rehost_prefix or "")


def _post_to_imgur(cfg: ImgurConfig, data: dict) -> str:
    response = requests.post(
        IMGUR_UPLOAD_URL,
        headers={"Authorization": f"Client-ID {cfg.client_id}"},
        data=data,
        timeout=REQUEST_TIMEOUT_SECONDS,
    )
    if not response.ok:
        try:
            detail = response.json()
        except ValueError:
            detail = response.text
        raise ImageHostError(f"Imgur API error {response.status_code}: {detail}")

    try:
        payload = response.json()
    except ValueError as exc:
        raise ImageHostError("Imgur returned a non-JSON response") from exc

    data = payload.get("data") if isinstance(payload, dict) else None
    link = data.get("link") if isinstance(data, dict) else None
    if not link or not payload.get("success"):
        raise ImageHostError(f"Imgur response missing success flag or link: {payload}")
    return link


def rehost_image_url(original_url: str) -> str:
    """
    Copy an image from a hot-link-protected origin to Imgur.

    Only URLs under IMAGE_REHOST_PREFIX are touched. The original URL is
    returned unchanged whenever Imgur is not configured or the upload fails.
    """
    cfg = get_imgur_config()
    if cfg is None:
        LOGGER.debug("IMGUR_CLIENT_ID is not set; keeping original image URL %s", original_url)
        return original_url

    if not original_url or not cfg.rehost_prefix or not original_url.startswith(cfg.rehost_prefix):
        return original_url

    try:
        link = _post_to_imgur(cfg, {"image": original_url, "type": "url"})
    except (ImageHostError, requests.RequestException) as exc:
        LOGGER.error("Imgur re-host failed for %s: %s", original_url, exc)
        return original_url

    LOGGER.info("Image re-hosted on Imgur: %s -> %s", original_url, link)
    return link


def _validate_image(data: bytes, filename: str) -> None:
    ext = Path(filename or "").suffix.lower()
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        raise InvalidImageError(
            f"Invalid image format. Allowed: {', '.join(sorted(ALLOWED_IMAGE_EXTENSIONS))}"
        )
    if not data:
        raise InvalidImageError("Image file is empty")
    try:
        with Image.open(BytesIO(data)) as image:
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise InvalidImageError(f"File is not a readable image: {exc}") from exc


def upload_image_bytes(data: bytes, filename: str, content_type: Optional[str] = None) -> str:
    """Upload raw image bytes and return the hosted URL."""
    _validate_image(data, filename)

    cfg = get_imgur_config()
    if cfg is None:
        raise ImageHostNotConfiguredError("Image host is not configured on the server")

    LOGGER.debug("Uploading %s (%s, %d bytes) to Imgur", filename, content_type, len(data))
    try:
        return _post_to_imgur(
            cfg,
            {"image": base64.b64encode(data).decode("ascii"), "type": "base64", "name": filename},
        )
    except requests.RequestException as exc:
        raise ImageHostError(f"Failed to reach Imgur: {exc}") from exc
