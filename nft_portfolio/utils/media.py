"""IPFS URL handling and NFT media type detection."""

from __future__ import annotations

import re
from enum import StrEnum
from urllib.parse import urlparse

PLACEHOLDER_IMAGE = "/images/placeholder-nft.svg"
DEFAULT_GATEWAY = "https://ipfs.io"

_CID_RE = re.compile(r"^[a-zA-Z0-9]{46,59}$")

_VIDEO_EXTENSIONS = (".mp4", ".webm", ".ogg", ".mov", ".avi", ".m4v")
_AUDIO_EXTENSIONS = (".mp3", ".wav", ".flac", ".aac", ".m4a")
_IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".bmp", ".avif")


class MediaType(StrEnum):
    """Kind of media an NFT points at."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    UNKNOWN = "unknown"


def is_valid_url(url: str | None) -> bool:
    """True for absolute URLs with a scheme and a location."""
    if not url:
        return False
    parsed = urlparse(url)
    if not parsed.scheme:
        return False
    return bool(parsed.netloc or parsed.path)


def is_ipfs_url(url: str | None) -> bool:
    if not url:
        return False
    return url.startswith(("ipfs://", "ipfs:ipfs://")) or bool(_CID_RE.match(url))


def ipfs_to_http(url: str | None, gateway: str = DEFAULT_GATEWAY) -> str:
    """Convert an IPFS URL (or bare CID) to an HTTP gateway URL.

    Args:
        url: e.g. "ipfs://QmTfARHAjZXV2yYPomwYJwKps53NHEYbrd3jmCzJR97YV2"
        gateway: Gateway origin, without trailing slash

    Returns:
        Gateway URL, the input unchanged when it isn't IPFS, or the
        placeholder image for empty input
    """
    if not url:
        return PLACEHOLDER_IMAGE

    if url.startswith(("http://", "https://")):
        return url

    if url.startswith("ipfs:ipfs://"):
        return f"{gateway}/ipfs/{url[len('ipfs:ipfs://'):]}"

    if url.startswith("ipfs://"):
        path = url[len("ipfs://"):]
        if path.startswith("ipfs/"):
            path = path[len("ipfs/"):]
        return f"{gateway}/ipfs/{path}"

    if _CID_RE.match(url):
        return f"{gateway}/ipfs/{url}"

    return url


def extract_cid(url: str | None) -> str | None:
    """Return the CID of an IPFS URL, without any path after it."""
    if not url:
        return None

    if url.startswith("ipfs:ipfs://"):
        return url[len("ipfs:ipfs://"):].split("/")[0]

    if url.startswith("ipfs://"):
        path = url[len("ipfs://"):]
        if path.startswith("ipfs/"):
            path = path[len("ipfs/"):]
        return path.split("/")[0]

    if _CID_RE.match(url):
        return url

    return None


def detect_media_type(url: str | None) -> MediaType:
    """Guess the media type from the URL's file extension."""
    if not url:
        return MediaType.UNKNOWN

    path = urlparse(url.lower()).path or url.lower()
    if path.endswith(_VIDEO_EXTENSIONS):
        return MediaType.VIDEO
    if path.endswith(_AUDIO_EXTENSIONS):
        return MediaType.AUDIO
    if path.endswith(_IMAGE_EXTENSIONS):
        return MediaType.IMAGE
    return MediaType.UNKNOWN


def media_type_from_content_type(content_type: str | None) -> MediaType:
    if not content_type:
        return MediaType.UNKNOWN
    major = content_type.split(";")[0].strip().lower().split("/")[0]
    try:
        return MediaType(major)
    except ValueError:
        return MediaType.UNKNOWN
