"""Source URL normalization and provider stream resolution."""
import logging
import re
from typing import Optional
from urllib.parse import parse_qsl, urlsplit, urlunsplit

import requests

from .config import CHUNK_SIZE, CONNECT_TIMEOUT_SEC, SOURCE_TIMEOUT_SEC
from .exceptions import (
    ConfirmationTokenNotFound,
    SourceFetchError,
    SourceTimeout,
)
from .models import ResolvedSource

logger = logging.getLogger(__name__)

DRIVE_DOWNLOAD_URL = "https://drive.google.com/uc"
CONFIRM_TOKEN_RE = re.compile(r"confirm=([0-9A-Za-z_-]+)&")
DRIVE_PATH_ID_RE = re.compile(r"/file/d/([^/?#]+)")


def _host(url: str) -> str:
    return (urlsplit(url).hostname or "").lower()


def is_dropbox_url(url: str) -> bool:
    host = _host(url)
    return host == "dropbox.com" or host.endswith(".dropbox.com")


def is_drive_url(url: str) -> bool:
    host = _host(url)
    return host == "drive.google.com" or host == "docs.google.com"


def normalize_url(url: str) -> str:
    """Force Dropbox links to direct download (dl=1); other URLs pass through."""
    if not is_dropbox_url(url):
        return url

    parts = urlsplit(url)
    # Work on the raw query so other parameters keep their exact encoding
    pieces = [p for p in parts.query.split("&") if p]
    if any(p.split("=", 1)[0] == "dl" for p in pieces):
        pieces = ["dl=1" if p.split("=", 1)[0] == "dl" else p for p in pieces]
    else:
        pieces.append("dl=1")
    return urlunsplit(parts._replace(query="&".join(pieces)))


def extract_drive_file_id(url: str) -> Optional[str]:
    """Get the file id from `?id=` or a `/file/d/<id>/` share link."""
    parts = urlsplit(url)
    for key, value in parse_qsl(parts.query):
        if key == "id" and value:
            return value
    match = DRIVE_PATH_ID_RE.search(parts.path)
    return match.group(1) if match else None


def _get(url: str, params: Optional[dict] = None) -> requests.Response:
    try:
        return requests.get(
            url,
            params=params,
            headers={"Accept-Encoding": "identity"},
            stream=True,
            allow_redirects=True,
            timeout=(CONNECT_TIMEOUT_SEC, SOURCE_TIMEOUT_SEC),
        )
    except requests.Timeout as e:
        raise SourceTimeout(f"Source fetch timed out: {e}") from e
    except requests.RequestException as e:
        raise SourceFetchError(f"Failed to fetch source: {e}") from e


def _fetch_drive(url: str) -> requests.Response:
    file_id = extract_drive_file_id(url)
    if not file_id:
        raise SourceFetchError(f"No Google Drive file id in URL: {url}")

    response = _get(DRIVE_DOWNLOAD_URL, params={"export": "download", "id": file_id})
    content_type = response.headers.get("content-type", "")
    if not content_type.startswith("text/html"):
        return response

    # Large files get a virus-scan interstitial instead of the bytes
    text = response.text
    response.close()
    logger.info(f"Google Drive HTML: {text[:1000]}")
    match = CONFIRM_TOKEN_RE.search(text)
    if not match:
        raise ConfirmationTokenNotFound(
            "Confirm token not found, cannot download large file"
        )
    return _get(
        DRIVE_DOWNLOAD_URL,
        params={"export": "download", "confirm": match.group(1), "id": file_id},
    )


def resolve_source(url: str) -> ResolvedSource:
    """
    Open a streaming GET on a normalized source URL.

    Drive links go through the confirmation-token flow; anything else is
    fetched with a single GET.

    Raises:
        SourceFetchError: provider unreachable or non-success status
        ConfirmationTokenNotFound: Drive interstitial without a token
        SourceTimeout: provider did not answer in time
    """
    response = _fetch_drive(url) if is_drive_url(url) else _get(url)
    logger.info(f"Source response status: {response.status_code} {response.reason}")

    if not response.ok:
        error_text = response.text
        response.close()
        logger.error(f"Source fetch failed, body: {error_text}")
        raise SourceFetchError(
            f"Failed to fetch from source: {response.status_code} {response.reason} {error_text}".strip()
        )

    for key, value in response.headers.items():
        logger.info(f"Source header {key}: {value}")

    length = response.headers.get("content-length")
    content_length = int(length) if length and length.isdigit() else None

    return ResolvedSource(
        # Raw bytes as sent, so the declared length matches what is relayed
        stream=response.raw.stream(CHUNK_SIZE, decode_content=False),
        content_length=content_length,
        content_type=response.headers.get("content-type"),
        response=response,
    )
