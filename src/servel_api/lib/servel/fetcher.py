"""SERVEL archive client.

Downloads a result archive with httpx, extracts its single JSON entry and
decodes it. Extraction and decoding run in a worker thread because
per-table dumps are large enough to stall the event loop.
"""

import asyncio
import io
import json
import zipfile
from typing import Any
from urllib.parse import urlparse

import httpx
from loguru import logger

# The upstream CDN rejects requests that do not look like the results site itself
_REQUEST_HEADERS = {
    "Accept": "application/zip,application/octet-stream;q=0.9,*/*;q=0.8",
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Referer": "https://elecciones.servel.cl/",
    "Origin": "https://elecciones.servel.cl",
}


class ServelError(Exception):
    """Base class for failures retrieving or decoding an upstream payload."""


class FetchError(ServelError):
    """Raised when the archive cannot be downloaded (timeout, connection, HTTP status)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PayloadError(ServelError):
    """Raised when a downloaded archive does not hold a usable JSON payload."""


def build_resource_url(base_url: str, archive: str, allowed_domains: list[str]) -> str:
    """Join the base URL and archive name, refusing hosts outside the allowlist.

    Args:
        base_url: Upstream base URL (no trailing slash needed).
        archive: Archive file name.
        allowed_domains: Non-empty list of allowed lowercase host names.

    Returns:
        The absolute archive URL.

    Raises:
        FetchError: If the URL scheme or host is not allowed.
    """
    url = f"{base_url.rstrip('/')}/{archive}"
    parsed = urlparse(url)

    if parsed.scheme not in ("http", "https"):
        msg = f"Unsupported URL scheme '{parsed.scheme}'"
        raise FetchError(msg)

    hostname = (parsed.hostname or "").lower()
    if not hostname:
        msg = "URL must include a hostname"
        raise FetchError(msg)

    if not allowed_domains:
        msg = "allowed_domains must be a non-empty list"
        raise FetchError(msg)

    if hostname not in allowed_domains:
        msg = f"Domain '{hostname}' is not in the allowed domains list"
        raise FetchError(msg)

    return url


def extract_json_payload(content: bytes, json_name: str) -> Any:
    """Extract and decode the JSON entry of an archive.

    The entry named ``json_name`` wins; otherwise the archive must hold
    exactly one ``.json`` entry.

    Args:
        content: Raw archive bytes.
        json_name: Preferred entry name (e.g. ``constitucion.json``).

    Returns:
        The decoded JSON document.

    Raises:
        PayloadError: If the archive is invalid, the JSON entry is missing or
            ambiguous, or the entry is not valid JSON.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(content)) as zf:
            names = [name for name in zf.namelist() if name.lower().endswith(".json")]
            if json_name in names:
                entry = json_name
            elif len(names) == 1:
                entry = names[0]
            elif not names:
                msg = f"No JSON file found in archive (expected {json_name})"
                raise PayloadError(msg)
            else:
                msg = f"Archive holds several JSON files and none is {json_name}: {names}"
                raise PayloadError(msg)
            raw = zf.read(entry)
    except zipfile.BadZipFile as exc:
        msg = f"Downloaded content is not a valid zip archive: {exc}"
        raise PayloadError(msg) from exc

    try:
        return json.loads(raw.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        msg = f"Invalid JSON in {entry}: {exc}"
        raise PayloadError(msg) from exc


async def download_archive(url: str, timeout: float = 30.0) -> bytes:
    """Download an archive.

    Args:
        url: Absolute archive URL.
        timeout: HTTP request timeout in seconds.

    Returns:
        The response body.

    Raises:
        FetchError: If the HTTP request fails.
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=False, headers=_REQUEST_HEADERS) as client:
            logger.debug("Fetching archive from {}", url)
            response = await client.get(url)
            response.raise_for_status()
    except httpx.TimeoutException as exc:
        msg = f"Timeout fetching {url}"
        logger.error(msg)
        raise FetchError(msg) from exc
    except httpx.HTTPStatusError as exc:
        msg = f"HTTP {exc.response.status_code} fetching {url}"
        logger.error(msg)
        raise FetchError(msg, status_code=exc.response.status_code) from exc
    except httpx.HTTPError as exc:
        msg = f"HTTP error fetching {url}: {exc}"
        logger.error(msg)
        raise FetchError(msg) from exc

    return response.content


async def fetch_payload(
    base_url: str,
    archive: str,
    json_name: str,
    timeout: float = 30.0,
    *,
    allowed_domains: list[str],
) -> Any:
    """Download an archive and return its decoded JSON payload.

    Args:
        base_url: Upstream base URL.
        archive: Archive file name.
        json_name: Preferred JSON entry name inside the archive.
        timeout: HTTP request timeout in seconds.
        allowed_domains: Allowed upstream hosts.

    Returns:
        The decoded JSON document.

    Raises:
        FetchError: If the download fails.
        PayloadError: If the archive content is unusable.
    """
    url = build_resource_url(base_url, archive, allowed_domains)
    content = await download_archive(url, timeout)
    payload = await asyncio.to_thread(extract_json_payload, content, json_name)
    logger.debug("Decoded {} ({} bytes compressed)", json_name, len(content))
    return payload
