"""
media_fetcher.py — Download remote media for engines that need the raw bytes.

Only engines call this (never the resolver or the orchestrator), so URL
submission itself stays free of network I/O.

Failure mapping:
  - connect / read / timeout errors, non-2xx status → NetworkError
  - body is not audio/* or video/*                   → UnsupportedMediaError
  - body larger than settings.max_upload_bytes       → InvalidInputError
"""

import logging
from dataclasses import dataclass
from urllib.parse import urlparse

import httpx

from deepcheck.core.config import settings
from deepcheck.core.errors import InvalidInputError, NetworkError, UnsupportedMediaError
from deepcheck.workflow.resolver import mime_from_filename

logger = logging.getLogger(__name__)

_HEADERS = {"User-Agent": "Mozilla/5.0 (compatible; DeepCheckBot/1.0)"}


@dataclass
class FetchedMedia:
    url: str
    content: bytes
    mime_type: str


async def fetch_media(url: str, client: httpx.AsyncClient | None = None) -> FetchedMedia:
    """
    GET *url* and return its body plus a normalised MIME type.

    The body is streamed: a Content-Length over settings.max_upload_bytes is
    refused before reading, and reading stops as soon as the running total
    passes the limit.

    A caller-supplied client is used as-is (tests pass one built on
    httpx.MockTransport); otherwise a short-lived client is created.
    """
    limit = settings.max_upload_bytes
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=settings.fetch_timeout_seconds, follow_redirects=True)

    try:
        async with client.stream("GET", url, headers=_HEADERS) as resp:
            resp.raise_for_status()

            declared = resp.headers.get("content-length", "")
            if declared.isdigit() and int(declared) > limit:
                raise InvalidInputError(f"Remote media is {declared} bytes (limit {limit}).")

            chunks: list[bytes] = []
            received = 0
            async for chunk in resp.aiter_bytes():
                received += len(chunk)
                if received > limit:
                    raise InvalidInputError(f"Remote media exceeds the {limit} byte limit.")
                chunks.append(chunk)
            content_type = resp.headers.get("content-type", "")
    except httpx.HTTPStatusError as exc:
        logger.warning("Media fetch failed for %s: HTTP %d", url, exc.response.status_code)
        raise NetworkError(f"Media host returned HTTP {exc.response.status_code}.") from exc
    except httpx.HTTPError as exc:
        logger.warning("Media fetch failed for %s: %s", url, exc)
        raise NetworkError(f"Could not reach media host: {exc.__class__.__name__}.") from exc
    finally:
        if owns_client:
            await client.aclose()

    content = b"".join(chunks)
    mime = content_type.split(";", 1)[0].strip().lower()
    if not mime.startswith(("audio/", "video/")):
        # Many CDNs serve media as octet-stream; trust the path extension instead.
        mime = mime_from_filename(urlparse(url).path)
    if not mime.startswith(("audio/", "video/")):
        raise UnsupportedMediaError(f"URL does not point to audio or video content ({url}).")

    logger.info("Fetched %d bytes of %s from %s", len(content), mime, url)
    return FetchedMedia(url=url, content=content, mime_type=mime)
