from __future__ import annotations

"""Lightweight HTTP client util with per-attempt timeout and retry.

Uses stdlib urllib; focus is GET JSON with a bounded number of attempts and
exponential backoff. An optional ``validate`` hook runs inside the attempt, so
a malformed payload is retried exactly like a network failure.
"""
import http.client
import json
import logging
import time
import urllib.parse
import urllib.request
from typing import Any, Callable, Mapping, Optional

logger = logging.getLogger("ratekeeper.http")

Opener = Callable[..., Any]

READ_CHUNK_BYTES = 16 * 1024


class HttpError(Exception):
    pass


def build_url(base_url: str, path: str, params: Optional[Mapping[str, str]] = None) -> str:
    url = base_url.rstrip("/") + "/" + path.lstrip("/")
    if params:
        url += "?" + urllib.parse.urlencode(params, safe=",")
    return url


def _read_body(resp: Any, deadline: float, clock: Callable[[], float]) -> bytes:
    """Read the response in chunks, failing once the attempt deadline passes.

    The socket timeout only bounds each recv; a server trickling bytes would
    otherwise keep one attempt alive indefinitely.
    """
    chunks = []
    while True:
        if clock() > deadline:
            raise HttpError("attempt deadline exceeded while reading response")
        chunk = resp.read(READ_CHUNK_BYTES)
        if not chunk:
            break
        chunks.append(chunk)
    if clock() > deadline:
        raise HttpError("attempt deadline exceeded while reading response")
    return b"".join(chunks)


def get_json(
    url: str,
    *,
    timeout: float = 5.0,
    attempts: int = 3,
    backoff: float = 1.0,
    validate: Optional[Callable[[Any], Any]] = None,
    opener: Opener = urllib.request.urlopen,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Any:
    """GET ``url`` and return decoded JSON (or ``validate``'s result).

    Each attempt must finish within ``timeout`` seconds end to end. Sleeps
    ``backoff * 2**(n-1)`` seconds after failed attempt ``n`` when another
    attempt remains. Raises HttpError once every attempt has failed.
    """
    last_err: Optional[Exception] = None
    for attempt in range(1, attempts + 1):
        deadline = clock() + timeout
        try:
            with opener(url, timeout=timeout) as resp:  # nosec B310
                status = getattr(resp, "status", 200)
                if status >= 400:
                    raise HttpError(f"HTTP {status} for {url}")
                data = json.loads(_read_body(resp, deadline, clock).decode("utf-8"))
            return validate(data) if validate is not None else data
        except (
            OSError,  # URLError, HTTPError, timeouts, connection resets
            http.client.HTTPException,  # IncompleteRead, BadStatusLine, ...
            HttpError,
            ValueError,  # JSON/UTF-8 decode and payload validation
        ) as e:
            last_err = e
            logger.warning(
                "GET attempt failed",
                extra={
                    "fields": {
                        "url": url,
                        "attempt": attempt,
                        "attempts": attempts,
                        "error": str(e),
                    }
                },
            )
            if attempt == attempts:
                break
            sleep(backoff * (2 ** (attempt - 1)))
    raise HttpError(f"Failed to fetch JSON from {url} after {attempts} attempts: {last_err}")
