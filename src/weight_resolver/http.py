"""Download published tariff tables over HTTP."""

from __future__ import annotations

import io
import logging
import time
from typing import Any

import pandas as pd
import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10
DEFAULT_RETRIES = 3
BACKOFF_BASE = 2.0

# Worth another attempt; any other 4xx is final.
RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})


class NetworkError(Exception):
    """Raised when a tariff table cannot be downloaded."""


class ParseError(Exception):
    """Raised when a downloaded tariff table cannot be parsed."""


def get(
    url: str,
    *,
    timeout: int = DEFAULT_TIMEOUT,
    retries: int = DEFAULT_RETRIES,
    headers: dict[str, str] | None = None,
    session: requests.Session | None = None,
) -> requests.Response:
    """
    GET ``url``, retrying transient failures with exponential backoff.

    Timeouts, connection errors and the statuses in ``RETRYABLE_STATUS`` are
    retried; other HTTP errors fail at once.  Raises NetworkError.
    """
    owns_session = session is None
    client = session or requests.Session()
    failure: Exception | None = None

    try:
        for attempt in range(1, retries + 1):
            try:
                resp = client.get(url, timeout=timeout, headers=headers)
                resp.raise_for_status()
                return resp
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as exc:
                failure = exc
                logger.warning("%s on attempt %d/%d: %s", type(exc).__name__, attempt, retries, url)
            except requests.exceptions.HTTPError as exc:
                failure = exc
                status = exc.response.status_code if exc.response is not None else None
                if status not in RETRYABLE_STATUS:
                    raise NetworkError(f"GET {url} failed with HTTP {status}") from exc
                logger.warning("HTTP %s on attempt %d/%d: %s", status, attempt, retries, url)

            if attempt < retries:
                wait = BACKOFF_BASE ** (attempt - 1)
                logger.debug("Retrying %s in %.1fs", url, wait)
                time.sleep(wait)
    finally:
        if owns_session:
            client.close()

    raise NetworkError(f"Failed to GET {url} after {retries} attempts: {failure}") from failure


def download_text(url: str, **kwargs: Any) -> str:
    """Response body as text; UTF-8 (with or without BOM) first, then the server's charset."""
    resp = get(url, **kwargs)
    try:
        return resp.content.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.debug("%s is not UTF-8; decoding as %s", url, resp.encoding)
        return resp.text


def fetch_tariff_frame(url: str, **kwargs: Any) -> pd.DataFrame:
    """Download a CSV tariff table. Raises ParseError if it is empty or not CSV."""
    text = download_text(url, **kwargs)
    try:
        df = pd.read_csv(io.StringIO(text), dtype=str)
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise ParseError(f"Tariff table at {url} is not valid CSV: {exc}") from exc
    if df.empty:
        raise ParseError(f"Tariff table at {url} has no rows")
    logger.info("Downloaded tariff table: %s (%d rows)", url, len(df))
    return df
