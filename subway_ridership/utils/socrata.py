"""Shared Socrata (SODA) API helpers.

Provides token loading, header building, and HTTP requests with
retry/backoff for the NYC Open Data portal, where the COVID-19 daily case
counts are published.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Dict, List, Optional

import requests
from dotenv import load_dotenv as _load_dotenv

from subway_ridership.utils.runtime import find_project_root

NYC_OPEN_DATA_DOMAIN = "data.cityofnewyork.us"
DEFAULT_REQUEST_TIMEOUT = 60
DEFAULT_MAX_RETRIES = 5
DEFAULT_PAGE_SIZE = 50000
_dotenv_loaded = False

logger = logging.getLogger(__name__)


def get_soda_endpoint(dataset_id: str, domain: str = NYC_OPEN_DATA_DOMAIN) -> str:
    """Build the SODA resource URL for a dataset."""
    return f"https://{domain}/resource/{dataset_id}.json"


def _ensure_dotenv_loaded() -> None:
    """Load ``.env`` from the project root (at most once per process)."""
    global _dotenv_loaded
    if not _dotenv_loaded:
        _load_dotenv(find_project_root() / ".env", override=False)
        _dotenv_loaded = True


def load_socrata_token() -> str:
    """Return the Socrata app token.

    Resolution order (highest priority first):
    1. ``SOCRATA_APP_TOKEN`` environment variable (if already set).
    2. ``.env`` file at the project root (fills unset vars only).
    3. Empty string (anonymous access).
    """
    _ensure_dotenv_loaded()
    return os.getenv("SOCRATA_APP_TOKEN", "")


def load_socrata_secret_token() -> str:
    """Return the Socrata secret token, or an empty string when unset."""
    _ensure_dotenv_loaded()
    return os.getenv("SOCRATA_SECRET_TOKEN", "")


def build_headers(
    app_token: Optional[str] = None,
    secret_token: Optional[str] = None,
) -> Dict[str, str]:
    """Build HTTP headers for Socrata requests.

    Args:
        app_token: Socrata application token. When non-empty the
            ``X-App-Token`` header is set, raising API throttle limits.
        secret_token: Optional Socrata secret token. When non-empty the
            ``X-App-Token-Secret`` header is set.
    """
    headers: Dict[str, str] = {"Accept": "application/json"}
    if app_token:
        headers["X-App-Token"] = app_token
    if secret_token:
        headers["X-App-Token-Secret"] = secret_token
    return headers


def request_json(
    session: requests.Session,
    endpoint: str,
    params: Dict[str, str],
    headers: Dict[str, str],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    timeout: int = DEFAULT_REQUEST_TIMEOUT,
) -> List[Dict[str, str]]:
    """Perform a GET request with retry and exponential back-off.

    Retries on ``requests.RequestException`` (network errors) and HTTP 429
    (rate-limited). Returns the parsed JSON list on success.

    Raises:
        RuntimeError: After *max_retries* consecutive failures, or if the
            response payload is not a JSON list.
    """
    attempt = 0
    while attempt < max_retries:
        try:
            response = session.get(
                endpoint,
                params=params,
                headers=headers,
                timeout=timeout,
            )
        except requests.RequestException as exc:
            attempt += 1
            if attempt >= max_retries:
                raise RuntimeError("Request failed after retries") from exc
            time.sleep(min(2 ** attempt, 60))
            continue

        if response.status_code == 429:
            attempt += 1
            wait = min(2 ** attempt, 60)
            logger.warning(
                f"Rate-limited by Socrata API (HTTP 429). Retrying in {wait}s "
                f"(attempt {attempt}/{max_retries}). Set SOCRATA_APP_TOKEN in .env for higher limits."
            )
            time.sleep(wait)
            continue

        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, list):
            raise RuntimeError(f"Unexpected payload type: {type(payload)!r}")
        return payload

    raise RuntimeError(f"Request failed after {max_retries} retries.")


def fetch_all_rows(
    dataset_id: str,
    *,
    select: str,
    order: str,
    page_size: int = DEFAULT_PAGE_SIZE,
    session: Optional[requests.Session] = None,
) -> List[Dict[str, str]]:
    """Page through a dataset with ``$limit``/``$offset`` until exhausted."""
    endpoint = get_soda_endpoint(dataset_id)
    headers = build_headers(load_socrata_token(), load_socrata_secret_token())
    own_session = session is None
    session = session or requests.Session()

    rows: List[Dict[str, str]] = []
    offset = 0
    try:
        while True:
            params = {
                "$select": select,
                "$order": order,
                "$limit": str(page_size),
                "$offset": str(offset),
            }
            page = request_json(session, endpoint, params, headers)
            rows.extend(page)
            if len(page) < page_size:
                break
            offset += page_size
    finally:
        if own_session:
            session.close()

    logger.info(f"Fetched {len(rows):,} rows from {endpoint}")
    return rows
