"""Reading reference documents from local paths or HTTP(S) URLs.

The catalog and the bundled composition reference can live on disk or be
served by a web server; both go through ``fetch_bytes``.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

# --- HTTP resiliency ---
DEFAULT_TIMEOUT = float(os.environ.get("POS_BUNDLES_HTTP_TIMEOUT", "30"))
DEFAULT_RETRIES = int(os.environ.get("POS_BUNDLES_HTTP_RETRIES", "3"))


def make_session(
    timeout: float = DEFAULT_TIMEOUT, retries: int = DEFAULT_RETRIES
) -> requests.Session:
    """Create a requests Session with retry logic and default timeout.

    Retries GET/HEAD on connection errors and on 429, 500, 502, 503, 504
    with exponential backoff; every request gets ``timeout`` unless the
    caller passes one.
    """
    s = requests.Session()
    s.headers.update({"User-Agent": "pos-bundles/0.1"})
    retry = Retry(
        total=retries,
        connect=retries,
        read=retries,
        status=retries,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET", "HEAD"}),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    s.mount("http://", adapter)
    s.mount("https://", adapter)
    orig_request = s.request

    def timed_request(method: str, url: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", timeout)
        return orig_request(method, url, **kwargs)

    s.request = timed_request  # type: ignore[method-assign,assignment]
    return s


def is_url(source: str | Path) -> bool:
    return urlparse(str(source)).scheme in ("http", "https")


def source_name(source: str | Path) -> str:
    """File name part of a path or URL (used to pick a parser by suffix)."""
    if is_url(source):
        return Path(urlparse(str(source)).path).name
    return Path(source).name


def fetch_bytes(source: str | Path, session: requests.Session | None = None) -> bytes:
    """Read a local file or download an http(s) URL.

    Raises:
        FileNotFoundError: Local path does not exist.
        requests.HTTPError: Server answered with an error status.
    """
    if is_url(source):
        session = session or make_session()
        logger.info("Downloading %s", source)
        resp = session.get(str(source))
        resp.raise_for_status()
        return resp.content
    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"Reference file not found: {path}")
    return path.read_bytes()


def fetch_json(source: str | Path, session: requests.Session | None = None) -> Any:
    """``fetch_bytes`` then decode as UTF-8 JSON (BOM tolerated)."""
    return json.loads(fetch_bytes(source, session).decode("utf-8-sig"))
