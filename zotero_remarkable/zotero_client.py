"""Zotero Web API v3 client.

Lists the items of a collection and writes back collection membership.
"""

import logging
import time
from typing import Any, Dict, List, Optional

import requests

from zotero_remarkable.config import Config

log = logging.getLogger(__name__)

_BASE = "https://api.zotero.org"

PAGE_SIZE = 100
WRITE_BATCH_SIZE = 50  # Zotero API limit for multi-object writes


class ZoteroResponseError(RuntimeError):
    """Zotero answered with a body we cannot use."""


def _headers(cfg: Config) -> dict:
    return {
        "Zotero-API-Version": "3",
        "Zotero-API-Key": cfg.zotero_api_key,
    }


def _url(cfg: Config, path: str) -> str:
    return f"{_BASE}/users/{cfg.zotero_user}{path}"


def _request(cfg: Config, method: str, url: str, **kwargs) -> requests.Response:
    """Send one request. Non-2xx responses raise requests.HTTPError."""
    resp = requests.request(
        method, url, headers=_headers(cfg), timeout=cfg.http_timeout, **kwargs,
    )
    _handle_backoff(resp)
    resp.raise_for_status()
    return resp


def _handle_backoff(resp: requests.Response) -> None:
    backoff = resp.headers.get("Backoff") or resp.headers.get("Retry-After")
    if not backoff:
        return
    # Only delay-seconds; an HTTP-date Retry-After is ignored
    if not backoff.strip().isdigit():
        log.debug("Ignoring non-numeric back-off header: %r", backoff)
        return
    wait = int(backoff)
    log.warning("Zotero asked to back off for %d seconds", wait)
    time.sleep(wait)


def _json_list(resp: requests.Response) -> List[Dict[str, Any]]:
    try:
        body = resp.json()
    except ValueError as e:
        raise ZoteroResponseError(f"Zotero returned invalid JSON: {e}") from e
    if not isinstance(body, list):
        raise ZoteroResponseError(
            f"Expected a JSON array from Zotero, got {type(body).__name__}"
        )
    return body


# -- Reading --


def get_collection_items(cfg: Config) -> List[Dict[str, Any]]:
    """Fetch every item in the configured collection, following pagination.

    Items are returned in API order.
    """
    url: Optional[str] = _url(cfg, f"/collections/{cfg.zotero_collection}/items")
    params: Optional[Dict[str, str]] = {"limit": str(PAGE_SIZE)}
    items: List[Dict[str, Any]] = []
    while url:
        resp = _request(cfg, "GET", url, params=params)
        items.extend(_json_list(resp))
        # The next link already carries start/limit
        url = resp.links.get("next", {}).get("url")
        params = None
    log.debug("Fetched %d item(s) from collection %s", len(items), cfg.zotero_collection)
    return items


# -- Writing --


def update_items(cfg: Config, updates: List[Dict[str, Any]]) -> Dict[str, Any]:
    """POST a batch of partial item updates ({key, version, ...}).

    Returns the write response body. Per-item failures reported by Zotero
    are logged, not raised.
    """
    if len(updates) > WRITE_BATCH_SIZE:
        raise ValueError(
            f"At most {WRITE_BATCH_SIZE} items per write, got {len(updates)}"
        )
    resp = _request(cfg, "POST", _url(cfg, "/items"), json=updates)
    try:
        result = resp.json()
    except ValueError:
        return {}
    failed = result.get("failed", {}) if isinstance(result, dict) else {}
    for index, failure in failed.items():
        log.warning(
            "Zotero rejected update for %s: %s",
            failure.get("key", f"#{index}"), failure.get("message", failure),
        )
    return result if isinstance(result, dict) else {}
