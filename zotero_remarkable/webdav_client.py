"""Zotero WebDAV file store.

Zotero keeps each stored attachment on WebDAV as ``<attachment key>.zip``
holding the original file.
"""

import logging
import zipfile
from pathlib import Path

import requests
from requests.auth import HTTPBasicAuth

from zotero_remarkable.config import Config

log = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


class ArchiveEntryError(RuntimeError):
    """The downloaded zip does not contain the expected file."""


def zip_url(cfg: Config, attachment_key: str) -> str:
    return f"{cfg.webdav_url.rstrip('/')}/{attachment_key}.zip"


def download_zip(cfg: Config, attachment_key: str, dest: Path) -> Path:
    """Stream the attachment's zip from WebDAV into dest."""
    url = zip_url(cfg, attachment_key)
    log.debug("GET %s", url)
    with requests.get(
        url,
        auth=HTTPBasicAuth(*cfg.webdav_auth),
        timeout=cfg.http_timeout,
        stream=True,
    ) as resp:
        resp.raise_for_status()
        with open(dest, "wb") as f:
            for chunk in resp.iter_content(chunk_size=_CHUNK_SIZE):
                f.write(chunk)
    return dest


def read_entry(zip_path: Path, filename: str) -> bytes:
    """Return the content of one file inside the zip archive."""
    with zipfile.ZipFile(zip_path) as zf:
        try:
            return zf.read(filename)
        except KeyError:
            raise ArchiveEntryError(
                f"'{filename}' not found in {zip_path.name} "
                f"(entries: {', '.join(zf.namelist()) or 'none'})"
            ) from None
