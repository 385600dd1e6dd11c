"""Zotero collection -> reMarkable sync.

One pass: list the collection, pick the PDF attachments, copy each PDF
from WebDAV to reMarkable under its parent's title, then take the parents
out of the collection.
"""

import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

from zotero_remarkable import remarkable_client, webdav_client, zotero_client
from zotero_remarkable.config import Config

log = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


@dataclass
class LibraryIndex:
    """Lookup tables built from one collection listing."""

    titles: Dict[str, str] = field(default_factory=dict)
    collections: Dict[str, List[str]] = field(default_factory=dict)
    versions: Dict[str, int] = field(default_factory=dict)
    to_process: List[Dict[str, Any]] = field(default_factory=list)

    def collections_of(self, key: str) -> List[str]:
        # Notes and some other item types have no collections field
        return self.collections.get(key, [])


@dataclass(frozen=True)
class PendingRemoval:
    key: str
    version: int
    collections: List[str]

    def to_json(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "version": self.version,
            "collections": list(self.collections),
        }


@dataclass
class SyncResult:
    found: int = 0
    uploaded: int = 0
    skipped: int = 0
    removed: int = 0
    batches: int = 0


# -- Metadata --


def is_pdf_attachment(data: Dict[str, Any]) -> bool:
    return (
        data.get("itemType") == "attachment"
        and data.get("contentType") == PDF_CONTENT_TYPE
    )


def index_items(items: Sequence[Dict[str, Any]]) -> LibraryIndex:
    """Build the lookup tables and the ordered list of PDF attachments."""
    index = LibraryIndex()
    for item in items:
        data = item["data"]
        key = data["key"]
        index.titles[key] = data.get("title") or ""
        if "collections" in data:
            index.collections[key] = list(data["collections"])
        index.versions[key] = data["version"]

        if is_pdf_attachment(data):
            index.to_process.append(item)
    return index


def fetch_index(cfg: Config) -> LibraryIndex:
    log.info("Fetching items from Zotero...")
    index = index_items(zotero_client.get_collection_items(cfg))
    log.info("%d items found.", len(index.to_process))
    return index


def removal_record(index: LibraryIndex, parent_key: str, collection: str) -> PendingRemoval:
    """Snapshot of parent_key with collection dropped from its memberships."""
    return PendingRemoval(
        key=parent_key,
        version=index.versions[parent_key],
        collections=[c for c in index.collections_of(parent_key) if c != collection],
    )


# -- Per attachment --


def process_attachment(
    cfg: Config,
    index: LibraryIndex,
    item: Dict[str, Any],
    rm: Optional[remarkable_client.RemarkableSession],
    folder: str,
) -> Optional[PendingRemoval]:
    """Copy one attachment's PDF to reMarkable.

    Returns the parent's removal record, or None when the attachment was
    skipped. With rm=None nothing is downloaded or uploaded (dry run).
    """
    data = item["data"]
    key = data["key"]
    log.info("Processing item %s", key)

    parent_key = data.get("parentItem")
    if not parent_key or parent_key not in index.titles:
        log.info("  Skipping since no parent was found!")
        return None

    title = index.titles[parent_key]
    record = removal_record(index, parent_key, cfg.zotero_collection)

    if rm is None:
        log.info("  Would upload '%s' to %s", title, folder)
        return record

    with tempfile.TemporaryDirectory(prefix="zotero-remarkable-") as tmpdir:
        log.info("  Downloading zip...")
        zip_path = webdav_client.download_zip(cfg, key, Path(tmpdir) / f"{key}.zip")

        log.info("  Extracting PDF...")
        pdf_bytes = webdav_client.read_entry(zip_path, data.get("filename", ""))

        log.info("  Uploading to reMarkable...")
        rm.upload_pdf_bytes(pdf_bytes, title, folder, alt_suffix=key)

    log.info("  Will update for deletion with %s", record.to_json())
    return record


# -- Pruning --


def chunked(records: Sequence[PendingRemoval], size: int) -> Iterator[List[PendingRemoval]]:
    for i in range(0, len(records), size):
        yield list(records[i : i + size])


def prune_collection(cfg: Config, records: Sequence[PendingRemoval]) -> int:
    """Write the removal records back to Zotero. Returns the request count."""
    log.info("Removing items from Zotero collection...")
    batches = 0
    for batch in chunked(records, zotero_client.WRITE_BATCH_SIZE):
        zotero_client.update_items(cfg, [r.to_json() for r in batch])
        batches += 1
    return batches


# -- Entry --


def run(cfg: Config, dry_run: bool = False) -> SyncResult:
    """Run one full sync. Any failure other than a missing parent propagates."""
    result = SyncResult()
    index = fetch_index(cfg)
    result.found = len(index.to_process)

    if not index.to_process:
        return result

    pending: List[PendingRemoval] = []

    if dry_run:
        for item in index.to_process:
            record = process_attachment(cfg, index, item, None, cfg.remarkable_folder)
            if record is None:
                result.skipped += 1
            elif all(p.key != record.key for p in pending):
                pending.append(record)
        log.info(
            "Dry run: would remove %d item(s) from collection %s",
            len(pending), cfg.zotero_collection,
        )
        return result

    with remarkable_client.authenticate(cfg.remarkable_token, timeout=cfg.http_timeout) as rm:
        folder = rm.mkdir_p(cfg.remarkable_folder)
        for item in index.to_process:
            record = process_attachment(cfg, index, item, rm, folder)
            if record is None:
                result.skipped += 1
                continue
            result.uploaded += 1
            # A parent with several PDFs is written back once
            if all(p.key != record.key for p in pending):
                pending.append(record)

    result.batches = prune_collection(cfg, pending)
    result.removed = len(pending)
    return result
