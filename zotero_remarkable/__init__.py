"""Copy PDFs from a Zotero collection to a reMarkable tablet."""

__version__ = "0.1.0"
