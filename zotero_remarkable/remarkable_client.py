"""reMarkable Cloud client wrapping the ddvk/rmapi CLI.

All document-tree operations go through the `rmapi` binary, which handles
the sync15 protocol. We only hand it a config file holding our tokens.
"""

import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Set

from zotero_remarkable import remarkable_auth

log = logging.getLogger(__name__)


class RmapiAuthError(RuntimeError):
    """The reMarkable token was rejected."""


class DocumentExistsError(RuntimeError):
    """Every name tried for an upload is already taken in the folder."""


def _run(
    args: List[str], check: bool = True, env: Optional[Dict[str, str]] = None,
) -> subprocess.CompletedProcess:
    """Run an rmapi command and return the result."""
    rmapi = shutil.which("rmapi")
    if not rmapi:
        raise RuntimeError(
            "rmapi not found. Install it: "
            "https://github.com/ddvk/rmapi/releases"
        )
    cmd = [rmapi] + args
    log.debug("Running: %s", " ".join(cmd))
    result = subprocess.run(
        cmd, capture_output=True, text=True, timeout=120, env=env,
    )
    if check and result.returncode != 0:
        raise RuntimeError(
            f"rmapi {' '.join(args)} failed (exit {result.returncode}): "
            f"{result.stderr.strip()}"
        )
    return result


class RemarkableSession:
    """An authenticated rmapi setup. Use as a context manager."""

    def __init__(self, device_token: str, user_token: str = "") -> None:
        self._dir = Path(tempfile.mkdtemp(prefix="zotero-remarkable-"))
        self.config_path = self._dir / "rmapi.conf"
        self.config_path.write_text(
            f"devicetoken: {device_token}\nusertoken: {user_token}\n"
        )
        self.config_path.chmod(0o600)
        self._env = {**os.environ, "RMAPI_CONFIG": str(self.config_path)}

    def __enter__(self) -> "RemarkableSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        shutil.rmtree(self._dir, ignore_errors=True)

    def run(self, args: List[str], check: bool = True) -> subprocess.CompletedProcess:
        return _run(args, check=check, env=self._env)

    def list_folders(self, parent: str) -> Set[str]:
        """Names of the sub-folders of parent."""
        result = self.run(["ls", parent])
        return {
            line.split("\t", 1)[-1].strip()
            for line in result.stdout.splitlines()
            if line.startswith("[d]")
        }

    def mkdir_p(self, path: str) -> str:
        """Create every missing component of path. Returns the folder path."""
        parts = [p for p in path.split("/") if p]
        parent = "/"
        for name in parts:
            folder = parent.rstrip("/") + "/" + name
            if name not in self.list_folders(parent):
                self.run(["mkdir", folder])
                log.info("Created reMarkable folder: %s", folder)
            parent = folder
        return parent

    def upload_pdf_bytes(
        self, pdf_bytes: bytes, title: str, folder: str, alt_suffix: str = "",
    ) -> str:
        """Upload PDF bytes into folder as a new document named title.

        If the name is taken and alt_suffix is given, uploads as
        "<title> (<alt_suffix>)" instead. Returns the document name used;
        raises DocumentExistsError if no free name was found.
        """
        sanitized = _sanitize_filename(title or "") or "Untitled"
        names = [sanitized]
        if alt_suffix:
            names.append(_sanitize_filename(f"{sanitized} ({alt_suffix})"))

        with tempfile.TemporaryDirectory() as tmpdir:
            for name in names:
                dest = Path(tmpdir) / f"{name}.pdf"
                dest.write_bytes(pdf_bytes)
                result = self.run(["put", str(dest), folder.rstrip("/") + "/"], check=False)
                if result.returncode == 0:
                    log.info("Uploaded '%s' to %s/", name, folder.rstrip("/"))
                    return name
                if "entry already exists" not in result.stderr:
                    raise RuntimeError(
                        f"rmapi put failed (exit {result.returncode}): "
                        f"{result.stderr.strip()}"
                    )
                log.info("'%s' already exists in %s/", name, folder.rstrip("/"))
        raise DocumentExistsError(
            f"Could not upload '{title}': {', '.join(names)} already exist in {folder}"
        )


def authenticate(device_token: str, timeout: int = 30) -> RemarkableSession:
    """Trade the device token for a user token and prepare rmapi."""
    try:
        user_token = remarkable_auth.get_user_token(device_token, timeout=timeout)
    except remarkable_auth.TokenError as e:
        raise RmapiAuthError(
            f"reMarkable rejected REMARKABLE_TOKEN ({e}). "
            "Run 'zotero-remarkable --register' to get a new one."
        ) from e
    return RemarkableSession(device_token, user_token)


def _sanitize_filename(name: str) -> str:
    """Remove characters that are problematic in filenames."""
    bad_chars = '<>:"/\\|?*'
    result = name
    for c in bad_chars:
        result = result.replace(c, "")
    # Collapse whitespace
    result = " ".join(result.split())
    # Trim to reasonable length
    return result[:200].strip()
