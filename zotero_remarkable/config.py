import logging
import os
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

DEFAULT_FOLDER = "/Zotero"

# Config directory: respects XDG_CONFIG_HOME, overridable with ZOTERO_REMARKABLE_CONFIG_DIR
CONFIG_DIR = Path(
    os.environ.get("ZOTERO_REMARKABLE_CONFIG_DIR", "")
    or (
        Path(os.environ.get("XDG_CONFIG_HOME", "") or Path.home() / ".config")
        / "zotero-remarkable"
    )
)

# .env file: prefer CWD (for dev installs), then config dir
ENV_PATH = CONFIG_DIR / ".env"
if (Path.cwd() / ".env").exists():
    ENV_PATH = Path.cwd() / ".env"


@dataclass(frozen=True)
class Config:
    """Settings for one sync run. Built once by load_config()."""

    zotero_user: str
    zotero_api_key: str
    zotero_collection: str
    webdav_url: str
    webdav_auth: Tuple[str, str]
    remarkable_token: str
    remarkable_folder: str = DEFAULT_FOLDER
    http_timeout: int = 30
    log_level: str = "INFO"


def _require(var: str) -> str:
    value = os.environ.get(var, "").strip()
    if not value or value.startswith("your_"):
        print(f"Error: {var} is not set. Fill it in {ENV_PATH} or export it.")
        sys.exit(1)
    return value


def normalize_folder(folder: Optional[str]) -> str:
    """Return the reMarkable folder path, always starting with '/'."""
    folder = (folder or "").strip()
    if not folder:
        return DEFAULT_FOLDER
    if not folder.startswith("/"):
        folder = "/" + folder
    return folder


def parse_webdav_auth(value: str) -> Tuple[str, str]:
    """Split 'user:password' on the first colon."""
    user, sep, password = value.partition(":")
    if not sep:
        print("Error: WEBDAV_AUTH must be in the form user:password")
        sys.exit(1)
    return user, password


def load_config(env_path: Optional[Path] = None) -> Config:
    """Load .env (if any) and build the run configuration from the environment."""
    load_dotenv(env_path or ENV_PATH)

    return Config(
        zotero_user=_require("ZOTERO_USER"),
        zotero_api_key=_require("ZOTERO_API_KEY"),
        zotero_collection=_require("ZOTERO_COLLECTION"),
        webdav_url=_require("WEBDAV_URL"),
        webdav_auth=parse_webdav_auth(_require("WEBDAV_AUTH")),
        remarkable_token=_require("REMARKABLE_TOKEN"),
        remarkable_folder=normalize_folder(os.environ.get("REMARKABLE_FOLDER")),
        http_timeout=int(os.environ.get("HTTP_TIMEOUT", "30")),
        log_level=os.environ.get("LOG_LEVEL", "INFO").strip().upper(),
    )


def save_to_env(key: str, value: str) -> None:
    """Update a single key in the .env file, preserving all other content."""
    if ENV_PATH.exists():
        text = ENV_PATH.read_text()
    else:
        ENV_PATH.parent.mkdir(parents=True, exist_ok=True)
        text = ""

    pattern = rf"^{re.escape(key)}=.*$"
    replacement = f"{key}={value}"

    if re.search(pattern, text, flags=re.MULTILINE):
        text = re.sub(pattern, replacement, text, flags=re.MULTILINE)
    else:
        text = text.rstrip("\n") + f"\n{replacement}\n"

    ENV_PATH.write_text(text)
    ENV_PATH.chmod(0o600)
    os.environ[key] = value


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the sync. Call once at the entry point."""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
