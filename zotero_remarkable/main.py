"""zotero-remarkable entry point.

One-shot script: copies the PDFs of a Zotero collection to reMarkable,
then takes the synced items out of the collection. Meant for cron.
"""

import logging
import sys
import zipfile
from typing import List, Optional

import requests

from zotero_remarkable import __version__

log = logging.getLogger("zotero_remarkable")

_HELP = """\
Usage: zotero-remarkable [option]

  zotero-remarkable             Sync the Zotero collection to reMarkable
  zotero-remarkable --dry-run   Show what would be synced, change nothing
  zotero-remarkable --register  Get a reMarkable device token

Options:
  -h, --help            Show this help
  -V, --version         Show version

Configuration is read from the environment or a .env file:
  ZOTERO_USER, ZOTERO_API_KEY, ZOTERO_COLLECTION, WEBDAV_URL,
  WEBDAV_AUTH (user:password), REMARKABLE_TOKEN,
  REMARKABLE_FOLDER (default /Zotero), HTTP_TIMEOUT, LOG_LEVEL
"""


def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv

    if "--help" in args or "-h" in args:
        print(_HELP)
        return 0

    if "--version" in args or "-V" in args:
        print(f"zotero-remarkable {__version__}")
        return 0

    if "--register" in args:
        from zotero_remarkable.remarkable_auth import TokenError, register_interactive
        try:
            register_interactive()
        except TokenError as e:
            print(f"\n  {e}\n")
            return 1
        return 0

    from zotero_remarkable import config
    from zotero_remarkable import remarkable_client
    from zotero_remarkable import sync

    cfg = config.load_config()
    config.setup_logging(cfg.log_level)

    try:
        result = sync.run(cfg, dry_run="--dry-run" in args)
    except KeyboardInterrupt:
        print("\n  Interrupted.\n")
        return 130
    except remarkable_client.RmapiAuthError as e:
        print(f"\n  {e}\n")
        return 1
    except requests.exceptions.ConnectionError:
        print(
            "\n  Could not connect to the internet."
            "\n  Check your network connection and try again.\n"
        )
        return 1
    except requests.exceptions.HTTPError as e:
        resp = e.response
        if resp is not None and resp.status_code == 403 and "zotero.org" in resp.url:
            print(
                "\n  Zotero returned 403 Forbidden."
                "\n  Your API key may be invalid or expired."
                "\n  Check ZOTERO_API_KEY in your config.\n"
            )
            return 1
        if resp is not None and resp.status_code == 429:
            print(
                "\n  Zotero rate limit reached."
                "\n  Wait a few minutes and try again.\n"
            )
            return 1
        log.exception("HTTP error")
        return 1
    except zipfile.BadZipFile:
        log.exception("Downloaded attachment is not a valid zip archive")
        return 1
    except Exception:
        log.exception("Unexpected error")
        return 1

    if result.found:
        log.info(
            "Done: %d uploaded, %d skipped, %d removed from collection (%d request(s))",
            result.uploaded, result.skipped, result.removed, result.batches,
        )
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
