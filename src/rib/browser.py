"""Launch the host browser on a materialized page."""

import logging
import shlex
import subprocess
import webbrowser
from pathlib import Path

from rib.errors import BrowserError

log = logging.getLogger(__name__)


def page_uri(path: Path, fragment: str | None = None) -> str:
    """``file://`` URI of a page, with an optional fragment."""
    uri = path.resolve().as_uri()
    if fragment:
        uri = f"{uri}#{fragment}"
    return uri


def open_in_browser(path: Path, fragment: str | None = None, command: str | None = None) -> str:
    """Open a page in ``command`` or, when unset, the default browser.

    Returns:
        The URI that was opened.

    Raises:
        BrowserError: If the browser couldn't be started.
    """
    uri = page_uri(path, fragment)
    if command:
        args = [*shlex.split(command), uri]
        log.debug("Running %s", args)
        try:
            subprocess.Popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except (OSError, ValueError) as e:
            raise BrowserError(f"Failed to open {uri} with '{command}': {e}") from e
        return uri

    if not webbrowser.open(uri):
        raise BrowserError(f"Failed to open {uri}: no usable browser found")
    return uri
