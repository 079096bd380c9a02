"""Keep the wrapper page's fragment and the content frame's fragment equal.

The synchronizer runs in the browser as a small script shipped with each
book. The wrapper page and the framed document share no state; the only
channel between them is the location fragment. The script copies the
wrapper's fragment into the frame on load and on every ``hashchange``,
remembering the last fragment it applied so that reapplying a fragment the
frame already shows never navigates it again.

:class:`NavigationSynchronizer` is the same protocol written in Python
against a :class:`ContentFrame`, so the behavior can be checked without a
browser. The two must change together.
"""

from typing import Protocol

FRAME_ID = "section"

_SCRIPT_TEMPLATE = """\
"use strict";

(function () {
	const FRAME_ID = "__FRAME_ID__";
	let lastApplied = null;

	function sectionFrame() {
		return document.getElementById(FRAME_ID);
	}

	function srcFragment(frame) {
		const src = frame.getAttribute("src") || "";
		const hashAt = src.indexOf("#");
		return hashAt < 0 ? "" : src.slice(hashAt);
	}

	function currentFrameHash(frame) {
		try {
			return frame.contentWindow.location.hash;
		} catch (e) {
			// Cross-origin (file://) frames can't be read
			return null;
		}
	}

	function applyWindowHash() {
		const frame = sectionFrame();
		if (!frame || !frame.contentWindow) {
			return;
		}
		if (lastApplied === null) {
			lastApplied = srcFragment(frame);
		}
		const fragment = window.location.hash;
		const frameHash = currentFrameHash(frame);
		if (frameHash === null) {
			// Unreadable frame: it still shows the last fragment applied
			if (fragment === lastApplied) {
				return;
			}
			lastApplied = fragment;
			const base = (frame.getAttribute("src") || "").split("#")[0];
			frame.contentWindow.location.replace(base + fragment);
			return;
		}
		lastApplied = fragment;
		if (frameHash !== fragment) {
			frame.contentWindow.location.hash = fragment;
		}
	}

	function focusSectionFrame() {
		const frame = sectionFrame();
		if (frame && frame.contentWindow) {
			frame.contentWindow.focus();
		}
	}

	window.addEventListener("load", function () {
		applyWindowHash();
		focusSectionFrame();
	});
	window.addEventListener("hashchange", applyWindowHash);
})();
"""


def render_navigation_script(frame_id: str = FRAME_ID) -> str:
    """Browser script synchronizing the wrapper with its content frame."""
    return _SCRIPT_TEMPLATE.replace("__FRAME_ID__", frame_id)


class ContentFrame(Protocol):
    """What the synchronizer can see and do to the content frame."""

    @property
    def fragment(self) -> str | None:
        """Fragment the frame shows, or None when it can't be read."""

    def navigate(self, fragment: str) -> None: ...

    def focus(self) -> None: ...


class NavigationSynchronizer:
    """Python model of the wrapper script's event handling.

    ``src_fragment`` is the fragment of the frame's ``src`` attribute, which
    is what an unreadable frame shows until the first navigation.
    """

    def __init__(self, frame: ContentFrame, src_fragment: str = ""):
        self.frame = frame
        self.last_applied = src_fragment

    def apply(self, fragment: str) -> bool:
        """Push the wrapper fragment into the frame; True if it navigated."""
        current = self.frame.fragment
        if current is None:
            if fragment == self.last_applied:
                return False
            self.last_applied = fragment
            self.frame.navigate(fragment)
            return True
        self.last_applied = fragment
        if current == fragment:
            return False
        self.frame.navigate(fragment)
        return True

    def on_load(self, wrapper_fragment: str) -> None:
        self.apply(wrapper_fragment)
        self.frame.focus()

    def on_fragment_change(self, wrapper_fragment: str) -> None:
        self.apply(wrapper_fragment)
