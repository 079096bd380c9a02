from __future__ import annotations

from rib.core.synchronizer import FRAME_ID, NavigationSynchronizer, render_navigation_script


class FakeFrame:
    def __init__(self, fragment: str = "") -> None:
        self._fragment = fragment
        self.navigations: list[str] = []
        self.focused = 0

    @property
    def fragment(self) -> str:
        return self._fragment

    def navigate(self, fragment: str) -> None:
        self.navigations.append(fragment)
        self._fragment = fragment

    def focus(self) -> None:
        self.focused += 1


def test_load_with_fragment_applies_it_once_and_focuses() -> None:
    frame = FakeFrame()
    sync = NavigationSynchronizer(frame)

    sync.on_load("#ch3")

    assert frame.fragment == "#ch3"
    assert frame.navigations == ["#ch3"]
    assert frame.focused == 1


def test_reapplying_current_fragment_is_a_no_op() -> None:
    frame = FakeFrame()
    sync = NavigationSynchronizer(frame)

    assert sync.apply("#ch3") is True
    assert sync.apply("#ch3") is False
    sync.on_fragment_change("#ch3")

    assert frame.navigations == ["#ch3"]


def test_fragment_changes_are_applied_in_order() -> None:
    frame = FakeFrame()
    sync = NavigationSynchronizer(frame)

    sync.on_load("")
    sync.on_fragment_change("#a")
    sync.on_fragment_change("#b")
    sync.on_fragment_change("#a")

    assert frame.navigations == ["#a", "#b", "#a"]
    assert sync.last_applied == "#a"


def test_frame_already_showing_fragment_is_not_reloaded() -> None:
    frame = FakeFrame("#ch1")
    sync = NavigationSynchronizer(frame)

    sync.on_load("#ch1")

    assert frame.navigations == []
    assert sync.last_applied == "#ch1"
    assert frame.focused == 1


def test_fragment_is_reapplied_after_frame_moves_away() -> None:
    frame = FakeFrame()
    sync = NavigationSynchronizer(frame)
    sync.apply("#ch2")

    # Reader follows an in-document link inside the frame
    frame._fragment = "#note"
    sync.on_fragment_change("#ch2")

    assert frame.navigations == ["#ch2", "#ch2"]


def test_script_targets_the_shared_frame_id() -> None:
    script = render_navigation_script()

    assert f'const FRAME_ID = "{FRAME_ID}";' in script
    assert 'addEventListener("hashchange"' in script
    assert 'addEventListener("load"' in script
    assert "lastApplied" in script
    assert "__FRAME_ID__" not in script


def test_script_frame_id_can_be_overridden() -> None:
    assert 'const FRAME_ID = "other";' in render_navigation_script("other")


class UnreadableFrame(FakeFrame):
    """A frame from another origin: its location can't be read."""

    @property
    def fragment(self) -> str | None:
        return None


def test_unreadable_frame_is_not_reloaded_on_plain_load() -> None:
    frame = UnreadableFrame()
    sync = NavigationSynchronizer(frame)

    sync.on_load("")

    assert frame.navigations == []
    assert frame.focused == 1


def test_unreadable_frame_gets_each_new_fragment_once() -> None:
    frame = UnreadableFrame()
    sync = NavigationSynchronizer(frame)

    sync.on_load("#ch3")
    sync.on_fragment_change("#ch3")
    sync.on_fragment_change("#ch4")
    sync.on_fragment_change("")

    assert frame.navigations == ["#ch3", "#ch4", ""]


def test_unreadable_frame_starts_at_its_src_fragment() -> None:
    frame = UnreadableFrame()
    sync = NavigationSynchronizer(frame, src_fragment="#part")

    sync.on_load("#part")

    assert frame.navigations == []


def test_script_starts_from_the_frame_src_fragment() -> None:
    script = render_navigation_script()

    assert "lastApplied = srcFragment(frame);" in script
    unreadable = script.index("if (frameHash === null) {")
    assert script.index("if (fragment === lastApplied) {", unreadable) < script.index(
        "location.replace(", unreadable
    )
