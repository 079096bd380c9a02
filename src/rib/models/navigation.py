"""Navigation tree produced by reconciling the TOC against the spine."""

from typing import Annotated, Iterator, Literal, Union

from pydantic import BaseModel, Field

from rib.models.book import SpineItem


class NavTarget(BaseModel):
    """Fields shared by every navigation node."""

    label: str
    target_href: str = ""
    target_fragment: str | None = None
    spine_index: int | None = None  # None for headings without a target
    linear: bool = True

    @property
    def order_index(self) -> int | None:
        """Resolved reading position, or None for nonlinear/unresolved targets."""
        if self.spine_index is None or not self.linear:
            return None
        return self.spine_index

    @property
    def is_nonlinear(self) -> bool:
        return self.spine_index is not None and not self.linear


class NavLeaf(NavTarget):
    kind: Literal["leaf"] = "leaf"
    spine_index: int


class NavGroup(NavTarget):
    kind: Literal["group"] = "group"
    children: list["NavNode"] = Field(default_factory=list)


NavNode = Annotated[Union[NavLeaf, NavGroup], Field(discriminator="kind")]
NavGroup.model_rebuild()


def iter_nodes(nodes: list[NavNode]) -> Iterator[NavLeaf | NavGroup]:
    """Walk nodes in document order, parents before their children."""
    for node in nodes:
        yield node
        if isinstance(node, NavGroup):
            yield from iter_nodes(node.children)


class NavigationTree(BaseModel):
    """Validated TOC tree plus the spine it resolves into."""

    spine: list[SpineItem]
    roots: list[NavNode] = Field(default_factory=list)
    toc_degraded: bool = False

    @classmethod
    def spine_only(cls, spine: list[SpineItem], degraded: bool = False) -> "NavigationTree":
        return cls(spine=list(spine), roots=[], toc_degraded=degraded)

    def nodes(self) -> list[NavLeaf | NavGroup]:
        return list(iter_nodes(self.roots))

    def leaves(self) -> list[NavLeaf]:
        return [node for node in iter_nodes(self.roots) if isinstance(node, NavLeaf)]

    @property
    def chain(self) -> list[SpineItem]:
        """Linear spine items in reading order."""
        return [item for item in self.spine if item.is_linear]

    @property
    def first_linear(self) -> SpineItem:
        return self.chain[0]

    @property
    def last_linear(self) -> SpineItem:
        return self.chain[-1]

    def previous_of(self, spine_index: int) -> SpineItem | None:
        """Nearest linear spine item before the given spine position."""
        for item in reversed(self.spine[:spine_index]):
            if item.is_linear:
                return item
        return None

    def next_of(self, spine_index: int) -> SpineItem | None:
        """Nearest linear spine item after the given spine position."""
        for item in self.spine[spine_index + 1 :]:
            if item.is_linear:
                return item
        return None

    def find_spine_item(self, href: str) -> SpineItem | None:
        for item in self.spine:
            if item.href == href:
                return item
        return None
