"""Rewrite spine documents for the materialized book.

The rewriter parses each document strictly, injects the style profile's
CSS, points relative references at their place in the book directory and
appends a small navigation bar. Everything else is serialized back as it
was parsed: comments, CDATA sections, entity references, the XML
declaration's encoding and the doctype are all kept.
"""

import logging
import posixpath
from dataclasses import dataclass
from urllib.parse import unquote, urlsplit, urlunsplit

from lxml import etree

from rib.core.css import NAVIGATION_AFFORDANCE_CSS, book_css
from rib.core.layout import RenditionLayout, relative_url
from rib.errors import InvalidMarkup
from rib.models.style import Stylesheet

log = logging.getLogger(__name__)

XLINK_HREF = "{http://www.w3.org/1999/xlink}href"
REFERENCE_ATTRIBUTES = ("src", "href", XLINK_HREF, "poster", "data")

BASE_STYLE_ID = "rib-base-style"
OVERRIDE_STYLE_ID = "rib-override-style"
NAVIGATION_ID = "rib-navigation"


@dataclass
class NavigationTargets:
    """URLs (relative to the rewritten document) for the navigation bar."""

    previous: str | None = None
    next: str | None = None
    index: str | None = None

    def __bool__(self) -> bool:
        return bool(self.previous or self.next or self.index)


def _parser() -> etree.XMLParser:
    return etree.XMLParser(
        resolve_entities=False,
        strip_cdata=False,
        remove_blank_text=False,
        remove_comments=False,
        remove_pis=False,
        load_dtd=False,
        no_network=True,
        huge_tree=True,
    )


def _local_name(element) -> str:
    return etree.QName(element).localname


def _is_native_styling(element) -> bool:
    name = _local_name(element)
    if name == "style":
        return True
    if name == "link":
        return "stylesheet" in (element.get("rel") or "").lower().split()
    return False


class SectionRewriter:
    """Rewrites spine documents of one book with one style profile."""

    def __init__(self, style: Stylesheet, layout: RenditionLayout):
        self.layout = layout
        self.base_css = book_css(style, override=False)
        self.override_css = book_css(style, override=True)

    def rewrite(
        self,
        item_href: str,
        raw: bytes,
        targets: NavigationTargets | None = None,
    ) -> bytes:
        """Return the rewritten document.

        Raises:
            InvalidMarkup: If the document isn't well-formed XML.
        """
        try:
            root = etree.fromstring(raw, _parser())
        except etree.XMLSyntaxError as e:
            raise InvalidMarkup(item_href, str(e)) from e

        tree = root.getroottree()
        doc_path = self.layout.content_path(item_href)
        self._rewrite_references(root, item_href, doc_path)

        if _local_name(root) == "html":
            namespace = etree.QName(root).namespace
            inject_navigation = bool(targets)
            if inject_navigation:
                self._append_navigation(root, namespace, targets)
            base_css = self.base_css
            if inject_navigation:
                base_css += NAVIGATION_AFFORDANCE_CSS
            self._inject_styles(root, namespace, base_css, self.override_css)

        has_declaration = raw.lstrip(b"\xef\xbb\xbf \t\r\n").startswith(b"<?xml")
        return etree.tostring(
            tree,
            encoding=tree.docinfo.encoding or "UTF-8",
            xml_declaration=has_declaration,
        )

    # References

    def _rewrite_references(self, root, item_href: str, doc_path: str) -> None:
        for element in root.iter(etree.Element):
            is_anchor = _local_name(element) == "a"
            for attribute in REFERENCE_ATTRIBUTES:
                value = element.get(attribute)
                if value is None:
                    continue
                if is_anchor and attribute in ("href", XLINK_HREF):
                    self._rewrite_anchor(element, attribute, value, item_href, doc_path)
                    continue
                new_value = self._relink(value, item_href, doc_path)
                if new_value is not None:
                    element.set(attribute, new_value)

    def _resolve(self, path: str, item_href: str) -> str:
        return posixpath.normpath(posixpath.join(posixpath.dirname(item_href), unquote(path)))

    def _relink(self, value: str, item_href: str, doc_path: str) -> str | None:
        """New spelling of a relative reference, or None to leave it alone."""
        parts = urlsplit(value)
        if parts.scheme or parts.netloc or not parts.path or parts.path.startswith("/"):
            return None
        target = self._resolve(parts.path, item_href)
        target_path = self.layout.remap.get(target)
        if target_path is None:
            log.debug("%s: reference %s is not in the book, left unchanged", item_href, value)
            return None
        new_path = relative_url(target_path, doc_path)
        if unquote(new_path) == unquote(parts.path):
            return None
        return urlunsplit(("", "", new_path, parts.query, parts.fragment))

    def _rewrite_anchor(
        self, element, attribute: str, value: str, item_href: str, doc_path: str
    ) -> None:
        parts = urlsplit(value)
        if parts.scheme or parts.netloc:
            # External links open in a new tab
            element.set("target", "_blank")
            return
        if parts.path and not parts.path.startswith("/"):
            target = self._resolve(parts.path, item_href)
            wrapper = self.layout.wrappers.get(target)
            if wrapper is not None and target != item_href:
                element.set(
                    attribute,
                    urlunsplit(("", "", relative_url(wrapper, doc_path), parts.query, parts.fragment)),
                )
                element.set("target", "_top")
                return
        new_value = self._relink(value, item_href, doc_path)
        if new_value is not None:
            element.set(attribute, new_value)

    # Injection

    def _inject_styles(self, root, namespace: str | None, base_css: str, override_css: str) -> None:
        def tag(name: str) -> str:
            return f"{{{namespace}}}{name}" if namespace else name

        head = root.find(tag("head"))
        if head is None:
            head = etree.Element(tag("head"))
            root.insert(0, head)

        if base_css:
            style = etree.Element(tag("style"), id=BASE_STYLE_ID)
            style.text = base_css
            native = next((child for child in head if _is_native_styling(child)), None)
            if native is not None:
                # Book styles come later in source order and win
                native.addprevious(style)
            else:
                head.append(style)
        if override_css:
            style = etree.SubElement(head, tag("style"), id=OVERRIDE_STYLE_ID)
            style.text = override_css

    def _append_navigation(self, root, namespace: str | None, targets: NavigationTargets) -> None:
        def tag(name: str) -> str:
            return f"{{{namespace}}}{name}" if namespace else name

        body = root.find(tag("body"))
        if body is None:
            return
        nav = etree.SubElement(body, tag("nav"), id=NAVIGATION_ID)
        for label, url in (
            ("Previous", targets.previous),
            ("Index", targets.index),
            ("Next", targets.next),
        ):
            if url:
                link = etree.SubElement(nav, tag("a"), href=url, target="_top")
                link.set("class", "rib-navigation-button")
                link.text = label
