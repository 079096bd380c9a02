from __future__ import annotations

import pytest
from lxml import etree

from rib.core.css import book_css
from rib.core.layout import RenditionLayout
from rib.core.rewriter import (
    BASE_STYLE_ID,
    NAVIGATION_ID,
    OVERRIDE_STYLE_ID,
    NavigationTargets,
    SectionRewriter,
)
from rib.errors import InvalidMarkup
from rib.models.style import NULL_STYLESHEET, Stylesheet

NS = {"x": "http://www.w3.org/1999/xhtml"}

LAYOUT = RenditionLayout(
    remap={
        "text/ch1.xhtml": "contents/text/ch1.xhtml",
        "text/ch2.html": "contents/text/ch2.html.xhtml",
        "images/dot.png": "contents/images/dot.png",
        "style.css": "contents/style.css",
    },
    wrappers={
        "text/ch1.xhtml": "read/0000.xhtml",
        "text/ch2.html": "read/0001.xhtml",
    },
)

DOCUMENT = b"""<?xml version="1.0" encoding="utf-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml">
  <head>
    <title>One</title>
    <link rel="stylesheet" type="text/css" href="../style.css"/>
  </head>
  <body>
    <!-- keep this comment -->
    <p>Plain <em>text</em> &#38; more.</p>
    <img src="../images/dot.png?v=2" alt="dot"/>
    <a id="cross" href="ch2.html#sec-2">Two</a>
    <a id="self" href="#top">Top</a>
    <a id="away" href="https://example.org/x">Away</a>
    <a id="missing" href="gone.xhtml">Gone</a>
    <script type="text/javascript"><![CDATA[ if (a < b) { go(); } ]]></script>
  </body>
</html>
"""


def _rewrite(style: Stylesheet = NULL_STYLESHEET, targets: NavigationTargets | None = None) -> bytes:
    return SectionRewriter(style, LAYOUT).rewrite("text/ch1.xhtml", DOCUMENT, targets)


def _anchor(root, anchor_id: str):
    return root.xpath(f"//x:a[@id='{anchor_id}']", namespaces=NS)[0]


def test_doctype_declaration_and_comments_survive() -> None:
    output = _rewrite()

    assert output.startswith(b"<?xml")
    assert b"<!DOCTYPE html>" in output
    assert b"<!-- keep this comment -->" in output
    assert b"<![CDATA[ if (a < b) { go(); } ]]>" in output


def test_declared_encoding_is_kept() -> None:
    raw = (
        b'<?xml version="1.0" encoding="ISO-8859-1"?>\n'
        b'<html xmlns="http://www.w3.org/1999/xhtml"><head><title>Caf\xe9</title></head>'
        b"<body><p>Un caf\xe9 cr\xe8me.</p></body></html>"
    )
    style = Stylesheet.model_validate({"text_color": {"value": "red"}})

    output = SectionRewriter(style, LAYOUT).rewrite("text/ch1.xhtml", raw)

    declaration = output.split(b"?>", 1)[0].lower()
    assert declaration.startswith(b"<?xml")
    assert b"iso-8859-1" in declaration
    assert b"<p>Un caf\xe9 cr\xe8me.</p>" in output
    assert b"caf\xc3\xa9" not in output
    paragraph = etree.fromstring(output).find(".//x:p", namespaces=NS)
    assert paragraph.text == "Un caf\u00e9 cr\u00e8me."


def test_document_without_declaration_gets_none() -> None:
    raw = b'<html xmlns="http://www.w3.org/1999/xhtml"><head/><body><p>x</p></body></html>'
    output = SectionRewriter(NULL_STYLESHEET, LAYOUT).rewrite("text/ch1.xhtml", raw)

    assert not output.startswith(b"<?xml")
    assert b"<p>x</p>" in output


def test_body_text_is_unchanged() -> None:
    original = etree.fromstring(DOCUMENT)
    rewritten = etree.fromstring(_rewrite(targets=NavigationTargets(next="../../read/0001.xhtml")))
    for nav in rewritten.xpath("//x:nav", namespaces=NS):
        nav.getparent().remove(nav)

    assert "".join(rewritten.find("x:body", NS).itertext()) == "".join(
        original.find("x:body", NS).itertext()
    )


def test_references_already_in_place_keep_their_spelling() -> None:
    root = etree.fromstring(_rewrite())

    assert root.xpath("//x:img/@src", namespaces=NS) == ["../images/dot.png?v=2"]
    assert root.xpath("//x:link/@href", namespaces=NS) == ["../style.css"]
    assert _anchor(root, "self").get("href") == "#top"
    assert _anchor(root, "missing").get("href") == "gone.xhtml"


def test_renamed_resources_are_relinked() -> None:
    raw = (
        b'<html xmlns="http://www.w3.org/1999/xhtml"><head/><body>'
        b'<iframe src="ch2.html#frag"/></body></html>'
    )
    output = SectionRewriter(NULL_STYLESHEET, LAYOUT).rewrite("text/ch1.xhtml", raw)

    assert b'src="ch2.html.xhtml#frag"' in output


def test_cross_document_links_go_through_wrapper_pages() -> None:
    root = etree.fromstring(_rewrite())

    cross = _anchor(root, "cross")
    assert cross.get("href") == "../../read/0001.xhtml#sec-2"
    assert cross.get("target") == "_top"


def test_external_links_open_in_new_tab() -> None:
    root = etree.fromstring(_rewrite())

    away = _anchor(root, "away")
    assert away.get("href") == "https://example.org/x"
    assert away.get("target") == "_blank"


def test_styles_are_placed_around_book_styles() -> None:
    style = Stylesheet.model_validate(
        {
            "font_size": {"value": 18, "override_book": False},
            "text_color": {"value": "gold", "override_book": True},
        }
    )
    root = etree.fromstring(_rewrite(style))
    head = root.find("x:head", NS)
    ids = [child.get("id") or etree.QName(child).localname for child in head]

    assert ids == ["title", BASE_STYLE_ID, "link", OVERRIDE_STYLE_ID]
    base = head.find(f"x:style[@id='{BASE_STYLE_ID}']", NS)
    override = head.find(f"x:style[@id='{OVERRIDE_STYLE_ID}']", NS)
    assert "font-size: 18px;" in base.text
    assert "color: gold !important;" in override.text


def test_empty_stylesheet_injects_nothing() -> None:
    root = etree.fromstring(_rewrite())

    assert root.xpath("//x:style", namespaces=NS) == []


def test_missing_head_is_created() -> None:
    style = Stylesheet.model_validate({"font": {"value": "serif"}})
    raw = b'<html xmlns="http://www.w3.org/1999/xhtml"><body><p>x</p></body></html>'
    root = etree.fromstring(SectionRewriter(style, LAYOUT).rewrite("text/ch1.xhtml", raw))

    assert etree.QName(root[0]).localname == "head"
    assert root[0][0].get("id") == BASE_STYLE_ID


def test_navigation_links_only_for_available_targets() -> None:
    targets = NavigationTargets(next="../../read/0001.xhtml", index="../../index.xhtml")
    root = etree.fromstring(_rewrite(targets=targets))

    nav = root.find(f".//x:nav[@id='{NAVIGATION_ID}']", NS)
    assert nav is not None
    assert [(a.text, a.get("href")) for a in nav] == [
        ("Index", "../../index.xhtml"),
        ("Next", "../../read/0001.xhtml"),
    ]
    assert all(a.get("target") == "_top" for a in nav)
    assert nav.getparent() is root.find("x:body", NS)


def test_no_targets_no_navigation() -> None:
    root = etree.fromstring(_rewrite(targets=NavigationTargets()))

    assert root.find(".//x:nav", NS) is None


def test_ill_formed_markup_names_the_item() -> None:
    rewriter = SectionRewriter(NULL_STYLESHEET, LAYOUT)

    with pytest.raises(InvalidMarkup) as excinfo:
        rewriter.rewrite("text/broken.xhtml", b"<html><body><p>open</body></html>")

    assert excinfo.value.item_href == "text/broken.xhtml"
    assert "text/broken.xhtml" in str(excinfo.value)


def test_book_css_splits_by_override() -> None:
    style = Stylesheet.model_validate(
        {
            "line_spacing": {"value": 1.5, "override_book": False},
            "limit_image_size_to_viewport_size": {"value": True, "override_book": True},
            "freeform_css_override": "h1 { color: red; }",
        }
    )

    base = book_css(style, override=False)
    override = book_css(style, override=True)

    assert "line-height: 1.5;" in base
    assert "max-width" not in base
    assert "max-width: 100% !important;" in override
    assert override.rstrip().endswith("h1 { color: red; }")
