"""Generate CSS text from stylesheet profiles.

Not a general CSS serializer, just enough to emit flat rule blocks.
"""

from dataclasses import dataclass, field

from rib.models.style import Stylesheet


@dataclass
class CssRule:
    """A selector with its declarations."""

    selector: str
    declarations: list[str] = field(default_factory=list)

    def add(self, declaration: str) -> None:
        self.declarations.append(declaration)

    def render(self) -> str | None:
        if not self.declarations:
            return None
        body = "\n".join(f"\t{line};" for line in self.declarations)
        return f"{self.selector} {{\n{body}\n}}"


def render_rules(rules: list[CssRule], extra: str | None = None) -> str:
    """Join non-empty rules (plus optional raw CSS) into one stylesheet."""
    blocks = [text for text in (rule.render() for rule in rules) if text]
    if extra and extra.strip():
        blocks.append(extra.strip())
    if not blocks:
        return ""
    return "\n\n".join(blocks) + "\n"


def book_css(style: Stylesheet, override: bool) -> str:
    """CSS for the properties whose ``override_book`` equals ``override``.

    Overriding declarations are marked ``!important`` so they also beat
    more specific selectors in the book's own stylesheets.
    """
    suffix = " !important" if override else ""

    def wanted(prop) -> bool:
        return prop is not None and prop.override_book == override

    html = CssRule("html")
    body = CssRule("body")
    paragraph = CssRule("p")
    links = CssRule(":any-link")
    images = CssRule("img, svg")

    if wanted(style.font):
        body.add(f"font-family: {style.font.value}{suffix}")
    if wanted(style.font_size):
        body.add(f"font-size: {style.font_size.value}px{suffix}")
    if wanted(style.text_color):
        body.add(f"color: {style.text_color.value}{suffix}")
    if wanted(style.background_color):
        html.add(f"background-color: {style.background_color.value}{suffix}")
        body.add(f"background-color: {style.background_color.value}{suffix}")
    if wanted(style.line_spacing):
        body.add(f"line-height: {style.line_spacing.value:g}{suffix}")
    if wanted(style.margin_size):
        html.add(f"padding-left: {style.margin_size.value}px{suffix}")
        html.add(f"padding-right: {style.margin_size.value}px{suffix}")
    if wanted(style.max_width):
        body.add(f"max-width: {style.max_width.value}px{suffix}")
        body.add(f"margin-left: auto{suffix}")
        body.add(f"margin-right: auto{suffix}")
    if wanted(style.indentation):
        paragraph.add(f"text-indent: {style.indentation.value}px{suffix}")
    if wanted(style.link_color):
        links.add(f"color: {style.link_color.value}{suffix}")
    if wanted(style.limit_image_size_to_viewport_size) and (
        style.limit_image_size_to_viewport_size.value
    ):
        images.add(f"max-width: 100%{suffix}")
        images.add(f"max-height: 100vh{suffix}")

    freeform = style.freeform_css_override if override else style.freeform_css_no_override
    return render_rules([html, body, paragraph, links, images], freeform)


NAVIGATION_AFFORDANCE_CSS = render_rules(
    [
        CssRule(
            "#rib-navigation",
            [
                "display: flex",
                "justify-content: center",
                "gap: 1rem",
                "margin: 2rem 0 1rem",
                "text-indent: 0",
            ],
        ),
        CssRule(
            ".rib-navigation-button",
            [
                "padding: 0.1rem 0.4rem",
                "border: 0.1rem solid currentColor",
                "border-radius: 0.2rem",
                "text-decoration: none",
            ],
        ),
    ]
)


def wrapper_css(style: Stylesheet) -> str:
    """Stylesheet for the wrapper pages hosting the content frame."""
    body = CssRule(
        "body",
        ["margin: 0", "padding: 0", "height: 100vh", "width: 100vw", "overflow: hidden"],
    )
    if style.text_color:
        body.add(f"color: {style.text_color.value}")
    if style.background_color:
        body.add(f"background-color: {style.background_color.value}")
    frame = CssRule("#section", ["border: none", "height: 100%", "width: 100%", "display: block"])
    return render_rules([body, frame])


def index_css(style: Stylesheet) -> str:
    """Stylesheet for the index page."""
    border_color = style.text_color.value if style.text_color else "black"
    body = CssRule("body", ["text-align: center"])
    if style.text_color:
        body.add(f"color: {style.text_color.value}")
    if style.background_color:
        body.add(f"background-color: {style.background_color.value}")
    if style.margin_size:
        body.add(f"margin-left: {style.margin_size.value}px")
        body.add(f"margin-right: {style.margin_size.value}px")
    if style.font:
        body.add(f"font-family: {style.font.value}")
    links = CssRule(":any-link")
    if style.link_color:
        links.add(f"color: {style.link_color.value}")
    return render_rules(
        [
            body,
            CssRule(
                "table",
                ["border-collapse: collapse", "margin-left: auto", "margin-right: auto"],
            ),
            CssRule("td", [f"border: 1px solid {border_color}", "vertical-align: top"]),
            CssRule("ol, ul", ["text-align: left"]),
            CssRule(".nonlinear", ["font-style: italic"]),
            CssRule("img", ["max-width: 100%", "max-height: 50vh"]),
            links,
        ]
    )
