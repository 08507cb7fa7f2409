"""Allowlist HTML sanitizer and visible-text extraction for cell fragments.

Built on ``lxml.html``: the fragment is parsed tolerantly, disallowed
elements are unwrapped (their text survives), dangerous containers are
removed with their content, and attributes are filtered per tag.
"""

from __future__ import annotations

import re
from typing import Iterable, Mapping

import lxml.html
from lxml import etree
from markupsafe import Markup, escape

DEFAULT_ALLOWED_TAGS: frozenset[str] = frozenset({
    "a", "abbr", "b", "blockquote", "br", "cite", "code", "del", "div", "em",
    "h1", "h2", "h3", "h4", "h5", "h6", "hr", "i", "img", "ins", "kbd", "li",
    "mark", "ol", "p", "pre", "q", "s", "small", "span", "strong", "sub",
    "sup", "u", "ul",
})

DEFAULT_ALLOWED_ATTRIBUTES: dict[str, frozenset[str]] = {
    "*": frozenset({"class", "title", "lang", "dir"}),
    "a": frozenset({"href", "target", "rel", "name"}),
    "img": frozenset({"src", "alt", "width", "height", "loading"}),
    "abbr": frozenset({"title"}),
    "blockquote": frozenset({"cite"}),
    "q": frozenset({"cite"}),
    "del": frozenset({"datetime"}),
    "ins": frozenset({"datetime"}),
}

DEFAULT_URL_SCHEMES: frozenset[str] = frozenset({"http", "https", "ftp", "ftps", "mailto", "tel"})

# Removed together with everything inside them.
_DROP_WITH_CONTENT = frozenset({
    "script", "style", "iframe", "frame", "frameset", "object", "embed",
    "noscript", "template", "applet", "svg", "math",
})

_URL_ATTRIBUTES = frozenset({"href", "src", "cite"})
_CONTROL_RE = re.compile(r"[\x00-\x20]+")
_SCHEME_RE = re.compile(r"^([a-z][a-z0-9+.\-]*):")


class HtmlSanitizer:
    """Strip markup down to a host-defined safe subset.

    Args:
        allowed_tags: Element names kept as-is (others are unwrapped).
        allowed_attributes: Tag name -> attribute names; ``"*"`` applies to
            every allowed tag.
        url_schemes: Schemes accepted in ``href``/``src``/``cite``.
            Relative URLs are always accepted.
    """

    def __init__(
        self,
        allowed_tags: Iterable[str] | None = None,
        allowed_attributes: Mapping[str, Iterable[str]] | None = None,
        url_schemes: Iterable[str] | None = None,
    ) -> None:
        self.allowed_tags = frozenset(
            t.lower() for t in (allowed_tags if allowed_tags is not None else DEFAULT_ALLOWED_TAGS)
        )
        attrs = allowed_attributes if allowed_attributes is not None else DEFAULT_ALLOWED_ATTRIBUTES
        self.allowed_attributes = {
            tag.lower(): frozenset(a.lower() for a in names) for tag, names in attrs.items()
        }
        self.url_schemes = frozenset(
            s.lower() for s in (url_schemes if url_schemes is not None else DEFAULT_URL_SCHEMES)
        )

    def _attrs_for(self, tag: str) -> frozenset[str]:
        return self.allowed_attributes.get("*", frozenset()) | self.allowed_attributes.get(tag, frozenset())

    def url_allowed(self, url: str) -> bool:
        """Return True if *url* is relative or uses an allowed scheme."""
        cleaned = _CONTROL_RE.sub("", url).lower()
        m = _SCHEME_RE.match(cleaned)
        return m is None or m.group(1) in self.url_schemes

    def clean(self, value: str) -> Markup:
        """Sanitize an HTML fragment and return safe markup."""
        if not value or not value.strip():
            return escape(value or "")
        try:
            root = lxml.html.fragment_fromstring(value, create_parent="div")
        except (etree.ParserError, ValueError):
            return escape(value)

        for el in list(root.iterdescendants()):
            if not isinstance(el.tag, str):
                # comments, processing instructions
                el.drop_tree()
                continue
            tag = el.tag.lower()
            if tag in _DROP_WITH_CONTENT:
                el.drop_tree()
            elif tag not in self.allowed_tags:
                el.drop_tag()
            else:
                keep = self._attrs_for(tag)
                for name in list(el.attrib):
                    lname = name.lower()
                    if lname not in keep:
                        del el.attrib[name]
                    elif lname in _URL_ATTRIBUTES and not self.url_allowed(el.attrib[name]):
                        del el.attrib[name]

        parts = [str(escape(root.text or ""))]
        parts.extend(lxml.html.tostring(child, encoding="unicode") for child in root)
        return Markup("".join(parts))


def visible_text(fragment: str) -> str:
    """Return the text a browser would show for an HTML *fragment*."""
    if not fragment:
        return ""
    try:
        root = lxml.html.fragment_fromstring(str(fragment), create_parent="div")
    except (etree.ParserError, ValueError):
        return str(fragment)
    return root.text_content()


def sanitize_html_class(value: str) -> str:
    """Reduce a CSS class name to ``[A-Za-z0-9_-]`` characters."""
    return re.sub(r"[^A-Za-z0-9_\-]", "", value or "")
