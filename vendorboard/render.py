"""Render-time helpers for the feedback thread.

Feedback HTML is stored exactly as submitted; anything shown to a reader must
go through :func:`sanitize_feedback_html` first.
"""
from __future__ import annotations

import html
import logging

from lxml import etree, html as lxml_html

log = logging.getLogger(__name__)

ALLOWED_TAGS = frozenset({"p", "strong", "em", "b", "i", "ul", "ol", "li", "br"})

# Removed together with everything inside them
_DROP_WITH_CONTENT = frozenset({
    "script", "style", "iframe", "object", "embed", "template", "noscript", "head", "title",
})


def sanitize_feedback_html(raw: str | None) -> str:
    """Reduce feedback HTML to a small formatting allowlist with no attributes."""
    if not raw or not raw.strip():
        return ""
    try:
        root = lxml_html.fragment_fromstring(raw, create_parent="div")
    except (etree.ParserError, etree.XMLSyntaxError, ValueError) as exc:
        log.debug("Unparseable feedback HTML, escaping: %s", exc)
        return html.escape(raw)

    for el in list(root.iterdescendants()):
        if not isinstance(el.tag, str):
            el.drop_tree()  # comments, processing instructions
        elif el.tag in _DROP_WITH_CONTENT:
            el.drop_tree()
        elif el.tag not in ALLOWED_TAGS:
            el.drop_tag()
        else:
            el.attrib.clear()

    rendered = lxml_html.tostring(root, encoding="unicode")
    return rendered[len("<div>"):-len("</div>")]


def feedback_for_display(items: list[dict], current_user_id: str | None = None) -> list[dict]:
    """Add ``safeHtml``, ``isOwner`` and ``edited`` to serialized feedback rows."""
    out = []
    for item in items:
        out.append({
            **item,
            "safeHtml": sanitize_feedback_html(item.get("feedbackHtml")),
            "isOwner": current_user_id is not None and item.get("userId") == current_user_id,
            "edited": item.get("updatedAt") != item.get("createdAt"),
        })
    return out
