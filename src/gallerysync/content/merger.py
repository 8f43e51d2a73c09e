"""Splice a rendered fragment into an existing page body."""

from __future__ import annotations

import re

from gallerysync.content.renderer import SENTINEL_END, SENTINEL_START

# Pages written before the sentinels existed: first generated style/nav/heading block through
# the last gallery closer.
LEGACY_SPAN_RE = re.compile(
    r"(?:<!--\s*wp:html\s*-->\s*<style>\s*\.masonry-gallery"
    r"|<!--\s*wp:html\s*-->\s*<div class=\"toc-dropdown\""
    r"|<!--\s*wp:heading)"
    r"[\s\S]*<!--\s*/wp:gallery\s*-->"
)


def find_generated_span(body: str) -> tuple[int, int] | None:
    """Return the `(start, end)` offsets of previously generated content, if any."""

    start = body.find(SENTINEL_START)
    if start != -1:
        end = body.rfind(SENTINEL_END)
        if end > start:
            return start, end + len(SENTINEL_END)

    match = LEGACY_SPAN_RE.search(body)
    if match:
        return match.span()
    return None


def merge(existing_body: str, fragment: str, replace_all: bool = False) -> str:
    """Replace the generated span of `existing_body` with `fragment`, or append it.

    Content before and after the span is kept; only the whitespace touching the span is
    normalized to a single blank line, so merging twice gives the same body as merging once.
    """

    if replace_all:
        return fragment

    body = existing_body or ""
    span = find_generated_span(body)
    if span is None:
        head = body.rstrip()
        return f"{head}\n\n{fragment}" if head else fragment

    start, end = span
    parts = [body[:start].rstrip(), fragment, body[end:].lstrip()]
    return "\n\n".join(part for part in parts if part)
