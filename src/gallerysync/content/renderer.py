"""Render gallery sections into WordPress block markup."""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from dataclasses import dataclass
from html import escape
from typing import Any

from gallerysync.models import Section, SectionItem

SENTINEL_START = "<!-- gallerysync:start -->"
SENTINEL_END = "<!-- gallerysync:end -->"

DEFAULT_LIGHTBOX_GROUP = "gallery-lightbox"
SECTION_SPACER_PX = 30
TOC_SPACER_PX = 50

_SLUG_RE = re.compile(r"[^a-z0-9]+")

MASONRY_STYLES = """<!-- wp:html -->
<style>
.masonry-gallery.wp-block-gallery {
    display: block !important;
    column-count: 3;
    column-gap: 10px;
}
.masonry-gallery.wp-block-gallery .wp-block-image {
    break-inside: avoid;
    margin-bottom: 10px !important;
    width: 100% !important;
}
.masonry-gallery.wp-block-gallery .wp-block-image img {
    width: 100%;
    height: auto !important;
    object-fit: contain;
    border-radius: 4px;
}
.masonry-gallery.wp-block-gallery .wp-block-image figure {
    margin: 0;
    height: auto !important;
}
@media (max-width: 900px) {
    .masonry-gallery.wp-block-gallery { column-count: 2; }
}
@media (max-width: 500px) {
    .masonry-gallery.wp-block-gallery { column-count: 1; }
}
</style>
<!-- /wp:html -->"""


@dataclass(frozen=True, slots=True)
class RenderOptions:
    lightbox_group: str = DEFAULT_LIGHTBOX_GROUP
    make_sections: bool = True
    toc_label: str = "Jump to section:"
    toc_placeholder: str = "-- Choose a section --"


def make_anchor_id(text: str) -> str:
    """Slug used for heading anchors and navigation targets (`Photo & Video!` -> `photo-video`)."""

    return _SLUG_RE.sub("-", text.lower()).strip("-")


def _attrs(payload: dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def make_heading_block(text: str, level: int = 2, anchor: str | None = None) -> str:
    attrs: dict[str, Any] = {"level": level}
    id_attr = ""
    if anchor:
        attrs["anchor"] = anchor
        id_attr = f' id="{escape(anchor)}"'
    return (
        f"<!-- wp:heading {_attrs(attrs)} -->\n"
        f'<h{level}{id_attr} class="wp-block-heading">{escape(text, quote=False)}</h{level}>\n'
        "<!-- /wp:heading -->"
    )


def make_spacer_block(height: int = TOC_SPACER_PX) -> str:
    return (
        f'<!-- wp:spacer {_attrs({"height": f"{height}px"})} -->\n'
        f'<div style="height:{height}px" aria-hidden="true" class="wp-block-spacer"></div>\n'
        "<!-- /wp:spacer -->"
    )


def make_image_block(item: SectionItem, group: str) -> str:
    identity = item.identity
    attrs = {
        "id": identity.id,
        "sizeSlug": "large",
        "linkDestination": "media",
        "lightbox": {"enabled": True, "group": group},
    }
    url = escape(identity.url)
    return (
        f"<!-- wp:image {_attrs(attrs)} -->\n"
        f'<figure class="wp-block-image size-large"><a href="{url}"><img src="{url}" '
        f'alt="{escape(item.alt_text)}" class="wp-image-{escape(str(identity.id))}"/></a></figure>\n'
        "<!-- /wp:image -->"
    )


def make_gallery_block(items: Sequence[SectionItem], group: str = DEFAULT_LIGHTBOX_GROUP) -> str:
    attrs = {
        "linkTo": "media",
        "lightbox": {"enabled": True, "group": group},
        "className": "masonry-gallery",
    }
    images = "\n".join(make_image_block(item, group) for item in items)
    return (
        f"<!-- wp:gallery {_attrs(attrs)} -->\n"
        '<figure class="wp-block-gallery has-nested-images columns-default masonry-gallery">\n'
        f"{images}\n"
        "</figure>\n"
        "<!-- /wp:gallery -->"
    )


def make_toc_block(sections: Sequence[Section], options: RenderOptions = RenderOptions()) -> str:
    """Navigation dropdown with one option per section."""

    lines = [
        f'<option value="#{make_anchor_id(section.name)}">{escape(section.name, quote=False)}</option>'
        for section in sections
    ]
    option_lines = "\n".join(
        [f'<option value="">{escape(options.toc_placeholder, quote=False)}</option>', *lines]
    )
    return (
        "<!-- wp:html -->\n"
        '<div class="toc-dropdown" style="margin-bottom: 1.5em;">\n'
        '<label for="toc-select" style="font-weight: bold; margin-right: 0.5em;">'
        f"{escape(options.toc_label, quote=False)}</label>\n"
        '<select id="toc-select" onchange="if(this.value) window.location.hash = this.value;" '
        'style="padding: 0.5em; font-size: 1em; min-width: 200px;">\n'
        f"{option_lines}\n"
        "</select>\n"
        "</div>\n"
        "<!-- /wp:html -->"
    )


def make_section_content(sections: Sequence[Section], group: str = DEFAULT_LIGHTBOX_GROUP) -> str:
    spacer = make_spacer_block(SECTION_SPACER_PX)
    blocks = [
        f"{make_heading_block(section.name, 2, make_anchor_id(section.name))}\n\n"
        f"{make_gallery_block(section.items, group)}"
        for section in sections
    ]
    return f"\n\n{spacer}\n\n".join(blocks)


def render(sections: Sequence[Section], options: RenderOptions | None = None) -> str:
    """Build the full page fragment, bounded by the gallerysync sentinels."""

    options = options or RenderOptions()
    parts = [SENTINEL_START, MASONRY_STYLES]
    if options.make_sections:
        parts.append(make_toc_block(sections, options))
        parts.append(make_spacer_block(TOC_SPACER_PX))
        parts.append(make_section_content(sections, options.lightbox_group))
    else:
        items = [item for section in sections for item in section.items]
        parts.append(make_gallery_block(items, options.lightbox_group))
    parts.append(SENTINEL_END)
    return "\n\n".join(part for part in parts if part)
