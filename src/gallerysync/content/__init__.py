"""Page content rendering and merging."""

from .merger import find_generated_span, merge
from .renderer import RenderOptions, make_anchor_id, render

__all__ = ["RenderOptions", "find_generated_span", "make_anchor_id", "merge", "render"]
