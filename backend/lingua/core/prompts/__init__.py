"""Prompt templates, shared prompt blocks and the temperature policy."""

from .registry import (
    DEFAULT_TEMPLATE,
    STYLE_GUARD,
    SUBTITLE_OVERRIDES,
    PromptRegistry,
    load_default_registry,
    pick_temperature,
    render_template,
    slugify,
)

__all__ = [
    "DEFAULT_TEMPLATE",
    "STYLE_GUARD",
    "SUBTITLE_OVERRIDES",
    "PromptRegistry",
    "load_default_registry",
    "pick_temperature",
    "render_template",
    "slugify",
]
