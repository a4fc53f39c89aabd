"""Prompt engine for batch and arbiter prompts.

This module renders the complete prompt text sent to engines. Style
templates come from an injected PromptRegistry; this module adds the
shared blocks (formatting guard, subtitle rules, QA checklist, rephrase
guard, injections) and the batch contract.
"""

import json
import logging
from typing import Any, Dict, Optional, Sequence, Union

from ...prompts import (
    STYLE_GUARD,
    SUBTITLE_OVERRIDES,
    PromptRegistry,
    load_default_registry,
    pick_temperature,
    render_template,
)
from ...prompts.registry import SAME_LANGUAGE
from ..models.segment import StyleParams

logger = logging.getLogger(__name__)

DEFAULT_INJECTION_CAP = 12000

SYSTEM_HEADER = (
    "You are an expert localization and translation assistant with strong skills in "
    "cultural adaptation, style consistency and terminology accuracy.\n"
    "Follow the requested style, sub-style and tone strictly."
)

QA_BLOCK = """
QUALITY CHECK BEFORE RETURN:
- Keep the emotional tone and implied meaning of every item.
- Keep the source punctuation type: "?" stays "?", "!" stays "!", "..." stays "...".
- Keep Arabic digits as digits unless {TARGET_LANG} requires otherwise.
- Keep terminology consistent across items.
- Use {TARGET_LANG} conventions for dates, numbers and decimal separators.
- The output MUST be a JSON array of strings with the SAME LENGTH as ITEMS, returned only between <result> and </result>.
- Each output index corresponds to the same ITEMS index. Never move words between items.
""".strip()

REPHRASE_GUARD = """
REPHRASE MODE:
- Do NOT translate. Every output item stays in the language of its input item.
- Improve clarity, tone and fluency for the requested style only.
""".strip()

ARBITER_TEMPLATE = """
You are an expert localization arbiter. For every index, choose the better of two candidate translations or synthesize an improved one that strictly preserves the meaning, numbers and punctuation style of the source.

Rules:
- Keep the source punctuation type (? ! ...) on corresponding lines.
- Keep all numbers; digits stay digits unless the target locale requires otherwise.
- Prefer natural, native phrasing in {TARGET_LANG} and obey the requested style ({STYLE}).
- When both candidates are acceptable, pick the clearer and more idiomatic one.
- When both have problems, combine their best parts into a corrected version.
- Return a JSON array of {COUNT} strings, index-aligned with SOURCE, only between <result> and </result>.

SOURCE:
{SOURCE}

CANDIDATE_A:
{CANDIDATE_A}

CANDIDATE_B:
{CANDIDATE_B}
""".strip()


def render_injections(
    injections: Optional[Union[str, Dict[str, Any]]],
    cap: int = DEFAULT_INJECTION_CAP,
) -> str:
    """Render a brand kit / glossary / phrasebook block.

    Mappings are serialized as indented JSON. The body is cut to ``cap``
    characters.

    Returns:
        The titled block, or an empty string when there is nothing to inject
    """
    if not injections:
        return ""
    if isinstance(injections, str):
        body = injections
    else:
        body = json.dumps(injections, ensure_ascii=False, indent=2)
    body = body.strip()
    if not body:
        return ""
    if len(body) > cap:
        logger.warning(f"[Prompt] Injections truncated from {len(body)} to {cap} chars")
        body = body[:cap]
    return f"[BRAND/GLOSSARY/PHRASEBOOK INJECTIONS]\n{body}"


def _items_json(items: Sequence[str]) -> str:
    return json.dumps(list(items), ensure_ascii=False, indent=2)


class PromptEngine:
    """Renders prompts for one registry of style templates."""

    def __init__(
        self,
        registry: Optional[PromptRegistry] = None,
        injection_cap: int = DEFAULT_INJECTION_CAP,
    ):
        self.registry = registry or load_default_registry()
        self.injection_cap = injection_cap

    def temperature_for(self, style: StyleParams) -> float:
        return pick_temperature(style.mode, style.sub_style, style.rephrase)

    def style_label(self, style: StyleParams) -> str:
        mode_key, sub_key = self.registry.resolve_key(style.mode, style.sub_style)
        return f"{mode_key or 'general'} / {sub_key}"

    def build_batch_prompt(self, sources: Sequence[str], style: StyleParams) -> str:
        """Render the prompt for one batch.

        Args:
            sources: Source texts in batch order
            style: Style shared by the batch

        Returns:
            Prompt asking for a JSON array of ``len(sources)`` strings
        """
        target = style.target_language or SAME_LANGUAGE
        template = self.registry.get(style.mode, style.sub_style)
        base = render_template(
            template,
            style.target_language,
            "Apply the same style rules to every element of ITEMS.",
        )

        if style.rephrase:
            action = "REPHRASE each string in its original language (never translate)"
        else:
            action = f"TRANSLATE/LOCALIZE each string into {target}"

        sections = [SYSTEM_HEADER, STYLE_GUARD]
        if style.is_subtitle_like:
            sections.append(SUBTITLE_OVERRIDES)

        injections = render_injections(style.injections, self.injection_cap)
        if injections:
            sections.append(injections)

        sections.append(QA_BLOCK.replace("{TARGET_LANG}", target))
        if style.rephrase:
            sections.append(REPHRASE_GUARD)
        sections.append(base)
        sections.append(
            "BATCH INSTRUCTIONS:\n"
            f"- ITEMS is a JSON array of {len(sources)} strings.\n"
            f"- {action} according to the selected style ({self.style_label(style)}).\n"
            f"- Return ONLY a JSON array of {len(sources)} strings, in the SAME order, 1-to-1 with ITEMS.\n"
            "- Do NOT merge or split items. Do NOT add indices, speakers or extra punctuation."
        )
        sections.append(f"ITEMS:\n{_items_json(sources)}")
        sections.append("Return only the JSON array strictly between <result> and </result>.")

        return "\n\n".join(sections)

    def build_arbiter_prompt(
        self,
        sources: Sequence[str],
        candidates_a: Sequence[str],
        candidates_b: Sequence[str],
        style: StyleParams,
    ) -> str:
        """Render the committee arbiter prompt for a batch.

        Args:
            sources: Source texts in batch order
            candidates_a: Sanitized candidates from the primary engine
            candidates_b: Sanitized candidates from the secondary engine
            style: Style shared by the batch

        Returns:
            Prompt asking for the final JSON array
        """
        return (
            ARBITER_TEMPLATE.replace("{TARGET_LANG}", style.target_language or SAME_LANGUAGE)
            .replace("{STYLE}", self.style_label(style))
            .replace("{COUNT}", str(len(sources)))
            .replace("{SOURCE}", _items_json(sources))
            .replace("{CANDIDATE_A}", _items_json(candidates_a))
            .replace("{CANDIDATE_B}", _items_json(candidates_b))
        )
