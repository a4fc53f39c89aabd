"""Style template registry and temperature policy.

Templates are keyed by ``(mode, sub_style)`` after slugification and are
frozen once the registry is built. Lookups fall back from the exact
sub-style to the mode's ``general`` template and finally to a built-in
default, so every style resolves to some template.

Templates use two placeholders:
- {TARGET_LANG}: target language name
- {TEXT}: the text (or, for batches, an instruction about ITEMS)
"""

import logging
import re
from functools import lru_cache
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

GENERAL_KEY = "general"
SAME_LANGUAGE = "the same language as the input"

DEFAULT_TEMPLATE = "Translate each element of ITEMS into {TARGET_LANG}.\n\nText:\n{TEXT}"


# =============================================================================
# Built-in Templates
# =============================================================================

DEFAULT_TEMPLATES: Dict[str, Dict[str, str]] = {
    "formal": {
        "general": (
            "Translate the text into formal {TARGET_LANG}. Use a respectful, precise register "
            "and standard grammar; avoid slang and contractions.\n\nText:\n{TEXT}"
        ),
        "academic": (
            "Translate the text into academic {TARGET_LANG}. Keep citations, hedging and "
            "technical vocabulary intact; prefer complete, well-structured sentences."
            "\n\nText:\n{TEXT}"
        ),
    },
    "casual": {
        "general": (
            "Translate the text into natural, everyday {TARGET_LANG}, the way a native speaker "
            "would say it to a friend. Keep it light and conversational.\n\nText:\n{TEXT}"
        ),
        "street-talk": (
            "Translate the text into relaxed street-level {TARGET_LANG} slang where it fits. "
            "Keep the attitude of the original without becoming offensive.\n\nText:\n{TEXT}"
        ),
    },
    "marketing": {
        "general": (
            "Localize the text into persuasive {TARGET_LANG} marketing copy. Keep brand names, "
            "claims and calls to action; adapt idioms for the local audience.\n\nText:\n{TEXT}"
        ),
        "product-descriptions": (
            "Localize the product description into {TARGET_LANG}. Keep specifications and "
            "units exact; make benefits vivid and scannable.\n\nText:\n{TEXT}"
        ),
        "social-media": (
            "Localize the post into {TARGET_LANG} social media style. Keep hashtags, handles "
            "and emojis; stay short and punchy.\n\nText:\n{TEXT}"
        ),
        "slogan-tagline-writing": (
            "Localize the slogan into {TARGET_LANG} so it stays catchy, memorable and on-brand. "
            "Prefer impact over literal accuracy.\n\nText:\n{TEXT}"
        ),
    },
    "dubbing": {
        "general": (
            "Translate each cue into spoken {TARGET_LANG} suitable for dubbing. Keep the length "
            "close to the source so it fits the timing, and keep one target cue per source cue."
            "\n\nText:\n{TEXT}"
        ),
        "subtitling": (
            "Translate each subtitle cue into {TARGET_LANG}. Keep cues short and readable, keep "
            "the source punctuation, and never move words between cues.\n\nText:\n{TEXT}"
        ),
        "dialogue": (
            "Translate each line of dialogue into natural spoken {TARGET_LANG}. Keep speaker "
            "dashes, line breaks and emotional punctuation exactly.\n\nText:\n{TEXT}"
        ),
        "narration": (
            "Translate the narration into {TARGET_LANG} for voice-over. Keep a steady, clear "
            "rhythm and the original sentence boundaries.\n\nText:\n{TEXT}"
        ),
    },
    "creative": {
        "general": (
            "Translate the text into {TARGET_LANG}, preserving its emotional impact and "
            "creative voice. Favour resonant, idiomatic phrasing.\n\nText:\n{TEXT}"
        ),
        "narrative-prose": (
            "Translate the story into literary {TARGET_LANG}. Keep the narrator's voice, "
            "pacing and imagery.\n\nText:\n{TEXT}"
        ),
        "poetic-tone": (
            "Translate the text into lyrical {TARGET_LANG}. Keep imagery and rhythm; rhyme "
            "only when it comes naturally.\n\nText:\n{TEXT}"
        ),
    },
    "technical": {
        "general": (
            "Translate the technical text into precise {TARGET_LANG}. Keep code, identifiers, "
            "units and product names unchanged; use standard industry terminology."
            "\n\nText:\n{TEXT}"
        ),
        "software-documentation": (
            "Translate the software documentation into {TARGET_LANG}. Never translate code, "
            "commands, flags or API names.\n\nText:\n{TEXT}"
        ),
        "api-guides": (
            "Translate the API guide into {TARGET_LANG}. Keep endpoints, parameters, payloads "
            "and error codes verbatim.\n\nText:\n{TEXT}"
        ),
    },
    "legal": {
        "general": (
            "Translate the legal text into {TARGET_LANG} using established legal terminology. "
            "Preserve defined terms, clause numbering and obligations exactly.\n\nText:\n{TEXT}"
        ),
        "contracts": (
            "Translate the contract into {TARGET_LANG}. Keep defined terms capitalized and "
            "consistent; do not soften or strengthen any obligation.\n\nText:\n{TEXT}"
        ),
        "privacy-policies": (
            "Translate the privacy policy into {TARGET_LANG}. Use the regulator's official "
            "terminology for data protection concepts.\n\nText:\n{TEXT}"
        ),
    },
    "medical": {
        "general": (
            "Translate the medical text into {TARGET_LANG} with accurate clinical terminology. "
            "Keep dosages, units and drug names exact.\n\nText:\n{TEXT}"
        ),
        "clinical-documentation": (
            "Translate the clinical documentation into {TARGET_LANG}. Keep abbreviations that "
            "clinicians use locally; never alter values.\n\nText:\n{TEXT}"
        ),
        "patient-materials": (
            "Translate the patient material into plain, reassuring {TARGET_LANG} that a "
            "non-specialist can follow.\n\nText:\n{TEXT}"
        ),
    },
    "journalistic": {
        "general": (
            "Translate the article into {TARGET_LANG} news style. Keep facts, quotes, names "
            "and figures exact; stay neutral.\n\nText:\n{TEXT}"
        ),
    },
    "corporate": {
        "general": (
            "Translate the business text into clear professional {TARGET_LANG}. Keep figures, "
            "titles and company names exact.\n\nText:\n{TEXT}"
        ),
        "investor-relations": (
            "Translate the investor communication into {TARGET_LANG}. Keep financial figures, "
            "periods and forward-looking disclaimers exact.\n\nText:\n{TEXT}"
        ),
    },
    "entertainment": {
        "general": (
            "Translate the text into lively {TARGET_LANG} for entertainment content. Keep jokes "
            "and references landing for the local audience.\n\nText:\n{TEXT}"
        ),
        "character-dialogue": (
            "Translate the character's lines into {TARGET_LANG}, keeping each character's "
            "voice and quirks.\n\nText:\n{TEXT}"
        ),
        "comedy": (
            "Translate the comedy into {TARGET_LANG}, adapting wordplay so the punchline still "
            "works.\n\nText:\n{TEXT}"
        ),
    },
    "educational": {
        "general": (
            "Translate the educational text into clear, structured {TARGET_LANG}. Keep "
            "instructions direct and terminology consistent with local curricula."
            "\n\nText:\n{TEXT}"
        ),
    },
}

# Deprecated (mode, sub_style) pairs mapped onto their current keys.
STYLE_ALIASES: Dict[Tuple[str, str], Tuple[str, str]] = {
    ("formal", "business"): ("corporate", "general"),
    ("formal", "financial"): ("corporate", "investor-relations"),
    ("formal", "dialogue"): ("dubbing", "dialogue"),
    ("casual", "dialogue"): ("entertainment", "character-dialogue"),
    ("casual", "social-media"): ("marketing", "social-media"),
    ("marketing", "descriptive"): ("marketing", "product-descriptions"),
    ("marketing", "social-media-marketing"): ("marketing", "social-media"),
    ("dubbing", "narrative"): ("dubbing", "narration"),
    ("creative", "storytelling"): ("creative", "narrative-prose"),
}


# =============================================================================
# Shared Prompt Blocks
# =============================================================================

STYLE_GUARD = """
Formatting defaults (mode-specific instructions take precedence):
- Do not use em dashes or en dashes as punctuation.
- Do not use " - " as a separator and do not produce bullet lists.
- Use commas or periods instead; keep hyphens only inside words that need them.
- Prefer plain sentences unless the mode requires lists, headings or multi-speaker dashes.
""".strip()

SUBTITLE_OVERRIDES = """
SUBTITLE/DUBBING RULES (these override the formatting defaults):
- 1:1 mapping: return exactly one target cue per source cue. Never merge, split, or move words between cues.
- Punctuation: keep the source punctuation. "?" stays "?", "..." stays "...", "!" stays "!". Do not add a final period the source does not have.
- Continuation: a cue continues the previous one only when the previous cue has no terminal punctuation; otherwise start a new, capitalized sentence.
- Numerals: keep Arabic digits as digits.
- Dialogue dashes: when a cue has several lines starting with "-", return the same number of dash-prefixed lines with the same line breaks.
- Do not invent interjections or add or remove content.
""".strip()


# =============================================================================
# Temperature Policy
# =============================================================================

TEMP_BASE = 0.30
TEMP_MIN = 0.1
TEMP_MAX = 0.7
REPHRASE_TEMP_DELTA = 0.05

TEMP_BY_MODE: Dict[str, float] = {
    "formal": 0.25,
    "casual": 0.35,
    "marketing": 0.45,
    "dubbing": 0.22,
    "creative": 0.55,
    "technical": 0.20,
    "legal": 0.15,
    "medical": 0.20,
    "journalistic": 0.25,
    "corporate": 0.25,
    "entertainment": 0.35,
    "educational": 0.30,
}

TEMP_BY_SUB_STYLE: Dict[str, float] = {
    # precision
    "dialogue": -0.07,
    "subtitling": -0.07,
    "software-documentation": -0.05,
    "engineering-manuals": -0.05,
    "product-specs": -0.05,
    "api-guides": -0.05,
    "contracts": -0.10,
    "terms-conditions": -0.10,
    "compliance-docs": -0.10,
    "privacy-policies": -0.10,
    "clinical-documentation": -0.05,
    "research-abstracts": -0.05,
    # voice
    "brand-storytelling": 0.05,
    "comedy": 0.05,
    "street-talk": 0.05,
    "screenwriting": 0.05,
    "script-adaptation": 0.05,
    "slogan-tagline-writing": 0.10,
    "poetic-tone": 0.10,
}


def slugify(text: Optional[str]) -> str:
    """Lowercase slug with hyphens, e.g. ``"Terms & Conditions"`` -> ``terms-conditions``."""
    text = (text or "").lower()
    text = re.sub(r"[^\w]+", "-", text)
    return text.strip("-")


def pick_temperature(mode: str = "", sub_style: str = "", rephrase: bool = False) -> float:
    """Sampling temperature for a style.

    Per-mode base plus a per-sub-style delta, minus 0.05 when rephrasing,
    clamped to [0.1, 0.7] and rounded to 2 decimals.
    """
    temperature = TEMP_BY_MODE.get(slugify(mode), TEMP_BASE)
    temperature += TEMP_BY_SUB_STYLE.get(slugify(sub_style), 0.0)
    if rephrase:
        temperature -= REPHRASE_TEMP_DELTA
    return round(max(TEMP_MIN, min(TEMP_MAX, temperature)), 2)


def render_template(template: str, target_language: Optional[str], text: str) -> str:
    """Substitute {TARGET_LANG} and {TEXT} placeholders."""
    return template.replace("{TARGET_LANG}", target_language or SAME_LANGUAGE).replace(
        "{TEXT}", text or ""
    )


# =============================================================================
# Registry
# =============================================================================


class PromptRegistry:
    """Immutable ``(mode, sub_style) -> template`` lookup.

    Built once and injected into the prompt engine; no global mutation.
    """

    def __init__(
        self,
        templates: Mapping[str, Mapping[str, str]],
        aliases: Optional[Mapping[Tuple[str, str], Tuple[str, str]]] = None,
        default_template: str = DEFAULT_TEMPLATE,
    ):
        frozen: Dict[str, Mapping[str, str]] = {}
        for mode, by_sub in templates.items():
            frozen[slugify(mode)] = MappingProxyType(
                {slugify(sub): template for sub, template in by_sub.items()}
            )
        self._templates = MappingProxyType(frozen)
        self._aliases = MappingProxyType(
            {
                (slugify(m), slugify(s)): (slugify(tm), slugify(ts))
                for (m, s), (tm, ts) in (aliases or {}).items()
            }
        )
        self._default_template = default_template

    @property
    def default_template(self) -> str:
        return self._default_template

    def modes(self) -> Tuple[str, ...]:
        return tuple(self._templates.keys())

    def resolve_key(self, mode: str, sub_style: str = "") -> Tuple[str, str]:
        """Slugified ``(mode, sub_style)`` after alias resolution."""
        key = (slugify(mode), slugify(sub_style) or GENERAL_KEY)
        return self._aliases.get(key, key)

    def get(self, mode: str, sub_style: str = "") -> str:
        """Template for a style, falling back to the mode's general, then the default."""
        mode_key, sub_key = self.resolve_key(mode, sub_style)
        by_mode = self._templates.get(mode_key, {})
        template = by_mode.get(sub_key) or by_mode.get(GENERAL_KEY)
        if template is None:
            logger.debug(f"[Prompts] No template for {mode_key}/{sub_key}, using default")
            return self._default_template
        return template

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 2:
            return False
        mode_key, sub_key = self.resolve_key(*key)
        return sub_key in self._templates.get(mode_key, {})


@lru_cache(maxsize=1)
def load_default_registry() -> PromptRegistry:
    """Registry with the built-in templates, built once per process."""
    return PromptRegistry(DEFAULT_TEMPLATES, aliases=STYLE_ALIASES)
