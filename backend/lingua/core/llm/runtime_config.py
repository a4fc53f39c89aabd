"""Engine runtime configuration.

Single source of truth for how a named engine reaches LiteLLM: the model
string, credentials and endpoint. Temperature is decided per call by the
pipeline, so it is passed in rather than stored here.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class EngineConfig:
    """Connection parameters for one named engine."""

    name: str
    model: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    max_tokens: int = 8192
    system_prompt: str = "You are an expert localization and translation assistant."

    @property
    def provider(self) -> str:
        return self.model.split("/", 1)[0] if "/" in self.model else "openai"

    def to_litellm_kwargs(self, temperature: float) -> Dict[str, Any]:
        """Convert to kwargs for litellm.acompletion()."""
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "temperature": temperature,
            "max_tokens": self.max_tokens,
        }

        # Leave api_key unset so LiteLLM falls back to provider env vars.
        if self.api_key:
            kwargs["api_key"] = self.api_key

        if self.base_url:
            kwargs["api_base"] = self.base_url

        return kwargs

    def messages_for(self, prompt: str) -> list:
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": prompt},
        ]
