"""Application configuration."""

from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pipeline settings loaded from environment variables."""

    # Batch planning
    batch_tokens: int = 7000  # per-request token ceiling
    batch_overhead_tokens: int = 1200
    batch_output_factor: float = 1.15
    batch_max_items: int = 250

    # Worker pool
    batch_concurrency: int = 4
    subtitle_concurrency: int = 2
    engine_call_limit: Optional[int] = None  # per-engine concurrent calls, None = unbounded

    # Engine calls
    engine_timeout_ms: int = 300_000
    max_attempts: int = 3
    backoff_base_s: float = 0.6
    backoff_cap_s: float = 12.0
    max_retry_after_s: float = 60.0

    # Engine routing
    primary_engine: str = "auto"
    allow_pro: bool = True
    fallback_engine: str = "gemini-fl"
    repair_engine: str = "gemini-2p"
    secondary_engine: str = "gpt-4o"
    arbiter_engine: str = "gemini-2p"
    engine_models: Dict[str, str] = Field(
        default_factory=lambda: {
            "gemini-fl": "gemini/gemini-2.5-flash-lite",
            "gemini-2p": "gemini/gemini-2.5-pro",
            "gpt-4o": "openai/gpt-4o",
        }
    )

    # Quality gate / escalation
    router_qe_enabled: bool = True
    router_qe_threshold: float = 0.72
    router_committee_enabled: bool = True

    # Prompting
    injection_cap: int = 12000

    # LLM API keys (picked by the model prefix of each engine)
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    gemini_api_key: Optional[str] = None
    deepseek_api_key: Optional[str] = None
    openrouter_api_key: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def api_key_for(self, model: str) -> Optional[str]:
        """Pick the API key matching a LiteLLM model string's provider prefix."""
        provider = model.split("/", 1)[0] if "/" in model else "openai"
        return getattr(self, f"{provider}_api_key", None)


settings = Settings()
