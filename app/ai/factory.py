import logging

from app.ai.config import AIConfig, load_ai_config, looks_like_placeholder
from app.ai.types import AIClient

from app.ai.providers.openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)


def get_ai_client(cfg: AIConfig | None = None) -> AIClient | None:
    """Build the configured model client, or None when model calls are switched off."""
    cfg = cfg or load_ai_config()

    if cfg.provider == "none" or not cfg.intent_enabled:
        return None

    if cfg.provider == "openai":
        if not cfg.api_key or looks_like_placeholder(cfg.api_key):
            logger.warning("ai_client_disabled reason=missing_openai_api_key")
            return None
        return OpenAIProvider(
            model=cfg.model,
            api_key=cfg.api_key,
            base_url=cfg.base_url,
            timeout_s=cfg.timeout_s,
            max_retries=cfg.max_retries,
            temperature=cfg.temperature,
        )

    raise ValueError(f"Unsupported AI_PROVIDER='{cfg.provider}'")
