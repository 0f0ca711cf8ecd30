import os
from typing import Any, Dict, Optional

SUPPORTED_PROVIDERS = {"anthropic", "openai"}
DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com"


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    return value_str in {"1", "true", "yes", "on"}


def get_env_llm_defaults() -> Dict[str, Any]:
    return {
        "provider": os.getenv("LLM_PROVIDER", "anthropic"),
        "base_url": os.getenv("LLM_BASE_URL", DEFAULT_OPENAI_BASE_URL),
        "chat_model": os.getenv("LLM_CHAT_MODEL", DEFAULT_ANTHROPIC_MODEL),
        "json_mode": _to_bool(os.getenv("LLM_JSON_MODE", "true")),
        "timeout_seconds": float(os.getenv("LLM_TIMEOUT_SECONDS", "120")),
    }


def merge_llm_config(overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    config = get_env_llm_defaults()
    if not overrides:
        return config

    sanitized = {}
    for key, value in overrides.items():
        if key == "json_mode":
            sanitized[key] = _to_bool(value)
        elif key == "provider":
            normalized = str(value).strip().lower()
            sanitized[key] = normalized if normalized in SUPPORTED_PROVIDERS else config["provider"]
        elif key == "timeout_seconds":
            try:
                sanitized[key] = float(value)
            except (TypeError, ValueError):
                sanitized[key] = config["timeout_seconds"]
        else:
            sanitized[key] = value

    config.update(sanitized)

    if config["provider"] not in SUPPORTED_PROVIDERS:
        config["provider"] = "anthropic"
    config["base_url"] = str(config.get("base_url", "")).strip().rstrip("/")
    return config
