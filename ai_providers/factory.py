"""
Provider selection.

Order of preference: an explicit ?provider= that is configured, then the
AI_PROVIDER setting, then the first configured of claude, gemini, deepseek,
kimi. The mock provider is the last resort so the chat never hard-fails on
missing credentials.
"""
import logging
from typing import Dict, List, Optional, Type

import config
from utils.error_recovery import health_monitor
from .base import AIProvider
from .claude import ClaudeProvider
from .gemini import GeminiProvider
from .mock import MockProvider
from .openai_compatible import DeepSeekProvider, KimiProvider

logger = logging.getLogger(__name__)

PROVIDER_ORDER = ("claude", "gemini", "deepseek", "kimi")

PROVIDER_CLASSES: Dict[str, Type[AIProvider]] = {
    "claude": ClaudeProvider,
    "gemini": GeminiProvider,
    "deepseek": DeepSeekProvider,
    "kimi": KimiProvider,
    "mock": MockProvider,
}

PLACEHOLDER_KEY = "test_key_for_development_health_check"


def has_valid_key(name: str) -> bool:
    if name == "mock":
        return True
    key = config.provider_key(name)
    if not key or key == PLACEHOLDER_KEY:
        return False
    if name == "claude":
        return key.startswith("sk-ant-")
    if name == "gemini":
        return len(key) > 20
    return True


def create_provider(name: str) -> AIProvider:
    provider_class = PROVIDER_CLASSES.get(name)
    if provider_class is None:
        raise ValueError(f"Unknown AI provider: {name}")
    if name == "mock":
        return MockProvider()
    return provider_class(api_key=config.provider_key(name))


def configured_providers() -> List[str]:
    return [name for name in PROVIDER_ORDER if has_valid_key(name)]


def _usable(name: str) -> bool:
    return has_valid_key(name) and health_monitor.is_available(f"ai:{name}")


def get_working_provider() -> AIProvider:
    candidates = list(PROVIDER_ORDER)
    if config.AI_PROVIDER in PROVIDER_CLASSES:
        candidates.insert(0, config.AI_PROVIDER)

    for name in candidates:
        if _usable(name):
            logger.info(f"Using {name} as AI provider")
            return create_provider(name)

    logger.warning("No AI provider configured, falling back to mock provider")
    return MockProvider()


def provider_from_request(requested: Optional[str]) -> AIProvider:
    """Honour ?provider= when it names a configured provider."""
    name = (requested or "").strip().lower()
    if name in PROVIDER_CLASSES and _usable(name):
        return create_provider(name)
    if name:
        logger.warning(f"Requested AI provider '{name}' is not available, choosing default")
    return get_working_provider()


def default_provider_name() -> str:
    return get_working_provider().name


def provider_catalog() -> List[Dict[str, object]]:
    return [
        {
            "name": name,
            "displayName": PROVIDER_CLASSES[name].display_name,
            "configured": has_valid_key(name),
            "status": health_monitor.get_status(f"ai:{name}").value,
        }
        for name in PROVIDER_ORDER
    ]
