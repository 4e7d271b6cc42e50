"""
AI model backends for the workload assistant

- base: provider interface and JSON reply parsing
- claude / openai_compatible / gemini / mock: concrete backends
- factory: provider selection
- prompts: analysis prompt and chat system instruction
"""

from .base import AIProvider, AIProviderError, AIConfigurationError, parse_json_response
from .factory import (
    PROVIDER_ORDER,
    create_provider,
    configured_providers,
    default_provider_name,
    get_working_provider,
    has_valid_key,
    provider_catalog,
    provider_from_request
)
from .mock import MockProvider
from .prompts import (
    ANALYSIS_SCHEMA,
    CHAT_SYSTEM_INSTRUCTION,
    INITIAL_ANALYSIS_PROMPT,
    INITIAL_SUMMARY_MESSAGE,
    build_analysis_prompt
)

__all__ = [
    'AIProvider',
    'AIProviderError',
    'AIConfigurationError',
    'parse_json_response',
    'PROVIDER_ORDER',
    'create_provider',
    'configured_providers',
    'default_provider_name',
    'get_working_provider',
    'has_valid_key',
    'provider_catalog',
    'provider_from_request',
    'MockProvider',
    'ANALYSIS_SCHEMA',
    'CHAT_SYSTEM_INSTRUCTION',
    'INITIAL_ANALYSIS_PROMPT',
    'INITIAL_SUMMARY_MESSAGE',
    'build_analysis_prompt'
]
