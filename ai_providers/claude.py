"""
Anthropic Claude provider
"""
from typing import Any, Dict, Iterator, List, Optional, Tuple

import anthropic

from .base import AIProvider, AIConfigurationError, Message

DEFAULT_MAX_TOKENS = 4000


def split_system(messages: List[Message], system_instruction: Optional[str]) -> Tuple[Optional[str], List[Message]]:
    """Anthropic takes the system prompt separately from the turns."""
    system_parts = [system_instruction] if system_instruction else []
    turns = []
    for message in messages:
        if message.get("role") == "system":
            system_parts.append(message.get("content", ""))
        else:
            turns.append({"role": message.get("role", "user"), "content": message.get("content", "")})
    return ("\n\n".join(system_parts) or None), turns


class ClaudeProvider(AIProvider):
    name = "claude"
    display_name = "Anthropic Claude"
    default_model = "claude-sonnet-4-20250514"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        super().__init__(api_key, model)
        if not api_key:
            raise AIConfigurationError("CLAUDE_API_KEY is not set")
        self.client = anthropic.Anthropic(api_key=api_key)

    def _request(self, messages: List[Message], system_instruction: Optional[str],
                 max_tokens: Optional[int], temperature: Optional[float]) -> Dict[str, Any]:
        system, turns = split_system(messages, system_instruction)
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens or DEFAULT_MAX_TOKENS,
            "messages": turns,
        }
        if system:
            kwargs["system"] = system
        if temperature is not None:
            kwargs["temperature"] = temperature
        return kwargs

    def generate_content(self, prompt, system_instruction=None, max_tokens=None, temperature=None,
                         response_format="text"):
        kwargs = self._request([{"role": "user", "content": prompt}], system_instruction, max_tokens, temperature)
        try:
            response = self.client.messages.create(**kwargs)
        except anthropic.APIError as e:
            raise self._fail("generate_content", e) from e

        self.record_success()
        text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        usage = {}
        if response.usage:
            usage = {
                "promptTokens": response.usage.input_tokens,
                "completionTokens": response.usage.output_tokens,
                "totalTokens": response.usage.input_tokens + response.usage.output_tokens,
            }
        return {"text": text, "usage": usage}

    def generate_content_stream(self, messages, system_instruction=None, max_tokens=None,
                                temperature=None) -> Iterator[str]:
        kwargs = self._request(messages, system_instruction, max_tokens, temperature)
        try:
            with self.client.messages.stream(**kwargs) as stream:
                for text in stream.text_stream:
                    yield text
        except anthropic.APIError as e:
            raise self._fail("generate_content_stream", e) from e
        self.record_success()
