"""
Providers that speak the OpenAI chat-completions protocol (DeepSeek, Kimi)
"""
from typing import Any, Dict, Iterator, List, Optional

import openai

from .base import AIProvider, AIConfigurationError, Message

DEFAULT_MAX_TOKENS = 4000


class OpenAICompatibleProvider(AIProvider):
    base_url = ""
    key_env = ""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        super().__init__(api_key, model)
        if not api_key:
            raise AIConfigurationError(f"{self.key_env} is not set")
        self.client = openai.OpenAI(api_key=api_key, base_url=self.base_url)

    def _messages(self, messages: List[Message], system_instruction: Optional[str]) -> List[Message]:
        chat = [{"role": "system", "content": system_instruction}] if system_instruction else []
        chat.extend({"role": m.get("role", "user"), "content": m.get("content", "")} for m in messages)
        return chat

    def _options(self, max_tokens: Optional[int], temperature: Optional[float]) -> Dict[str, Any]:
        options: Dict[str, Any] = {"model": self.model, "max_tokens": max_tokens or DEFAULT_MAX_TOKENS}
        if temperature is not None:
            options["temperature"] = temperature
        return options

    def generate_content(self, prompt, system_instruction=None, max_tokens=None, temperature=None,
                         response_format="text"):
        options = self._options(max_tokens, temperature)
        if response_format == "json":
            options["response_format"] = {"type": "json_object"}
        try:
            response = self.client.chat.completions.create(
                messages=self._messages([{"role": "user", "content": prompt}], system_instruction),
                **options,
            )
        except openai.OpenAIError as e:
            raise self._fail("generate_content", e) from e

        self.record_success()
        usage = {}
        if response.usage:
            usage = {
                "promptTokens": response.usage.prompt_tokens,
                "completionTokens": response.usage.completion_tokens,
                "totalTokens": response.usage.total_tokens,
            }
        return {"text": response.choices[0].message.content or "", "usage": usage}

    def generate_content_stream(self, messages, system_instruction=None, max_tokens=None,
                                temperature=None) -> Iterator[str]:
        try:
            stream = self.client.chat.completions.create(
                messages=self._messages(messages, system_instruction),
                stream=True,
                **self._options(max_tokens, temperature),
            )
            for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    yield delta.content
        except openai.OpenAIError as e:
            raise self._fail("generate_content_stream", e) from e
        self.record_success()


class DeepSeekProvider(OpenAICompatibleProvider):
    name = "deepseek"
    display_name = "DeepSeek"
    default_model = "deepseek-chat"
    base_url = "https://api.deepseek.com"
    key_env = "DEEPSEEK_API_KEY"


class KimiProvider(OpenAICompatibleProvider):
    name = "kimi"
    display_name = "Moonshot Kimi"
    default_model = "moonshot-v1-8k"
    base_url = "https://api.moonshot.cn/v1"
    key_env = "KIMI_API_KEY"
