"""
Google Gemini provider over the Generative Language REST API
"""
import json
from typing import Any, Dict, Iterator, List, Optional

import requests

from .base import AIProvider, AIConfigurationError, AIProviderError, Message

API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MAX_TOKENS = 4000


class GeminiProvider(AIProvider):
    name = "gemini"
    display_name = "Google Gemini"
    default_model = "gemini-2.0-flash"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, timeout: int = 60):
        super().__init__(api_key, model)
        if not api_key:
            raise AIConfigurationError("GEMINI_API_KEY is not set")
        self.timeout = timeout

    def _url(self, method: str) -> str:
        return f"{API_BASE_URL}/models/{self.model}:{method}"

    def _headers(self) -> dict:
        return {"Content-Type": "application/json", "x-goog-api-key": self.api_key}

    def _body(self, messages: List[Message], system_instruction: Optional[str], max_tokens: Optional[int],
              temperature: Optional[float], response_format: str = "text") -> Dict[str, Any]:
        contents = []
        system_parts = [system_instruction] if system_instruction else []
        for message in messages:
            if message.get("role") == "system":
                system_parts.append(message.get("content", ""))
                continue
            role = "model" if message.get("role") == "assistant" else "user"
            contents.append({"role": role, "parts": [{"text": message.get("content", "")}]})

        generation_config: Dict[str, Any] = {"maxOutputTokens": max_tokens or DEFAULT_MAX_TOKENS}
        if temperature is not None:
            generation_config["temperature"] = temperature
        if response_format == "json":
            generation_config["responseMimeType"] = "application/json"

        body: Dict[str, Any] = {"contents": contents, "generationConfig": generation_config}
        if system_parts:
            body["systemInstruction"] = {"parts": [{"text": "\n\n".join(system_parts)}]}
        return body

    @staticmethod
    def _text(payload: Dict[str, Any]) -> str:
        candidates = payload.get("candidates") or []
        if not candidates:
            return ""
        parts = candidates[0].get("content", {}).get("parts", [])
        return "".join(part.get("text", "") for part in parts)

    def generate_content(self, prompt, system_instruction=None, max_tokens=None, temperature=None,
                         response_format="text"):
        body = self._body([{"role": "user", "content": prompt}], system_instruction, max_tokens,
                          temperature, response_format)
        try:
            r = requests.post(self._url("generateContent"), headers=self._headers(), json=body,
                              timeout=self.timeout)
        except requests.RequestException as e:
            raise self._fail("generate_content", e) from e

        if r.status_code != 200:
            error = AIProviderError(f"HTTP {r.status_code}")
            self.logger.error(f"Gemini request failed ({r.status_code}): {r.text[:200]}")
            self.record_failure(error)
            raise error

        try:
            payload = r.json()
        except ValueError as e:
            raise self._fail("generate_content", e) from e
        self.record_success()
        meta = payload.get("usageMetadata", {})
        usage = {
            "promptTokens": meta.get("promptTokenCount"),
            "completionTokens": meta.get("candidatesTokenCount"),
            "totalTokens": meta.get("totalTokenCount"),
        }
        return {"text": self._text(payload), "usage": usage}

    def generate_content_stream(self, messages, system_instruction=None, max_tokens=None,
                                temperature=None) -> Iterator[str]:
        body = self._body(messages, system_instruction, max_tokens, temperature)
        try:
            with requests.post(self._url("streamGenerateContent") + "?alt=sse", headers=self._headers(),
                               json=body, stream=True, timeout=self.timeout) as r:
                if r.status_code != 200:
                    error = AIProviderError(f"HTTP {r.status_code}")
                    self.logger.error(f"Gemini stream failed ({r.status_code}): {r.text[:200]}")
                    self.record_failure(error)
                    raise error
                for line in r.iter_lines(decode_unicode=True):
                    if not line or not line.startswith("data: "):
                        continue
                    text = self._text(json.loads(line[len("data: "):]))
                    if text:
                        yield text
        except (requests.RequestException, ValueError) as e:
            # json.JSONDecodeError is a ValueError
            raise self._fail("generate_content_stream", e) from e
        self.record_success()
