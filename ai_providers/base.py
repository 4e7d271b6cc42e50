"""
Base AI Provider - every model backend inherits from this class
"""
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional

from utils.error_recovery import TransientError, PermanentError, health_monitor

Message = Dict[str, str]  # {"role": "user" | "assistant" | "system", "content": str}

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class AIProviderError(TransientError):
    """Upstream model call failed (network, rate limit, 5xx)"""
    pass


class AIConfigurationError(PermanentError):
    """Provider cannot be used (missing or invalid key)"""
    pass


def parse_json_response(text: str) -> Dict[str, Any]:
    """Extract the JSON object from a model reply that may be fenced or chatty."""
    cleaned = _FENCE.sub("", text.strip())
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        raise AIProviderError("Model reply did not contain a JSON object")
    try:
        return json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        raise AIProviderError(f"Model reply was not valid JSON: {e.msg}") from e


def check_required(data: Dict[str, Any], schema: Dict[str, Any]) -> Dict[str, Any]:
    missing = [key for key in schema.get("required", []) if key not in data]
    if missing:
        raise AIProviderError(f"Model reply is missing required fields: {', '.join(missing)}")
    return data


class AIProvider(ABC):
    """Common surface for text, streaming and structured generation"""

    name = "base"
    display_name = "Base Provider"
    default_model = ""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key
        self.model = model or self.default_model
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def generate_content(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        response_format: str = "text",
    ) -> Dict[str, Any]:
        """Return {'text': str, 'usage': {...}}"""
        pass

    @abstractmethod
    def generate_content_stream(
        self,
        messages: List[Message],
        system_instruction: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> Iterator[str]:
        """Yield text deltas as the model produces them"""
        pass

    def generate_structured_content(
        self,
        prompt: str,
        schema: Dict[str, Any],
        system_instruction: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Ask for JSON matching schema and parse it"""
        instruction = (
            f"{prompt}\n\nRespond ONLY with a JSON object that matches this JSON schema:\n"
            f"{json.dumps(schema)}"
        )
        response = self.generate_content(
            instruction,
            system_instruction=system_instruction,
            max_tokens=max_tokens,
            temperature=temperature,
            response_format="json",
        )
        return check_required(parse_json_response(response["text"]), schema)

    def record_success(self):
        health_monitor.record_success(f"ai:{self.name}")

    def record_failure(self, error: BaseException):
        health_monitor.record_failure(f"ai:{self.name}", type(error).__name__)

    def _fail(self, action: str, error: BaseException) -> AIProviderError:
        self.record_failure(error)
        self.logger.error(f"{self.display_name} {action} failed: {type(error).__name__}: {error}")
        return AIProviderError(f"{self.display_name} {action} failed: {type(error).__name__}")
