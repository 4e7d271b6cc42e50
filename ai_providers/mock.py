"""
Offline provider used when no API key is configured (and in tests)
"""
import json
import re
import time
from typing import Iterator, Optional

from .base import AIProvider

ANALYSIS = (
    "Mock AI analysis of your school workload data shows balanced distribution across "
    "maintenance, discipline, and sports activities with good staff participation."
)

SUGGESTIONS = [
    "Implement preventive maintenance scheduling to reduce urgent repairs",
    "Review peak activity periods for optimal staff allocation",
    "Set up automated escalation for high-priority incidents",
    "Create custom categories for school-specific activities",
    "Establish regular review meetings for continuous improvement",
]


class MockProvider(AIProvider):
    name = "mock"
    display_name = "Mock AI Provider"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, word_delay: float = 0.05):
        super().__init__(api_key, model)
        self.word_delay = word_delay

    def _reply(self, prompt: str, response_format: str) -> str:
        lowered = prompt.lower()
        if response_format == "json" or "json" in lowered:
            return json.dumps({"analysis": ANALYSIS, "suggestions": SUGGESTIONS})
        if "maintenance" in lowered:
            return (
                "**Maintenance Analysis**: Window repairs and door issues are most common.\n\n"
                "**Recommendations**: Schedule monthly inspections, create maintenance schedules, "
                "train staff on troubleshooting.\n\n*Configure real AI keys for detailed analysis.*"
            )
        if any(word in lowered for word in ("workload", "summary", "school")):
            return (
                "**Mock AI Analysis**: Your school management system shows active data collection "
                "across maintenance, discipline and sports activities.\n\n"
                "**Key Recommendations**:\n- Schedule preventive maintenance\n"
                "- Support peak periods with additional staff\n\n"
                "*Configure real AI keys for detailed analysis.*"
            )
        preview = prompt[:50] + ("..." if len(prompt) > 50 else "")
        return (
            f'**Mock AI Response**: "{preview}"\n\n'
            "This is a mock response. Configure CLAUDE_API_KEY or GEMINI_API_KEY for real AI analysis."
        )

    def generate_content(self, prompt, system_instruction=None, max_tokens=None, temperature=None,
                         response_format="text"):
        text = self._reply(prompt, response_format)
        if max_tokens and len(text) > max_tokens * 4:
            text = text[:max_tokens * 4] + "... [truncated]"
        return {
            "text": text,
            "usage": {
                "promptTokens": len(prompt) // 4,
                "completionTokens": len(text) // 4,
                "totalTokens": (len(prompt) + len(text)) // 4,
            },
        }

    def generate_content_stream(self, messages, system_instruction=None, max_tokens=None,
                                temperature=None) -> Iterator[str]:
        last = messages[-1]["content"] if messages else ""
        text = self.generate_content(last, max_tokens=max_tokens)["text"]
        # keep whitespace attached so the joined stream equals the reply
        for token in re.findall(r"\S+\s*|\s+", text):
            if self.word_delay:
                time.sleep(self.word_delay)
            yield token
