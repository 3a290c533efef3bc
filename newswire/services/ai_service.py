import asyncio
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import yaml
from google import genai
from google.genai import types

DEFAULT_PROMPTS_PATH = os.path.join(
    os.path.dirname(os.path.dirname(__file__)),
    "config",
    "prompts.yaml"
)

LANGUAGE_NAMES = {"en": "English", "ko": "Korean", "ja": "Japanese"}


@dataclass
class AIResponse:
    content: str
    prompt_key: str
    model: str
    tokens_used: int


class AIServiceError(Exception):
    pass


class AIService:
    """
    Gemini client for article enrichment (bullet summaries and headline translation).
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        prompts_path: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[Any] = None,
    ):
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        if not self.api_key and client is None:
            raise AIServiceError("Gemini API key required. Set GEMINI_API_KEY or pass api_key parameter.")

        self.client = client or genai.Client(api_key=self.api_key)
        self.prompts_path = prompts_path or DEFAULT_PROMPTS_PATH
        self.prompts = self._load_prompts()
        self.model = model or os.getenv("GEMINI_MODEL") or "gemini-2.5-flash"
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    def _load_prompts(self) -> Dict[str, Any]:
        """Load prompts from YAML configuration file."""
        try:
            with open(self.prompts_path, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        except FileNotFoundError as e:
            raise AIServiceError(f"Prompts file not found at {self.prompts_path}") from e
        except yaml.YAMLError as e:
            raise AIServiceError(f"Error parsing YAML at {self.prompts_path}: {e}") from e

    def _render(self, prompt_key: str, **fields: Any) -> Dict[str, str]:
        prompt = self.prompts.get(prompt_key)
        if not isinstance(prompt, dict) or "user" not in prompt:
            raise AIServiceError(f"Prompt '{prompt_key}' missing from {self.prompts_path}")
        try:
            return {
                "system": (prompt.get("system") or "").strip(),
                "user": prompt["user"].format(**fields),
            }
        except KeyError as e:
            raise AIServiceError(f"Prompt '{prompt_key}' needs field {e}") from e

    async def _generate(self, prompt_key: str, max_tokens: int = 512, temperature: float = 0.2, **fields: Any) -> AIResponse:
        rendered = self._render(prompt_key, **fields)
        config_params: Dict[str, Any] = {
            "max_output_tokens": max_tokens,
            "temperature": temperature,
        }
        if rendered["system"]:
            config_params["system_instruction"] = rendered["system"]

        try:
            response = await asyncio.wait_for(
                self.client.aio.models.generate_content(
                    model=self.model,
                    contents=rendered["user"],
                    config=types.GenerateContentConfig(**config_params)
                ),
                timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise AIServiceError(f"Gemini call '{prompt_key}' timed out after {self.timeout:.0f}s") from e
        except AIServiceError:
            raise
        except Exception as e:
            raise AIServiceError(f"Gemini call '{prompt_key}' failed: {e}") from e

        text = (getattr(response, "text", None) or "").strip()
        if not text:
            raise AIServiceError(f"Gemini returned no text for '{prompt_key}'")

        usage = getattr(response, "usage_metadata", None)
        tokens = getattr(usage, "total_token_count", 0) if usage else 0
        self.logger.debug(f"🤖 {prompt_key}: {tokens or 0} tokens")
        return AIResponse(content=text, prompt_key=prompt_key, model=self.model, tokens_used=tokens or 0)

    async def summarize(
        self,
        title: str,
        description: str,
        source: str,
        language: str = "en",
        max_points: int = 3
    ) -> List[str]:
        """Bullet-point summary of an article, at most ``max_points`` lines."""
        response = await self._generate(
            "summarize_article",
            title=title,
            description=description or title,
            source=source,
            language_name=LANGUAGE_NAMES.get(language, "English"),
            max_points=max_points,
        )
        points = []
        for line in response.content.splitlines():
            line = re.sub(r"^\s*(?:[-*•]|\d+[.)])\s*", "", line).strip()
            if line:
                points.append(line)
        return points[:max_points]

    async def translate(self, title: str, language: str) -> str:
        response = await self._generate(
            "translate_title",
            title=title,
            language_name=LANGUAGE_NAMES.get(language, "English"),
            max_tokens=200,
        )
        return response.content.splitlines()[0].strip().strip('"')
