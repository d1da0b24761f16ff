"""Async client for OpenAI-compatible chat completion endpoints."""
import json
import re
from typing import Any, Dict, List, Optional
from openai import AsyncOpenAI
from config.llm_config import LLMConfig
from utils.logging_utils import get_logger
from utils.metrics import get_metrics_collector
from utils.error_handling import handle_errors, ErrorSeverity

logger = get_logger("llm")
metrics = get_metrics_collector()

_CODE_FENCE = re.compile(r"^```[a-zA-Z]*\n?|\n?```$")


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    return _CODE_FENCE.sub("", text.strip()).strip()


class LLMClient:
    """Thin async wrapper over ``AsyncOpenAI`` chat completions.

    Calls are made exactly once; failures propagate to the caller.
    """

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        api_key = api_key or LLMConfig.API_KEY
        if not api_key:
            raise ValueError("OPENAI_API_KEY is required")

        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url or LLMConfig.BASE_URL
        )
        self.total_tokens: int = 0

    @handle_errors(severity=ErrorSeverity.HIGH, log_error=True, reraise=True)
    async def complete(
        self,
        model: str,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        json_mode: bool = False
    ) -> str:
        """
        Generate a completion.

        Args:
            model: Model identifier
            prompt: User prompt
            system_prompt: Optional system prompt
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            json_mode: Request a JSON object response

        Returns:
            Generated text
        """
        logger.debug(
            "LLM completion request",
            model=model,
            prompt_length=len(prompt),
            temperature=temperature,
            json_mode=json_mode
        )
        metrics.increment("llm.requests", tags={"model": model})

        request: Dict[str, Any] = {
            "model": model,
            "messages": self._messages(prompt, system_prompt),
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}

        with metrics.timer("llm.duration_ms", tags={"model": model}):
            response = await self.client.chat.completions.create(**request)

        if not response.choices or response.choices[0].message.content is None:
            raise ValueError(f"Empty response from model {model}")

        usage = response.usage
        if usage is not None:
            self.total_tokens += usage.total_tokens or 0
            metrics.histogram("llm.tokens.prompt", usage.prompt_tokens, tags={"model": model})
            metrics.histogram("llm.tokens.completion", usage.completion_tokens, tags={"model": model})
            logger.debug("LLM completion finished", model=model, total_tokens=usage.total_tokens)

        return response.choices[0].message.content

    @staticmethod
    def _messages(prompt: str, system_prompt: Optional[str]) -> List[Dict[str, str]]:
        messages = [{"role": "user", "content": prompt}]
        if system_prompt:
            messages.insert(0, {"role": "system", "content": system_prompt})
        return messages

    async def complete_json(
        self,
        model: str,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2000
    ) -> Dict[str, Any]:
        """Complete in JSON mode and parse the response into a dict."""
        text = await self.complete(
            model=model,
            prompt=prompt,
            system_prompt=system_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=True
        )
        data = json.loads(strip_code_fences(text))
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object from model {model}, got {type(data).__name__}")
        return data
