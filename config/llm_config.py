"""LLM configuration for the executor and rewrite agents."""
import os
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class LLMConfig:
    """Configuration for the OpenAI-compatible endpoint used by the reference agents."""

    # API key and endpoint (any OpenAI-compatible gateway works)
    API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")
    BASE_URL: Optional[str] = os.getenv("OPENAI_BASE_URL")

    # Model selection per role
    RESEARCH_MODEL: str = os.getenv("RESEARCH_MODEL", "gpt-4o")
    ENGINEER_MODEL: str = os.getenv("ENGINEER_MODEL", "gpt-4o")
    DEFAULT_AGENT_MODEL: str = os.getenv("DEFAULT_AGENT_MODEL", "gpt-4o-mini")

    # Sampling
    RESEARCH_TEMPERATURE: float = float(os.getenv("RESEARCH_TEMPERATURE", "0.4"))
    ENGINEER_TEMPERATURE: float = float(os.getenv("ENGINEER_TEMPERATURE", "0.5"))
    MAX_TOKENS: int = int(os.getenv("LLM_MAX_TOKENS", "4000"))

    @classmethod
    def validate(cls) -> bool:
        """Validate that required API keys are present."""
        if not cls.API_KEY:
            raise ValueError("OPENAI_API_KEY is required")
        return True
