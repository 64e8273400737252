from talkmate.agent.llm_client import LLMClient
from talkmate.core.config import settings


class BaseAgent:
    """Base class for the tutor agents. Each agent owns an LLM client, injected or built from settings."""

    def __init__(
        self,
        llm: LLMClient | None = None,
        *,
        model_name: str | None = None,
    ):
        self.llm = llm or LLMClient(model_name=model_name or settings.MODEL_DEFAULT)
