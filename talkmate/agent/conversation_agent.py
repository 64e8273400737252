import logging
from collections.abc import Sequence

from talkmate.agent.base import BaseAgent
from talkmate.agent.personas import (
    SessionConfig,
    language_name,
    level_guide,
    looks_like_prompt_injection,
    persona_guide,
    persona_speech_rules,
    wrap_user_message_for_safety,
)
from talkmate.agent.prompts.conversation import (
    CONVERSATION_SYSTEM_PROMPT,
    FALLBACK_REPLY,
    FIRST_TURN_INSTRUCTION,
    GREETING_SYSTEM_PROMPT,
    GREETING_USER_PROMPT,
)
from talkmate.core.config import settings

logger = logging.getLogger(__name__)


def _role_and_content(message) -> tuple[str, str]:
    if isinstance(message, dict):
        return message.get("role", "user"), str(message.get("content") or "")
    return message.role, str(message.content or "")


class ConversationAgent(BaseAgent):
    """Speaks as the persona in the target language."""

    @staticmethod
    def build_system_prompt(config: SessionConfig) -> str:
        name = language_name(config.language)
        return CONVERSATION_SYSTEM_PROMPT.format(
            language_name=name,
            level=config.level,
            persona=config.persona,
            persona_guide=persona_guide(config.persona),
            speech_rules=persona_speech_rules(config.language, config.persona),
            level_guide=level_guide(config.level),
        )

    @classmethod
    def build_messages(
        cls,
        config: SessionConfig,
        history: Sequence,
        *,
        is_first: bool = False,
        window: int | None = None,
    ) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": cls.build_system_prompt(config)}]
        if is_first:
            messages.append({"role": "user", "content": FIRST_TURN_INSTRUCTION})
            return messages

        recent = list(history)
        if window:
            recent = recent[-window:]
        for item in recent:
            role, content = _role_and_content(item)
            if role not in ("user", "assistant"):
                continue
            if role == "user" and looks_like_prompt_injection(content):
                content = wrap_user_message_for_safety(content)
            messages.append({"role": role, "content": content})
        return messages

    async def reply(
        self,
        config: SessionConfig,
        history: Sequence,
        *,
        is_first: bool = False,
        window: int | None = settings.CHAT_HISTORY_WINDOW,
        strict: bool = False,
        temperature: float = 0.7,
    ) -> str:
        """
        Produce the next tutor turn.
        `strict` makes an unusable completion an error instead of falling back to a stock reply.
        """
        messages = self.build_messages(config, history, is_first=is_first, window=window)
        try:
            return await self.llm.generate_chat(messages, temperature=temperature)
        except ValueError:
            if strict:
                raise
            logger.warning("Conversation reply was empty; using fallback reply")
            return FALLBACK_REPLY


class GreetingAgent(BaseAgent):
    """Writes the opening line for a freshly configured session."""

    async def greet(self, config: SessionConfig) -> str:
        system_prompt = GREETING_SYSTEM_PROMPT.format(
            language_name=language_name(config.language),
            language=config.language,
            level=config.level,
            persona=config.persona,
            persona_guide=persona_guide(config.persona),
            speech_rules=persona_speech_rules(config.language, config.persona),
        )
        return await self.llm.generate_text(system_prompt, GREETING_USER_PROMPT, temperature=0.7)
