from talkmate.agent.artifacts import LearnerAnalysis, MessageAnalysis
from talkmate.agent.base import BaseAgent
from talkmate.agent.personas import (
    SessionConfig,
    UiLang,
    language_name,
    level_hint,
    persona_style,
    ui_language_name,
)
from talkmate.agent.prompts.analysis import (
    LEARNER_ANALYSIS_PROMPT,
    LEARNER_ANALYSIS_SYSTEM_PROMPT,
    SENTENCE_ANALYSIS_PROMPT,
    SENTENCE_ANALYSIS_SYSTEM_PROMPT,
)
from talkmate.core.config import settings


def clean_analysis_text(text: str | None, max_chars: int | None = None) -> str:
    """Clip to the analysis budget before stripping, matching what the client shows."""
    limit = max_chars or settings.MAX_ANALYSIS_CHARS
    return (text or "")[:limit].strip()


class AnalysisAgent(BaseAgent):
    """Translation, grammar note and native tip for a single chat message."""

    def _prompt_kwargs(self, text: str, config: SessionConfig, ui_lang: UiLang) -> dict[str, str]:
        return {
            "text": text,
            "language_name": language_name(config.language, native=False),
            "level": config.level,
            "persona": config.persona,
            "style": persona_style(config.persona, ui_lang),
            "level_hint": level_hint(config.level),
            "ui_language_name": ui_language_name(ui_lang),
        }

    async def analyze_sentence(
        self, text: str, config: SessionConfig, ui_lang: UiLang = "ko"
    ) -> MessageAnalysis:
        return await self.llm.generate_structured(
            system_prompt=SENTENCE_ANALYSIS_SYSTEM_PROMPT,
            user_prompt=SENTENCE_ANALYSIS_PROMPT.format(**self._prompt_kwargs(text, config, ui_lang)),
            response_schema=MessageAnalysis,
        )

    async def analyze_learner_input(
        self, text: str, config: SessionConfig, ui_lang: UiLang = "ko"
    ) -> LearnerAnalysis:
        return await self.llm.generate_structured(
            system_prompt=LEARNER_ANALYSIS_SYSTEM_PROMPT,
            user_prompt=LEARNER_ANALYSIS_PROMPT.format(**self._prompt_kwargs(text, config, ui_lang)),
            response_schema=LearnerAnalysis,
        )
