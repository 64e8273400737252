import logging

from talkmate.agent.artifacts import AnswerFeedback, StudyPrompt
from talkmate.agent.base import BaseAgent
from talkmate.agent.personas import (
    SessionConfig,
    UiLang,
    language_name,
    persona_speech_rules,
    ui_language_name,
)
from talkmate.agent.prompts.learning import (
    GRADING_FALLBACK_TIPS,
    GRADING_SYSTEM_PROMPT,
    GRADING_USER_PROMPT,
    STUDY_PROMPT_SYSTEM_PROMPT,
    STUDY_PROMPT_USER_PROMPT,
)

logger = logging.getLogger(__name__)


class StudyCardAgent(BaseAgent):
    """
    Builds recall cards from chat sentences and grades the learner's answers.
    Both steps degrade to a usable card or verdict when the model output cannot be parsed.
    """

    async def prepare(
        self, target_text: str, config: SessionConfig, ui_lang: UiLang = "ko"
    ) -> StudyPrompt:
        names = {
            "language_name": language_name(config.language, native=False),
            "ui_language_name": ui_language_name(ui_lang),
        }
        try:
            return await self.llm.generate_structured(
                system_prompt=STUDY_PROMPT_SYSTEM_PROMPT.format(**names),
                user_prompt=STUDY_PROMPT_USER_PROMPT.format(text=target_text, **names),
                response_schema=StudyPrompt,
            )
        except ValueError as e:
            logger.error("Study prompt generation failed, using the sentence itself: %s", e)
            return StudyPrompt(prompt=target_text, hint="")

    async def grade(
        self,
        correct: str,
        answer: str,
        config: SessionConfig,
        ui_lang: UiLang = "ko",
    ) -> AnswerFeedback:
        name = language_name(config.language, native=False)
        system_prompt = GRADING_SYSTEM_PROMPT.format(
            language_name=name,
            level=config.level,
            persona=config.persona,
            speech_rules=persona_speech_rules(config.language, config.persona),
            ui_language_name=ui_language_name(ui_lang),
        )
        try:
            return await self.llm.generate_structured(
                system_prompt=system_prompt,
                user_prompt=GRADING_USER_PROMPT.format(
                    language_name=name, correct=correct, answer=answer
                ),
                response_schema=AnswerFeedback,
            )
        except ValueError as e:
            logger.error("Answer grading failed: %s", e)
            return AnswerFeedback(
                correct_answer=correct, tip=GRADING_FALLBACK_TIPS[ui_lang], is_correct=False
            )
