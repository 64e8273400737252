from pydantic import BaseModel, Field, field_validator


class _StrippedModel(BaseModel):
    @field_validator("*", mode="before")
    @classmethod
    def _strip_strings(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value


class MessageAnalysis(_StrippedModel):
    """Analysis of a tutor sentence, shown under the chat bubble."""
    ko: str = Field(default="", description="Natural Korean translation (1-2 sentences)")
    en: str = Field(default="", description="Natural English translation (1-2 sentences)")
    grammar: str = Field(
        default="",
        description="Verb-focused grammar note in the UI language and persona voice (<=2 sentences)",
    )
    tip: str = Field(
        default="",
        description="Native chunking and/or 1 common alternative expression (1-2 short lines)",
    )


class LearnerAnalysis(MessageAnalysis):
    """Analysis of the learner's own message, led by a corrected target-language sentence."""
    correction: str = Field(
        default="", description="Natural one-line sentence in the TARGET language"
    )


class StudyPrompt(_StrippedModel):
    prompt: str = Field(description="Translation of the sentence into the learner's UI language")
    hint: str = Field(default="", description="One short recall hint in the learner's UI language")


class AnswerFeedback(_StrippedModel):
    correct_answer: str = Field(description="Model answer in the target language")
    tip: str = Field(default="", description="One or two short native tips in the UI language")
    is_correct: bool = False
