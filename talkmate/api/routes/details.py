import uuid
from typing import Any

from fastapi import APIRouter, HTTPException
from openai import OpenAIError
from pydantic import BaseModel, ValidationError
from sqlmodel import Session

from talkmate import crud
from talkmate.agent.analysis_agent import AnalysisAgent, clean_analysis_text
from talkmate.agent.artifacts import LearnerAnalysis, MessageAnalysis
from talkmate.api.deps import LLMDep, OptionalUser, SessionDep
from talkmate.api.routes.common import owned_session_or_none, resolve_config, upstream_failure
from talkmate.models import AuthUser, ChatMessage, DetailsRequest

router = APIRouter()


def _validated_text(payload: DetailsRequest) -> str:
    if not payload.text:
        raise HTTPException(status_code=400, detail="NO_TEXT")
    cleaned = clean_analysis_text(payload.text)
    if not cleaned:
        raise HTTPException(status_code=400, detail="EMPTY_TEXT")
    return cleaned


def _owned_message(
    session: Session, user: AuthUser | None, message_id: uuid.UUID | None
) -> ChatMessage | None:
    if user is None or message_id is None:
        return None
    message = session.get(ChatMessage, message_id)
    if message is None:
        return None
    if crud.get_owned_session(session=session, session_id=message.session_id, user_id=user.id) is None:
        return None
    return message


def _cached(
    message: ChatMessage | None, schema: type[BaseModel], text: str, ui_lang: str
) -> BaseModel | None:
    """Returns the stored analysis only if it was made for this text and UI language."""
    if message is None or not message.details:
        return None
    if message.details.get("text") != text or message.details.get("ui_lang") != ui_lang:
        return None
    if not set(schema.model_fields).issubset(message.details):
        return None
    try:
        return schema.model_validate(message.details)
    except ValidationError:
        return None


@router.post("/details", response_model=MessageAnalysis)
async def message_details(
    *,
    session: SessionDep,
    current_user: OptionalUser,
    llm: LLMDep,
    payload: DetailsRequest,
) -> Any:
    """Translation, verb note and native tip for a tutor sentence."""
    text = _validated_text(payload)
    message = _owned_message(session, current_user, payload.message_id)
    cached = _cached(message, MessageAnalysis, text, payload.ui_lang)
    if cached is not None:
        return cached

    chat_session = owned_session_or_none(session, current_user, payload.session_id)
    config = resolve_config(
        chat_session,
        language=payload.language,
        level=payload.level,
        persona=payload.persona_type,
    )
    try:
        analysis = await AnalysisAgent(llm).analyze_sentence(text, config, payload.ui_lang)
    except (ValueError, OpenAIError) as e:
        raise upstream_failure("DETAILS_FAILED", e)

    if message is not None:
        crud.save_message_details(
            session=session,
            message=message,
            details={**analysis.model_dump(), "text": text, "ui_lang": payload.ui_lang},
        )
    return analysis


@router.post("/details-user", response_model=LearnerAnalysis)
async def learner_details(
    *,
    session: SessionDep,
    current_user: OptionalUser,
    llm: LLMDep,
    payload: DetailsRequest,
) -> Any:
    """Corrected target-language sentence plus analysis for what the learner wrote."""
    text = _validated_text(payload)
    message = _owned_message(session, current_user, payload.message_id)
    cached = _cached(message, LearnerAnalysis, text, payload.ui_lang)
    if cached is not None:
        return cached

    chat_session = owned_session_or_none(session, current_user, payload.session_id)
    config = resolve_config(
        chat_session,
        language=payload.language,
        level=payload.level,
        persona=payload.persona_type,
    )
    try:
        analysis = await AnalysisAgent(llm).analyze_learner_input(text, config, payload.ui_lang)
    except (ValueError, OpenAIError) as e:
        raise upstream_failure("DETAILS_FAILED", e)

    if message is not None:
        crud.save_message_details(
            session=session,
            message=message,
            details={**analysis.model_dump(), "text": text, "ui_lang": payload.ui_lang},
        )
    return analysis
