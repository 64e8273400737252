import logging
from typing import Any

from fastapi import APIRouter, HTTPException
from openai import OpenAIError
from sqlalchemy.exc import SQLAlchemyError

from talkmate import crud
from talkmate.agent.artifacts import AnswerFeedback
from talkmate.agent.study_agent import StudyCardAgent
from talkmate.api.deps import CurrentUser, LLMDep, OptionalUser, SessionDep
from talkmate.api.routes.common import (
    metered,
    owned_session_or_none,
    resolve_config,
    upstream_failure,
)
from talkmate.models import (
    LearningAnswerRequest,
    LearningCard,
    LearningCardPublic,
    LearningPrepareRequest,
)

router = APIRouter(prefix="/learning", tags=["learning"])
logger = logging.getLogger(__name__)

CARD_NOT_SAVED_WARNING = "CARD_NOT_SAVED"


@router.post("/prepare", response_model=LearningCardPublic)
async def prepare_card(
    *,
    session: SessionDep,
    current_user: OptionalUser,
    llm: LLMDep,
    payload: LearningPrepareRequest,
) -> Any:
    """
    Turns a chat sentence into a recall prompt. Signed-in users get the card
    stored, and asking again for the same sentence returns the stored card.
    """
    if not payload.text:
        raise HTTPException(status_code=400, detail="NO_TEXT")
    target_text = payload.text.strip()
    if not target_text:
        raise HTTPException(status_code=400, detail="EMPTY_TEXT")

    chat_session = owned_session_or_none(session, current_user, payload.session_id)
    session_id = chat_session.id if chat_session else None

    if current_user is not None:
        try:
            card = crud.find_cached_card(
                session=session,
                user_id=current_user.id,
                target_text=target_text,
                ui_lang=payload.ui_lang,
                session_id=session_id,
                message_id=payload.message_id,
            )
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Card lookup failed for %s: %s", current_user.id, e)
            card = None
        if card is not None:
            return LearningCardPublic(card_id=card.id, prompt=card.prompt_text, hint=card.hint)

    config = resolve_config(chat_session, language=payload.language)
    try:
        study = await StudyCardAgent(llm).prepare(target_text, config, payload.ui_lang)
    except OpenAIError as e:
        raise upstream_failure("LEARNING_PREPARE_FAILED", e)

    if current_user is None:
        return LearningCardPublic(prompt=study.prompt, hint=study.hint)

    try:
        card = crud.create_learning_card(
            session=session,
            user_id=current_user.id,
            session_id=session_id,
            message_id=payload.message_id,
            target_text=target_text,
            prompt_text=study.prompt,
            hint=study.hint,
            ui_lang=payload.ui_lang,
        )
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Card insert failed for %s: %s", current_user.id, e)
        return LearningCardPublic(
            prompt=study.prompt, hint=study.hint, warning=CARD_NOT_SAVED_WARNING
        )
    return LearningCardPublic(card_id=card.id, prompt=card.prompt_text, hint=card.hint)


@router.post("/answer", response_model=AnswerFeedback)
async def answer_card(
    *,
    session: SessionDep,
    current_user: CurrentUser,
    llm: LLMDep,
    payload: LearningAnswerRequest,
) -> Any:
    card = session.get(LearningCard, payload.card_id)
    if card is None:
        raise HTTPException(status_code=404, detail="CARD_NOT_FOUND")
    if card.user_id != current_user.id:
        raise HTTPException(status_code=403, detail="FORBIDDEN")

    config = resolve_config(card.session)
    with metered(session, current_user, "learning"):
        try:
            return await StudyCardAgent(llm).grade(
                card.target_text, payload.user_answer, config, payload.ui_lang
            )
        except OpenAIError as e:
            raise upstream_failure("LEARNING_ANSWER_FAILED", e)
