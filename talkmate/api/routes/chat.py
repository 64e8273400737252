import logging
from typing import Any

from fastapi import APIRouter, HTTPException
from openai import OpenAIError
from sqlalchemy.exc import SQLAlchemyError

from talkmate import crud
from talkmate.agent.conversation_agent import ConversationAgent
from talkmate.agent.personas import looks_like_prompt_injection, redirect_reply
from talkmate.api.deps import LLMDep, OptionalUser, SessionDep
from talkmate.api.routes.common import (
    metered,
    owned_session_or_none,
    resolve_config,
    upstream_failure,
)
from talkmate.core.consent import is_consent_accepted
from talkmate.models import ChatReply, ChatRequest

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/chat", response_model=ChatReply)
async def chat(
    *,
    session: SessionDep,
    current_user: OptionalUser,
    llm: LLMDep,
    payload: ChatRequest,
) -> Any:
    """
    Next tutor turn. Guests may chat without a token; signed-in users must have
    accepted the current terms and spend one unit of their daily chat allowance.
    """
    if current_user is not None:
        try:
            consent = crud.get_consent(session=session, user_id=current_user.id)
        except SQLAlchemyError as e:
            logger.error("Consent check failed for %s: %s", current_user.id, e)
            raise HTTPException(status_code=500, detail="CONSENT_CHECK_FAILED")
        if not is_consent_accepted(consent):
            raise HTTPException(status_code=403, detail="CONSENT_REQUIRED")

    chat_session = owned_session_or_none(session, current_user, payload.session_id)
    config = resolve_config(
        chat_session,
        language=payload.language,
        level=payload.level,
        persona=payload.persona_type,
    )

    if not payload.is_first:
        last_user = next(
            (m.content for m in reversed(payload.messages) if m.role == "user"), None
        )
        if last_user and looks_like_prompt_injection(last_user):
            logger.info("Redirecting prompt-injection attempt without calling the model")
            return ChatReply(reply=redirect_reply(config.language))

    with metered(session, current_user, "chat"):
        try:
            reply = await ConversationAgent(llm).reply(
                config, payload.messages, is_first=payload.is_first
            )
        except OpenAIError as e:
            raise upstream_failure("CHAT_FAILED", e)
    return ChatReply(reply=reply)
