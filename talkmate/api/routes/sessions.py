import logging
import uuid
from typing import Any

from fastapi import APIRouter, HTTPException, status
from openai import OpenAIError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from talkmate import crud
from talkmate.agent.conversation_agent import ConversationAgent, GreetingAgent
from talkmate.agent.personas import SessionConfig
from talkmate.api.deps import (
    AudioStoreDep,
    CurrentUser,
    LLMDep,
    SessionDep,
    SupabaseDep,
    TokenDep,
    resolve_user,
)
from talkmate.api.routes.common import upstream_failure
from talkmate.models import (
    AuthUser,
    ChatMessageCreate,
    ChatMessagePublic,
    ChatSession,
    ChatSessionPublic,
    ChatSessionsPublic,
    ChatSessionSummary,
    Message,
    RewriteRequest,
    RewriteResult,
    SessionConfiguredCreate,
    SessionCreate,
    SessionCreated,
    SessionGreetingCreate,
    SessionWithMessages,
)

router = APIRouter(prefix="/sessions", tags=["sessions"])
logger = logging.getLogger(__name__)

PREVIEW_CHARS = 50


def _preview(content: str | None) -> str | None:
    if content is None:
        return None
    return content[:PREVIEW_CHARS] + ("..." if len(content) > PREVIEW_CHARS else "")


def _with_messages(session: Session, chat_session: ChatSession | None) -> SessionWithMessages:
    if chat_session is None:
        return SessionWithMessages(session=None, messages=[])
    messages = crud.list_messages(session=session, session_id=chat_session.id)
    return SessionWithMessages(
        session=ChatSessionPublic.model_validate(chat_session),
        messages=[ChatMessagePublic.model_validate(m) for m in messages],
    )


def _session_for_owner(session: Session, user: AuthUser, id: uuid.UUID) -> ChatSession:
    """404 when the session does not exist, 403 when it belongs to someone else."""
    chat_session = session.get(ChatSession, id)
    if chat_session is None:
        raise HTTPException(status_code=404, detail="SESSION_NOT_FOUND")
    if chat_session.user_id != user.id:
        raise HTTPException(status_code=403, detail="FORBIDDEN")
    return chat_session


@router.get("", response_model=ChatSessionsPublic)
def read_sessions(session: SessionDep, current_user: CurrentUser) -> Any:
    """The caller's three most recent sessions, each with a preview of its last message."""
    summaries = []
    for chat_session in crud.list_recent_sessions(session=session, user_id=current_user.id):
        last = crud.get_last_message(session=session, session_id=chat_session.id)
        summaries.append(
            ChatSessionSummary(
                **ChatSessionPublic.model_validate(chat_session).model_dump(),
                has_messages=last is not None,
                last_message_at=last.created_at if last else None,
                last_message_preview=_preview(last.content) if last else None,
            )
        )
    return ChatSessionsPublic(sessions=summaries)


@router.get("/latest", response_model=SessionWithMessages)
def read_latest_session(session: SessionDep, current_user: CurrentUser) -> Any:
    recent = crud.list_recent_sessions(session=session, user_id=current_user.id, limit=1)
    return _with_messages(session, recent[0] if recent else None)


@router.post("", response_model=SessionCreated)
def create_session(
    *, session: SessionDep, current_user: CurrentUser, session_in: SessionCreate
) -> Any:
    """Starts a session from the learner's first message."""
    config = SessionConfig.resolve(
        language=session_in.language,
        level=session_in.level,
        persona=session_in.persona_type,
    )
    chat_session = crud.create_chat_session(
        session=session,
        user_id=current_user.id,
        title=crud.make_session_title(session_in.first_message),
        language_code=config.language,
        level_code=config.level,
        persona_code=config.persona,
    )
    crud.add_message(
        session=session,
        session_id=chat_session.id,
        user_id=current_user.id,
        role="user",
        content=session_in.first_message,
    )
    return SessionCreated(session_id=chat_session.id)


@router.post("/greeting", response_model=SessionCreated)
def create_greeting_session(
    *, session: SessionDep, current_user: CurrentUser, session_in: SessionGreetingCreate
) -> Any:
    """Starts a session whose first message is the tutor's greeting."""
    config = SessionConfig.resolve(
        language=session_in.language,
        level=session_in.level,
        persona=session_in.persona_type,
    )
    chat_session = crud.create_chat_session(
        session=session,
        user_id=current_user.id,
        title=crud.make_session_title(session_in.greeting),
        language_code=config.language,
        level_code=config.level,
        persona_code=config.persona,
    )
    crud.add_message(
        session=session,
        session_id=chat_session.id,
        user_id=current_user.id,
        role="assistant",
        content=session_in.greeting,
    )
    return SessionCreated(session_id=chat_session.id, greeting=session_in.greeting)


@router.post("/configured", response_model=SessionCreated)
async def create_configured_session(
    *,
    session: SessionDep,
    supabase: SupabaseDep,
    credentials: TokenDep,
    store: AudioStoreDep,
    llm: LLMDep,
    session_in: SessionConfiguredCreate,
) -> Any:
    """
    Configures one of the caller's three slots and opens it with a generated greeting.

    Guests get the greeting only; nothing is stored and no token is needed.
    Reconfiguring a slot that already exists starts it over: its messages,
    study cards and cached audio are removed.
    """
    config = SessionConfig.resolve(
        language=session_in.language,
        level=session_in.level,
        persona=session_in.persona_type,
    )

    if session_in.is_guest:
        try:
            greeting = await GreetingAgent(llm).greet(config)
        except (ValueError, OpenAIError) as e:
            raise upstream_failure("GREETING_FAILED", e)
        return SessionCreated(greeting=greeting)

    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="UNAUTHORIZED")
    current_user = resolve_user(supabase, credentials.credentials)

    if session_in.slot is None or not 1 <= session_in.slot <= 3:
        raise HTTPException(status_code=400, detail="INVALID_SLOT")

    chat_session, replaced = crud.upsert_slot_session(
        session=session,
        user_id=current_user.id,
        slot=session_in.slot,
        language_code=config.language,
        level_code=config.level,
        persona_code=config.persona,
    )
    if replaced:
        store.sweep(str(chat_session.id))

    try:
        greeting = await GreetingAgent(llm).greet(config)
    except (ValueError, OpenAIError) as e:
        raise upstream_failure("GREETING_FAILED", e)

    try:
        crud.add_message(
            session=session,
            session_id=chat_session.id,
            user_id=current_user.id,
            role="assistant",
            content=greeting,
        )
    except SQLAlchemyError as e:
        session.rollback()
        logger.warning("Greeting for session %s was not stored: %s", chat_session.id, e)

    return SessionCreated(session_id=chat_session.id, greeting=greeting)


@router.get("/{id}/messages", response_model=SessionWithMessages)
def read_session_messages(id: uuid.UUID, session: SessionDep, current_user: CurrentUser) -> Any:
    chat_session = crud.get_owned_session(session=session, session_id=id, user_id=current_user.id)
    if chat_session is None:
        raise HTTPException(status_code=404, detail="SESSION_NOT_FOUND")
    return _with_messages(session, chat_session)


@router.post("/{id}/messages", response_model=ChatMessagePublic)
def add_session_message(
    *,
    id: uuid.UUID,
    session: SessionDep,
    current_user: CurrentUser,
    message_in: ChatMessageCreate,
) -> Any:
    chat_session = crud.get_owned_session(session=session, session_id=id, user_id=current_user.id)
    if chat_session is None:
        raise HTTPException(status_code=404, detail="SESSION_NOT_FOUND")
    return crud.add_message(
        session=session,
        session_id=chat_session.id,
        user_id=current_user.id,
        role=message_in.role,
        content=message_in.content,
        details=message_in.details,
    )


@router.post("/{id}/rewrite", response_model=RewriteResult)
async def rewrite_last_message(
    *,
    id: uuid.UUID,
    session: SessionDep,
    current_user: CurrentUser,
    store: AudioStoreDep,
    llm: LLMDep,
    rewrite_in: RewriteRequest,
) -> Any:
    """
    Replaces the learner's last message and regenerates the tutor's answer.

    Everything the old message produced goes away: the replies after it,
    the session's study cards and any audio cached for the affected messages.
    The steps are not transactional; a failure part-way leaves the earlier ones applied.
    """
    new_content = rewrite_in.new_content.strip()
    if not new_content:
        raise HTTPException(status_code=400, detail="EMPTY_CONTENT")

    chat_session = _session_for_owner(session, current_user, id)
    messages = crud.list_messages(session=session, session_id=chat_session.id)

    index = next(
        (i for i, m in enumerate(messages) if m.id == rewrite_in.target_message_id), None
    )
    if index is None:
        raise HTTPException(status_code=404, detail="TARGET_MESSAGE_NOT_FOUND")
    target = messages[index]
    if target.role != "user":
        raise HTTPException(status_code=409, detail="TARGET_NOT_USER_MESSAGE")
    if any(m.role == "user" for m in messages[index + 1:]):
        raise HTTPException(status_code=409, detail="ONLY_LAST_USER_MESSAGE_CAN_BE_REWRITTEN")

    tail_ids = [m.id for m in messages[index + 1:]]
    history = [
        {"role": m.role, "content": m.content} for m in messages[:index]
    ] + [{"role": "user", "content": new_content}]

    crud.update_message_content(session=session, message=target, content=new_content)
    crud.delete_messages(session=session, session_id=chat_session.id, message_ids=tail_ids)
    crud.delete_session_cards(session=session, session_id=chat_session.id)
    removed = store.remove_matching(
        str(chat_session.id), [str(i) for i in [target.id, *tail_ids]]
    )
    logger.info(
        "Rewrite in session %s dropped %s messages and %s audio objects",
        chat_session.id,
        len(tail_ids),
        removed,
    )

    config = SessionConfig.resolve(
        language=chat_session.language_code,
        level=chat_session.level_code,
        persona=chat_session.persona_code,
    )
    try:
        reply = await ConversationAgent(llm).reply(config, history, window=None, strict=True)
    except ValueError as e:
        raise upstream_failure("EMPTY_ASSISTANT_RESPONSE", e)
    except OpenAIError as e:
        raise upstream_failure("CHAT_FAILED", e)

    crud.add_message(
        session=session,
        session_id=chat_session.id,
        user_id=current_user.id,
        role="assistant",
        content=reply,
    )
    messages = crud.list_messages(session=session, session_id=chat_session.id)
    return RewriteResult(
        session_id=chat_session.id,
        messages=[ChatMessagePublic.model_validate(m) for m in messages],
    )


@router.delete("/{id}", response_model=Message)
def delete_session(
    id: uuid.UUID, session: SessionDep, current_user: CurrentUser, store: AudioStoreDep
) -> Any:
    """Deletes a session together with its messages, cards and cached audio."""
    chat_session = _session_for_owner(session, current_user, id)
    store.sweep(str(chat_session.id))
    crud.delete_chat_session(session=session, db_session=chat_session)
    return Message(message="Session deleted successfully")
