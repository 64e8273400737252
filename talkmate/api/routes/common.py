import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import HTTPException
from sqlmodel import Session

from talkmate import crud
from talkmate.agent.personas import SessionConfig
from talkmate.core.plans import UsageKind
from talkmate.models import AuthUser, ChatSession

logger = logging.getLogger(__name__)


def owned_session_or_none(
    session: Session, user: AuthUser | None, session_id: uuid.UUID | None
) -> ChatSession | None:
    if user is None or session_id is None:
        return None
    return crud.get_owned_session(session=session, session_id=session_id, user_id=user.id)


def resolve_config(
    chat_session: ChatSession | None,
    *,
    language: str | None = None,
    level: str | None = None,
    persona: str | None = None,
) -> SessionConfig:
    return SessionConfig.resolve(
        language=chat_session.language_code if chat_session else None,
        level=chat_session.level_code if chat_session else None,
        persona=chat_session.persona_code if chat_session else None,
        fallback_language=language,
        fallback_level=level,
        fallback_persona=persona,
    )


def enforce_usage(session: Session, user: AuthUser, kind: UsageKind) -> None:
    profile = crud.get_profile(session=session, user_id=user.id)
    allowed = crud.consume_usage(
        session=session,
        user_id=user.id,
        kind=kind,
        plan=profile.plan if profile else None,
    )
    if not allowed:
        logger.info("User %s reached the daily %s limit", user.id, kind)
        raise HTTPException(status_code=403, detail=f"{kind.upper()}_LIMIT_EXCEEDED")


@contextmanager
def metered(session: Session, user: AuthUser | None, kind: UsageKind) -> Iterator[None]:
    """Charges one `kind` unit up front; a 5xx raised inside the block refunds it. Guests are free."""
    if user is None:
        yield
        return
    enforce_usage(session, user, kind)
    try:
        yield
    except HTTPException as e:
        if e.status_code >= 500:
            logger.info("Refunding %s usage for %s after %s", kind, user.id, e.detail)
            crud.release_usage(session=session, user_id=user.id, kind=kind)
        raise


def upstream_failure(code: str, error: Exception) -> HTTPException:
    logger.error("%s: %s", code, error)
    return HTTPException(status_code=502, detail=code)
