import uuid
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from talkmate.core.consent import COLLECTION_VERSION, PRIVACY_VERSION, TERMS_VERSION
from talkmate.core.plans import UsageKind, limit_for
from talkmate.models import (
    ChatMessage,
    ChatSession,
    LearningCard,
    Profile,
    UsageCounter,
    UserConsent,
    get_datetime_utc,
)


def get_profile(*, session: Session, user_id: uuid.UUID) -> Profile | None:
    return session.get(Profile, user_id)


def mark_launch_request(*, session: Session, user_id: uuid.UUID, email: str) -> bool:
    """Records the first launch request. Returns False when one was already stored."""
    profile = session.get(Profile, user_id)
    if profile and profile.launch_request_at:
        return False
    if profile is None:
        profile = Profile(user_id=user_id)
    profile.email = email
    profile.launch_request_at = get_datetime_utc()
    session.add(profile)
    session.commit()
    return True


def get_consent(*, session: Session, user_id: uuid.UUID) -> UserConsent | None:
    return session.get(UserConsent, user_id)


def record_consent(*, session: Session, user_id: uuid.UUID) -> UserConsent:
    consent = session.get(UserConsent, user_id) or UserConsent(user_id=user_id)
    consent.terms_version = TERMS_VERSION
    consent.privacy_version = PRIVACY_VERSION
    consent.collection_version = COLLECTION_VERSION
    consent.accepted_at = get_datetime_utc()
    session.add(consent)
    session.commit()
    session.refresh(consent)
    return consent


def make_session_title(text: str) -> str:
    cleaned = text.strip()
    return cleaned[:20] + ("..." if len(cleaned) > 20 else "")


def create_chat_session(
    *,
    session: Session,
    user_id: uuid.UUID,
    language_code: str,
    level_code: str,
    persona_code: str,
    title: str | None = None,
    slot: int | None = None,
) -> ChatSession:
    db_session = ChatSession(
        user_id=user_id,
        title=title,
        slot=slot,
        language_code=language_code,
        level_code=level_code,
        persona_code=persona_code,
    )
    session.add(db_session)
    session.commit()
    session.refresh(db_session)
    return db_session


def upsert_slot_session(
    *,
    session: Session,
    user_id: uuid.UUID,
    slot: int,
    language_code: str,
    level_code: str,
    persona_code: str,
) -> tuple[ChatSession, bool]:
    """
    Stores the configuration for a user's slot. Returns the row and whether it
    replaced an existing slot; a replaced slot starts over with no messages or cards.
    """
    existing = session.exec(
        select(ChatSession).where(
            ChatSession.user_id == user_id, ChatSession.slot == slot
        )
    ).first()
    if existing is None:
        try:
            return (
                create_chat_session(
                    session=session,
                    user_id=user_id,
                    slot=slot,
                    language_code=language_code,
                    level_code=level_code,
                    persona_code=persona_code,
                ),
                False,
            )
        except IntegrityError:
            session.rollback()
            existing = session.exec(
                select(ChatSession).where(
                    ChatSession.user_id == user_id, ChatSession.slot == slot
                )
            ).one()

    session.execute(delete(ChatMessage).where(col(ChatMessage.session_id) == existing.id))
    delete_session_cards(session=session, session_id=existing.id, commit=False)
    existing.language_code = language_code
    existing.level_code = level_code
    existing.persona_code = persona_code
    existing.title = None
    existing.created_at = get_datetime_utc()
    session.add(existing)
    session.commit()
    session.refresh(existing)
    return existing, True


def get_owned_session(
    *, session: Session, session_id: uuid.UUID, user_id: uuid.UUID
) -> ChatSession | None:
    db_session = session.get(ChatSession, session_id)
    if db_session is None or db_session.user_id != user_id:
        return None
    return db_session


def list_recent_sessions(
    *, session: Session, user_id: uuid.UUID, limit: int = 3
) -> list[ChatSession]:
    statement = (
        select(ChatSession)
        .where(ChatSession.user_id == user_id)
        .order_by(col(ChatSession.created_at).desc())
        .limit(limit)
    )
    return list(session.exec(statement).all())


def list_user_session_ids(*, session: Session, user_id: uuid.UUID) -> list[uuid.UUID]:
    statement = select(ChatSession.id).where(ChatSession.user_id == user_id)
    return list(session.exec(statement).all())


def add_message(
    *,
    session: Session,
    session_id: uuid.UUID,
    role: str,
    content: str,
    user_id: uuid.UUID | None = None,
    details: dict[str, Any] | None = None,
    created_at: datetime | None = None,
) -> ChatMessage:
    message = ChatMessage(
        session_id=session_id,
        user_id=user_id,
        role=role,
        content=content,
        details=details,
        created_at=created_at or get_datetime_utc(),
    )
    session.add(message)
    session.commit()
    session.refresh(message)
    return message


def list_messages(*, session: Session, session_id: uuid.UUID) -> list[ChatMessage]:
    statement = (
        select(ChatMessage)
        .where(ChatMessage.session_id == session_id)
        .order_by(col(ChatMessage.created_at).asc())
    )
    return list(session.exec(statement).all())


def get_last_message(*, session: Session, session_id: uuid.UUID) -> ChatMessage | None:
    statement = (
        select(ChatMessage)
        .where(ChatMessage.session_id == session_id)
        .order_by(col(ChatMessage.created_at).desc())
        .limit(1)
    )
    return session.exec(statement).first()


def update_message_content(
    *, session: Session, message: ChatMessage, content: str
) -> ChatMessage:
    message.content = content
    message.details = None
    session.add(message)
    session.commit()
    session.refresh(message)
    return message


def save_message_details(
    *, session: Session, message: ChatMessage, details: dict[str, Any]
) -> ChatMessage:
    message.details = details
    session.add(message)
    session.commit()
    session.refresh(message)
    return message


def delete_messages(
    *, session: Session, session_id: uuid.UUID, message_ids: list[uuid.UUID]
) -> int:
    if not message_ids:
        return 0
    result = session.execute(
        delete(ChatMessage).where(
            col(ChatMessage.id).in_(message_ids),
            col(ChatMessage.session_id) == session_id,
        )
    )
    session.commit()
    return result.rowcount or 0


def delete_session_cards(
    *, session: Session, session_id: uuid.UUID, commit: bool = True
) -> int:
    result = session.execute(
        delete(LearningCard).where(col(LearningCard.session_id) == session_id)
    )
    if commit:
        session.commit()
    return result.rowcount or 0


def delete_chat_session(*, session: Session, db_session: ChatSession) -> None:
    session.delete(db_session)
    session.commit()


def find_cached_card(
    *,
    session: Session,
    user_id: uuid.UUID,
    target_text: str,
    ui_lang: str = "ko",
    session_id: uuid.UUID | None = None,
    message_id: uuid.UUID | None = None,
) -> LearningCard | None:
    statement = select(LearningCard).where(
        LearningCard.user_id == user_id,
        LearningCard.target_text == target_text,
        LearningCard.ui_lang == ui_lang,
    )
    if session_id:
        statement = statement.where(LearningCard.session_id == session_id)
    if message_id:
        statement = statement.where(LearningCard.message_id == message_id)
    statement = statement.order_by(col(LearningCard.created_at).desc()).limit(1)
    return session.exec(statement).first()


def create_learning_card(
    *,
    session: Session,
    user_id: uuid.UUID,
    target_text: str,
    prompt_text: str,
    hint: str,
    ui_lang: str = "ko",
    session_id: uuid.UUID | None = None,
    message_id: uuid.UUID | None = None,
) -> LearningCard:
    card = LearningCard(
        user_id=user_id,
        session_id=session_id,
        message_id=message_id,
        target_text=target_text,
        prompt_text=prompt_text,
        hint=hint,
        ui_lang=ui_lang,
    )
    session.add(card)
    session.commit()
    session.refresh(card)
    return card


def consume_usage(
    *,
    session: Session,
    user_id: uuid.UUID,
    kind: UsageKind,
    plan: str | None,
    today: date | None = None,
) -> bool:
    """
    Decrements today's allowance for `kind`. The check and the increment happen in a
    single conditional UPDATE, so concurrent requests cannot overshoot the plan limit.
    """
    usage_date = today or datetime.now(timezone.utc).date()
    limit = limit_for(plan, kind)

    counter = session.exec(
        select(UsageCounter).where(
            UsageCounter.user_id == user_id,
            UsageCounter.usage_date == usage_date,
            UsageCounter.kind == kind,
        )
    ).first()
    if counter is None:
        try:
            session.add(UsageCounter(user_id=user_id, usage_date=usage_date, kind=kind, used=0))
            session.commit()
        except IntegrityError:
            session.rollback()

    result = session.execute(
        update(UsageCounter)
        .where(
            col(UsageCounter.user_id) == user_id,
            col(UsageCounter.usage_date) == usage_date,
            col(UsageCounter.kind) == kind,
            col(UsageCounter.used) < limit,
        )
        .values(used=UsageCounter.used + 1)
    )
    session.commit()
    return result.rowcount == 1


def delete_user_data(*, session: Session, user_id: uuid.UUID) -> None:
    session_ids = list_user_session_ids(session=session, user_id=user_id)
    if session_ids:
        session.execute(delete(ChatMessage).where(col(ChatMessage.session_id).in_(session_ids)))
    session.execute(delete(LearningCard).where(col(LearningCard.user_id) == user_id))
    session.execute(delete(ChatSession).where(col(ChatSession.user_id) == user_id))
    session.execute(delete(UsageCounter).where(col(UsageCounter.user_id) == user_id))
    session.execute(delete(UserConsent).where(col(UserConsent.user_id) == user_id))
    session.execute(delete(Profile).where(col(Profile.user_id) == user_id))
    session.commit()


def release_usage(
    *,
    session: Session,
    user_id: uuid.UUID,
    kind: UsageKind,
    today: date | None = None,
) -> None:
    """Gives back one unit taken by `consume_usage` when the metered call failed."""
    usage_date = today or datetime.now(timezone.utc).date()
    session.execute(
        update(UsageCounter)
        .where(
            col(UsageCounter.user_id) == user_id,
            col(UsageCounter.usage_date) == usage_date,
            col(UsageCounter.kind) == kind,
            col(UsageCounter.used) > 0,
        )
        .values(used=UsageCounter.used - 1)
    )
    session.commit()
