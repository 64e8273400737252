import uuid
from datetime import date, datetime, timezone
from typing import Any, Literal

from sqlalchemy import JSON, DateTime, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel


def get_datetime_utc() -> datetime:
    return datetime.now(timezone.utc)


MessageRole = Literal["user", "assistant"]
UiLang = Literal["ko", "en"]


# Profile, one row per auth user
class ProfileBase(SQLModel):
    nickname: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    plan: str = Field(default="standard", max_length=32)
    tts_enabled: bool = False


class Profile(ProfileBase, table=True):
    user_id: uuid.UUID = Field(primary_key=True)
    launch_request_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class ProfilePublic(SQLModel):
    nickname: str | None = None
    plan: str
    tts_enabled: bool


class AuthUser(SQLModel):
    """Identity resolved from a Supabase access token."""
    id: uuid.UUID
    email: str | None = None
    user_metadata: dict[str, Any] = Field(default_factory=dict)


class AuthUserPublic(SQLModel):
    id: uuid.UUID
    email: str | None = None


class ProfileResponse(SQLModel):
    user: AuthUserPublic
    profile: ProfilePublic
    tts_enabled: bool


class UserConsent(SQLModel, table=True):
    user_id: uuid.UUID = Field(primary_key=True)
    terms_version: str | None = Field(default=None, max_length=32)
    privacy_version: str | None = Field(default=None, max_length=32)
    collection_version: str | None = Field(default=None, max_length=32)
    accepted_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class ConsentStatus(SQLModel):
    accepted: bool
    terms_version: str
    privacy_version: str
    collection_version: str
    accepted_at: datetime | None = None


class LaunchRequestIn(SQLModel):
    consent: bool = False
    feature: str = Field(default="plan-upgrade", max_length=100)


class LaunchRequestResult(SQLModel):
    already_requested: bool
    feature: str


# Chat sessions
class ChatSessionBase(SQLModel):
    title: str | None = Field(default=None, max_length=255)
    language_code: str = Field(default="es", max_length=8)
    level_code: str = Field(default="beginner", max_length=32)
    persona_code: str = Field(default="friend", max_length=32)


class ChatSession(ChatSessionBase, table=True):
    __tablename__ = "chat_session"
    __table_args__ = (UniqueConstraint("user_id", "slot"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(index=True)
    slot: int | None = Field(default=None, ge=1, le=3)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    messages: list["ChatMessage"] = Relationship(
        back_populates="session", cascade_delete=True
    )
    cards: list["LearningCard"] = Relationship(
        back_populates="session", cascade_delete=True
    )


class ChatSessionPublic(ChatSessionBase):
    id: uuid.UUID
    slot: int | None = None
    created_at: datetime | None = None


class ChatSessionSummary(ChatSessionPublic):
    has_messages: bool = False
    last_message_at: datetime | None = None
    last_message_preview: str | None = None


class ChatSessionsPublic(SQLModel):
    sessions: list[ChatSessionSummary]


class SessionCreate(SQLModel):
    first_message: str = Field(min_length=1)
    language: str | None = None
    level: str | None = None
    persona_type: str | None = None


class SessionGreetingCreate(SQLModel):
    greeting: str = Field(min_length=1)
    language: str | None = None
    level: str | None = None
    persona_type: str | None = None


class SessionConfiguredCreate(SQLModel):
    language: str = Field(min_length=1)
    level: str = Field(min_length=1)
    persona_type: str = Field(min_length=1)
    slot: int | None = None
    is_guest: bool = False


class SessionCreated(SQLModel):
    session_id: uuid.UUID | None = None
    greeting: str | None = None


# Chat messages
class ChatMessageBase(SQLModel):
    role: str = Field(max_length=16)
    content: str
    details: dict | None = Field(default=None, sa_type=JSON)


class ChatMessageCreate(SQLModel):
    role: MessageRole
    content: str = Field(min_length=1)
    details: dict | None = None


class ChatMessage(ChatMessageBase, table=True):
    __tablename__ = "chat_message"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    session_id: uuid.UUID = Field(
        foreign_key="chat_session.id", nullable=False, ondelete="CASCADE", index=True
    )
    user_id: uuid.UUID | None = Field(default=None, index=True)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    session: ChatSession | None = Relationship(back_populates="messages")


class ChatMessagePublic(ChatMessageBase):
    id: uuid.UUID
    created_at: datetime | None = None


class SessionWithMessages(SQLModel):
    session: ChatSessionPublic | None = None
    messages: list[ChatMessagePublic]


class RewriteRequest(SQLModel):
    target_message_id: uuid.UUID
    new_content: str = Field(min_length=1)


class RewriteResult(SQLModel):
    session_id: uuid.UUID
    messages: list[ChatMessagePublic]


# Conversation + analysis
class ConversationTurn(SQLModel):
    role: MessageRole
    content: str = ""


class ChatRequest(SQLModel):
    messages: list[ConversationTurn] = Field(default_factory=list)
    is_first: bool = False
    session_id: uuid.UUID | None = None
    # Fallbacks for guests without a stored session.
    language: str | None = None
    level: str | None = None
    persona_type: str | None = None


class ChatReply(SQLModel):
    reply: str


class DetailsRequest(SQLModel):
    text: str | None = None
    session_id: uuid.UUID | None = None
    message_id: uuid.UUID | None = None
    ui_lang: UiLang = "ko"
    language: str | None = None
    level: str | None = None
    persona_type: str | None = None


# Learning cards
class LearningCardBase(SQLModel):
    target_text: str
    prompt_text: str
    hint: str = ""
    ui_lang: str = Field(default="ko", max_length=8)


class LearningCard(LearningCardBase, table=True):
    __tablename__ = "learning_card"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(index=True)
    session_id: uuid.UUID | None = Field(
        default=None, foreign_key="chat_session.id", ondelete="CASCADE", index=True
    )
    message_id: uuid.UUID | None = Field(default=None, index=True)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    session: ChatSession | None = Relationship(back_populates="cards")


class LearningPrepareRequest(SQLModel):
    text: str | None = None
    session_id: uuid.UUID | None = None
    message_id: uuid.UUID | None = None
    ui_lang: UiLang = "ko"
    language: str | None = None


class LearningCardPublic(SQLModel):
    card_id: uuid.UUID | None = None
    prompt: str
    hint: str
    warning: str | None = None


class LearningAnswerRequest(SQLModel):
    card_id: uuid.UUID
    user_answer: str = Field(min_length=1)
    ui_lang: UiLang = "ko"


# Text-to-speech
class TTSRequest(SQLModel):
    text: str | None = None
    audio_id: str | None = None
    language: str | None = None


class TTSResult(SQLModel):
    url: str
    cached: bool = False


# Daily usage counters, decremented by crud.consume_usage
class UsageCounter(SQLModel, table=True):
    __tablename__ = "usage_counter"

    user_id: uuid.UUID = Field(primary_key=True)
    usage_date: date = Field(primary_key=True)
    kind: str = Field(primary_key=True, max_length=16)
    used: int = 0


# Generic message
class Message(SQLModel):
    message: str
