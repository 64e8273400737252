import logging
import uuid
from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session
from supabase import Client

from talkmate.agent.llm_client import LLMClient
from talkmate.core.db import engine
from talkmate.core.supabase import get_supabase
from talkmate.models import AuthUser
from talkmate.storage import AudioStore
from talkmate.tts import ElevenLabsClient

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


def get_llm_client() -> LLMClient:
    return LLMClient()


def get_tts_client() -> ElevenLabsClient:
    return ElevenLabsClient()


SessionDep = Annotated[Session, Depends(get_db)]
SupabaseDep = Annotated[Client, Depends(get_supabase)]
LLMDep = Annotated[LLMClient, Depends(get_llm_client)]
TTSDep = Annotated[ElevenLabsClient, Depends(get_tts_client)]
TokenDep = Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)]


def get_audio_store(supabase: SupabaseDep) -> AudioStore:
    return AudioStore.from_client(supabase)


AudioStoreDep = Annotated[AudioStore, Depends(get_audio_store)]


def resolve_user(supabase: Client, token: str) -> AuthUser:
    """Verifies an access token with Supabase auth and returns the user it belongs to."""
    try:
        response = supabase.auth.get_user(token)
    except Exception as e:
        logger.info("Rejected access token: %s", e)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="UNAUTHORIZED")
    user = getattr(response, "user", None)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="UNAUTHORIZED")
    return AuthUser(
        id=uuid.UUID(str(user.id)),
        email=getattr(user, "email", None),
        user_metadata=getattr(user, "user_metadata", None) or {},
    )


def get_current_user(supabase: SupabaseDep, credentials: TokenDep) -> AuthUser:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="UNAUTHORIZED")
    return resolve_user(supabase, credentials.credentials)


def get_optional_user(supabase: SupabaseDep, credentials: TokenDep) -> AuthUser | None:
    """Guests send no token. A token that is present must still be valid."""
    if credentials is None or not credentials.credentials:
        return None
    return resolve_user(supabase, credentials.credentials)


CurrentUser = Annotated[AuthUser, Depends(get_current_user)]
OptionalUser = Annotated[AuthUser | None, Depends(get_optional_user)]
