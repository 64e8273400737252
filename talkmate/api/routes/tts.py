import logging
import uuid
from typing import Any

from fastapi import APIRouter, HTTPException, Response

from talkmate import crud
from talkmate.api.deps import AudioStoreDep, CurrentUser, SessionDep, TTSDep
from talkmate.api.routes.common import metered, upstream_failure
from talkmate.models import TTSRequest, TTSResult
from talkmate.storage import AUDIO_CONTENT_TYPE, audio_path, cached_public_url
from talkmate.tts import TTSError, TTSNotConfiguredError

router = APIRouter()
logger = logging.getLogger(__name__)


def parse_audio_id(audio_id: str) -> tuple[uuid.UUID, str]:
    """Splits `{session_id}/{message_key}`; anything else is a 400."""
    session_part, _, key = audio_id.strip().strip("/").partition("/")
    if not key or "/" in key:
        raise HTTPException(status_code=400, detail="BAD_AUDIO_ID")
    try:
        return uuid.UUID(session_part), key
    except ValueError:
        raise HTTPException(status_code=400, detail="BAD_AUDIO_ID")


async def _synthesize(tts, text: str, language: str | None) -> bytes:
    try:
        return await tts.synthesize(text, language)
    except TTSNotConfiguredError as e:
        logger.error("TTS is not configured: %s", e)
        raise HTTPException(status_code=500, detail="TTS_NOT_CONFIGURED")
    except TTSError as e:
        raise upstream_failure("TTS_FAILED", e)


@router.post("/tts", response_model=TTSResult)
async def text_to_speech(
    *,
    session: SessionDep,
    current_user: CurrentUser,
    tts: TTSDep,
    store: AudioStoreDep,
    payload: TTSRequest,
) -> Any:
    """
    Speech for a message. With an `audio_id` the audio is cached in storage and
    its public URL returned; without one the raw mp3 is streamed back once.
    """
    profile = crud.get_profile(session=session, user_id=current_user.id)
    if profile is None or not profile.tts_enabled:
        raise HTTPException(status_code=403, detail="TTS_NOT_ENABLED")

    text = (payload.text or "").strip()

    if not payload.audio_id:
        if not text:
            raise HTTPException(status_code=400, detail="NO_TEXT")
        with metered(session, current_user, "tts"):
            audio = await _synthesize(tts, text, payload.language)
        return Response(
            content=audio,
            media_type=AUDIO_CONTENT_TYPE,
            headers={"Cache-Control": "no-store"},
        )

    session_id, _ = parse_audio_id(payload.audio_id)
    chat_session = crud.get_owned_session(
        session=session, session_id=session_id, user_id=current_user.id
    )
    if chat_session is None:
        raise HTTPException(status_code=404, detail="SESSION_NOT_FOUND")

    path = audio_path(payload.audio_id.strip().strip("/"))
    url = cached_public_url(path)
    if url:
        return TTSResult(url=url, cached=True)

    try:
        found = store.exists(path)
    except Exception as e:
        logger.error("Storage lookup failed for %s: %s", path, e)
        found = False
    if found:
        return TTSResult(url=store.public_url(path), cached=True)

    if not text:
        raise HTTPException(status_code=400, detail="NO_TEXT")
    with metered(session, current_user, "tts"):
        audio = await _synthesize(tts, text, payload.language or chat_session.language_code)
        try:
            store.upload(path, audio)
        except Exception as e:
            logger.error("Storage upload failed for %s: %s", path, e)
            raise HTTPException(status_code=502, detail="TTS_UPLOAD_FAILED")
    return TTSResult(url=store.public_url(path), cached=False)
