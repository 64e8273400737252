import uuid

import pytest

from talkmate import crud
from talkmate.models import Profile
from talkmate.tests.conftest import OTHER_USER_ID, USER_ID
from talkmate.tts import TTSError, TTSNotConfiguredError

URL = "/api/v1/tts"


@pytest.fixture
def tts_enabled(db) -> None:
    db.add(Profile(user_id=USER_ID, tts_enabled=True))
    db.commit()


@pytest.fixture
def owned_session(db):
    return crud.create_chat_session(
        session=db, user_id=USER_ID, language_code="ja", level_code="beginner", persona_code="friend"
    )


def test_tts_requires_enabled_profile(client, auth_headers):
    response = client.post(URL, json={"text": "Hola"}, headers=auth_headers)
    assert response.status_code == 403
    assert response.json()["detail"] == "TTS_NOT_ENABLED"


def test_without_audio_id_streams_mp3(client, tts, auth_headers, tts_enabled):
    response = client.post(URL, json={"text": "Hola", "language": "es"}, headers=auth_headers)

    assert response.status_code == 200
    assert response.content == b"ID3-fake-mp3"
    assert response.headers["content-type"] == "audio/mpeg"
    assert response.headers["cache-control"] == "no-store"
    assert tts.calls == [("Hola", "es")]


def test_audio_is_generated_once_then_served_from_storage(
    client, db, tts, supabase, auth_headers, tts_enabled, owned_session
):
    audio_id = f"{owned_session.id}/msg-1"
    body = {"text": "こんにちは", "audio_id": audio_id}

    first = client.post(URL, json=body, headers=auth_headers)
    second = client.post(URL, json=body, headers=auth_headers)

    assert first.json() == {
        "url": f"https://storage.test/tts-audio/{audio_id}.mp3",
        "cached": False,
    }
    assert second.json() == {"url": first.json()["url"], "cached": True}
    assert tts.calls == [("こんにちは", "ja")]
    assert supabase.bucket.objects == {f"{audio_id}.mp3": b"ID3-fake-mp3"}


def test_existing_object_is_served_without_quota(
    client, db, tts, supabase, auth_headers, tts_enabled, owned_session
):
    audio_id = f"{owned_session.id}/msg-2"
    supabase.bucket.objects[f"{audio_id}.mp3"] = b"old"
    for _ in range(2):
        crud.consume_usage(session=db, user_id=USER_ID, kind="tts", plan="standard")

    response = client.post(URL, json={"text": "x", "audio_id": audio_id}, headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["cached"] is True
    assert tts.calls == []


def test_generation_respects_the_daily_limit(client, db, auth_headers, tts_enabled, owned_session):
    for _ in range(2):
        crud.consume_usage(session=db, user_id=USER_ID, kind="tts", plan="standard")

    response = client.post(
        URL, json={"text": "x", "audio_id": f"{owned_session.id}/msg-3"}, headers=auth_headers
    )

    assert response.status_code == 403
    assert response.json()["detail"] == "TTS_LIMIT_EXCEEDED"


@pytest.mark.parametrize("audio_id", ["no-slash", "not-a-uuid/msg", "/", f"{uuid.uuid4()}/a/b"])
def test_malformed_audio_id(client, auth_headers, tts_enabled, audio_id):
    response = client.post(URL, json={"text": "x", "audio_id": audio_id}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "BAD_AUDIO_ID"


def test_audio_for_someone_elses_session(client, db, auth_headers, tts_enabled):
    theirs = crud.create_chat_session(
        session=db, user_id=OTHER_USER_ID, language_code="es", level_code="beginner", persona_code="friend"
    )

    response = client.post(
        URL, json={"text": "x", "audio_id": f"{theirs.id}/msg"}, headers=auth_headers
    )

    assert response.status_code == 404
    assert response.json()["detail"] == "SESSION_NOT_FOUND"


@pytest.mark.parametrize(
    "error,status,code",
    [
        (TTSError("ElevenLabs returned 500"), 502, "TTS_FAILED"),
        (TTSNotConfiguredError("ELEVENLABS_API_KEY is not set"), 500, "TTS_NOT_CONFIGURED"),
    ],
)
def test_provider_errors(client, tts, auth_headers, tts_enabled, error, status, code):
    tts.error = error

    response = client.post(URL, json={"text": "Hola"}, headers=auth_headers)

    assert response.status_code == status
    assert response.json()["detail"] == code


def test_failed_synthesis_refunds_the_tts_quota(
    client, db, tts, auth_headers, tts_enabled, owned_session
):
    tts.error = TTSError("ElevenLabs returned 500")
    crud.consume_usage(session=db, user_id=USER_ID, kind="tts", plan="standard")

    failed = client.post(
        URL, json={"text": "x", "audio_id": f"{owned_session.id}/msg-4"}, headers=auth_headers
    )
    tts.error = None
    retried = client.post(
        URL, json={"text": "x", "audio_id": f"{owned_session.id}/msg-4"}, headers=auth_headers
    )

    assert failed.status_code == 502
    assert retried.status_code == 200
    assert retried.json()["cached"] is False
