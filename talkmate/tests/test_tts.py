from unittest.mock import patch

import httpx
import pytest

from talkmate.tts import (
    VOICE_CONFIG_BY_LANG,
    ElevenLabsClient,
    TTSError,
    TTSNotConfiguredError,
    get_voice_config,
    normalize_language_code,
)

_RealAsyncClient = httpx.AsyncClient


def _patched_transport(handler):
    def factory(**kwargs):
        return _RealAsyncClient(transport=httpx.MockTransport(handler), **kwargs)

    return patch("talkmate.tts.httpx.AsyncClient", side_effect=factory)


def test_language_code_normalization():
    assert normalize_language_code("en-US") == "en"
    assert normalize_language_code(" JA ") == "ja"
    assert normalize_language_code("") == "en"
    assert normalize_language_code(None) == "en"


def test_unknown_language_uses_english_voice():
    assert get_voice_config("de") == VOICE_CONFIG_BY_LANG["en"]
    assert get_voice_config("es-ES") == VOICE_CONFIG_BY_LANG["es"]


@pytest.mark.asyncio
async def test_synthesize_posts_to_the_voice_endpoint():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"mp3-bytes")

    client = ElevenLabsClient(api_key="xi-key", base_url="https://tts.test/")
    with _patched_transport(handler):
        audio = await client.synthesize("Hola", "es")

    assert audio == b"mp3-bytes"
    request = seen[0]
    voice = VOICE_CONFIG_BY_LANG["es"]
    assert request.url.path == f"/v1/text-to-speech/{voice.voice_id}"
    assert request.url.params["output_format"] == voice.output_format
    assert request.headers["xi-api-key"] == "xi-key"


@pytest.mark.asyncio
async def test_provider_error_becomes_tts_error():
    client = ElevenLabsClient(api_key="xi-key", base_url="https://tts.test")
    with _patched_transport(lambda request: httpx.Response(401, text="bad key")):
        with pytest.raises(TTSError):
            await client.synthesize("Hola", "es")


@pytest.mark.asyncio
async def test_transport_error_becomes_tts_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = ElevenLabsClient(api_key="xi-key", base_url="https://tts.test")
    with _patched_transport(handler):
        with pytest.raises(TTSError):
            await client.synthesize("Hola", "es")


@pytest.mark.asyncio
async def test_missing_key_is_reported_before_any_request():
    with patch("talkmate.tts.settings.ELEVENLABS_API_KEY", None):
        client = ElevenLabsClient()
    with pytest.raises(TTSNotConfiguredError):
        await client.synthesize("Hola", "es")
