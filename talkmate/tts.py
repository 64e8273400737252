import logging
from dataclasses import dataclass, field

import httpx

from talkmate.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_MODEL_ID = "eleven_turbo_v2_5"
DEFAULT_OUTPUT_FORMAT = "mp3_22050_32"


class TTSError(Exception):
    """The speech provider rejected the request or could not be reached."""


class TTSNotConfiguredError(TTSError):
    pass


@dataclass(frozen=True)
class VoiceConfig:
    voice_id: str
    model_id: str = DEFAULT_MODEL_ID
    output_format: str = DEFAULT_OUTPUT_FORMAT
    voice_settings: dict[str, float | bool] = field(default_factory=dict)


VOICE_CONFIG_BY_LANG: dict[str, VoiceConfig] = {
    "en": VoiceConfig(
        voice_id="GoGUcAZovo4MFeLxJdZd",
        voice_settings={
            "stability": 0.5,
            "similarity_boost": 0.8,
            "style": 0,
            "use_speaker_boost": True,
        },
    ),
    "es": VoiceConfig(voice_id="Nh2zY9kknu6z4pZy6FhD"),
    "ja": VoiceConfig(
        voice_id="aTTiK3YzK3dXETpuDE2h",
        voice_settings={
            "stability": 0.5,
            "similarity_boost": 0.5,
            "style": 0,
            "use_speaker_boost": True,
        },
    ),
    "zh": VoiceConfig(
        voice_id="GoGUcAZovo4MFeLxJdZd",
        voice_settings={
            "stability": 0.4,
            "similarity_boost": 0.5,
            "style": 0,
            "use_speaker_boost": True,
        },
    ),
    "fr": VoiceConfig(voice_id="aTTiK3YzK3dXETpuDE2h"),
    "ru": VoiceConfig(voice_id="aTTiK3YzK3dXETpuDE2h"),
    "ar": VoiceConfig(voice_id="UgBBYS2sOqTuMpoF3BR0"),
}


def normalize_language_code(language: str | None) -> str:
    value = (language or "").strip().lower()
    if not value:
        return "en"
    # "en-US" -> "en"
    return value.split("-")[0] or "en"


def get_voice_config(language: str | None) -> VoiceConfig:
    return VOICE_CONFIG_BY_LANG.get(normalize_language_code(language), VOICE_CONFIG_BY_LANG["en"])


class ElevenLabsClient:
    """Thin async wrapper over the ElevenLabs text-to-speech endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ):
        self.api_key = api_key or settings.ELEVENLABS_API_KEY
        self.base_url = (base_url or settings.ELEVENLABS_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.TTS_TIMEOUT_SECONDS

    async def synthesize(self, text: str, language: str | None = None) -> bytes:
        if not self.api_key:
            raise TTSNotConfiguredError("ELEVENLABS_API_KEY is not set")

        voice = get_voice_config(language)
        payload: dict = {"text": text, "model_id": voice.model_id}
        if voice.voice_settings:
            payload["voice_settings"] = voice.voice_settings

        url = f"{self.base_url}/v1/text-to-speech/{voice.voice_id}"
        logger.info("Requesting speech for %s chars with voice %s", len(text), voice.voice_id)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    url,
                    params={"output_format": voice.output_format},
                    headers={
                        "xi-api-key": self.api_key,
                        "Content-Type": "application/json",
                        "Accept": "audio/mpeg",
                    },
                    json=payload,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error("ElevenLabs error %s: %s", exc.response.status_code, exc.response.text)
            raise TTSError(f"ElevenLabs returned {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error("Failed to contact ElevenLabs: %s", exc)
            raise TTSError("Failed to contact ElevenLabs") from exc
        return response.content
