import json
import logging
import re
from typing import TypeVar

from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from talkmate.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

ChatMessages = list[dict[str, str]]


def _extract_fenced_block(text: str) -> str | None:
    blocks = re.findall(r"```(?:json)?\s*(.*?)\s*```", text, re.DOTALL | re.IGNORECASE)
    return blocks[0].strip() if blocks else None


def _strip_code_fences(text: str) -> str:
    if not text:
        return ""
    fenced = re.match(r"^\s*```[a-zA-Z0-9_-]*\s*([\s\S]*?)\s*```\s*$", text)
    if fenced:
        return fenced.group(1).strip()
    return text.strip()


def _extract_balanced_json_object(text: str) -> str | None:
    """Best-effort extraction of the first balanced top-level JSON object."""
    start_idx = text.find("{") if text else -1
    if start_idx == -1:
        return None

    depth = 0
    in_string = False
    escape = False
    for i in range(start_idx, len(text)):
        ch = text[i]
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start_idx:i + 1]
    return None


def _json_candidates(raw_text: str) -> list[str]:
    text = (raw_text or "").strip()
    if not text:
        return []

    candidates = [_extract_fenced_block(text), text, _extract_balanced_json_object(text)]

    unique: list[str] = []
    for candidate in candidates:
        c = (candidate or "").strip()
        if c and c not in unique:
            unique.append(c)
    return unique


class LLMClient:
    """Provider-agnostic LLM client built on the OpenAI chat completions API."""

    def __init__(
        self,
        model_name: str | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
    ):
        self.model_name = model_name or settings.MODEL_DEFAULT
        self.client = AsyncOpenAI(
            base_url=base_url or settings.LLM_BASE_URL,
            api_key=api_key or settings.LLM_API_KEY,
        )

    def _chat_completion_kwargs(self, *, temperature: float | None) -> dict:
        """Build provider/model-compatible kwargs for chat completions."""
        model_name = (self.model_name or "").lower()
        # GPT-5 family rejects non-default temperature values in some OpenAI endpoints.
        if model_name.startswith("gpt-5"):
            return {}
        if temperature is None:
            return {}
        return {"temperature": temperature}

    async def _complete(self, messages: ChatMessages, *, temperature: float | None) -> str:
        response = await self.client.chat.completions.create(
            model=self.model_name,
            messages=messages,
            **self._chat_completion_kwargs(temperature=temperature),
        )
        if not getattr(response, "choices", None):
            logger.error("Received no choices from %s: %s", self.model_name, response)
            raise ValueError(f"Provider {self.model_name} returned no output")
        return (response.choices[0].message.content or "").strip()

    async def generate_structured(
        self, system_prompt: str, user_prompt: str, response_schema: type[T]
    ) -> T:
        """
        Generate a response matching the given Pydantic schema.
        The schema is injected into the system prompt and the reply is parsed leniently.
        """
        schema_json = json.dumps(response_schema.model_json_schema(), ensure_ascii=False)
        augmented_system_prompt = (
            f"{system_prompt}\n\n"
            "CRITICAL: You must respond in ONLY valid JSON format matching the following JSON Schema. "
            "Do not include markdown code blocks (```json) or any conversational text around the JSON.\n\n"
            f"EXPECTED SCHEMA:\n{schema_json}"
        )
        attempt_prompts = [
            augmented_system_prompt,
            (
                f"{augmented_system_prompt}\n\n"
                "RETRY INSTRUCTIONS: Your previous response was invalid or incomplete. "
                "Return ONLY a single JSON object matching the schema. "
                "Do not add any prose, headings, markdown fences, or explanations."
            ),
        ]

        for attempt_idx, system_prompt_attempt in enumerate(attempt_prompts, start=1):
            try:
                logger.info(
                    "Issuing structured request to model %s (attempt %s/%s)...",
                    self.model_name,
                    attempt_idx,
                    len(attempt_prompts),
                )
                text_response = await self._complete(
                    [
                        {"role": "system", "content": system_prompt_attempt},
                        {"role": "user", "content": user_prompt},
                    ],
                    temperature=0 if attempt_idx > 1 else 0.2,
                )

                parse_candidates = _json_candidates(text_response)
                if not parse_candidates:
                    raise ValueError("Model returned empty content for structured response")
                parse_errors: list[str] = []
                for candidate in parse_candidates:
                    try:
                        return response_schema.model_validate(json.loads(candidate, strict=False))
                    except (json.JSONDecodeError, ValidationError, ValueError) as candidate_error:
                        parse_errors.append(str(candidate_error))
                raise ValueError(
                    "Unable to parse structured response: " + " | ".join(parse_errors[:3])
                )
            except (json.JSONDecodeError, ValidationError, ValueError) as e:
                if attempt_idx < len(attempt_prompts):
                    logger.warning(
                        "Structured parsing failed for %s on attempt %s/%s: %s. Retrying...",
                        self.model_name,
                        attempt_idx,
                        len(attempt_prompts),
                        e,
                    )
                    continue
                logger.error("Error parsing structured LLM response from %s: %s", self.model_name, e)
                raise

        raise RuntimeError("Structured generation failed without a captured error")

    async def generate_text(
        self, system_prompt: str, user_prompt: str, *, temperature: float = 0.2
    ) -> str:
        """Single-turn plain text generation. Strips markdown fences if the model adds them."""
        text = await self.generate_chat(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=temperature,
        )
        return _strip_code_fences(text)

    async def generate_chat(self, messages: ChatMessages, *, temperature: float = 0.7) -> str:
        """
        Multi-turn completion over an already assembled message list.
        The second attempt runs at temperature 0 with a retry reminder appended to the system turn.
        """
        retry_messages = [dict(m) for m in messages]
        if retry_messages and retry_messages[0].get("role") == "system":
            retry_messages[0]["content"] = (
                f"{retry_messages[0]['content']}\n\n"
                "RETRY INSTRUCTIONS: Your previous reply was empty. Reply with the message text only."
            )
        attempts = [messages, retry_messages]

        for attempt_idx, attempt_messages in enumerate(attempts, start=1):
            try:
                logger.info(
                    "Issuing chat request to model %s (attempt %s/%s)...",
                    self.model_name,
                    attempt_idx,
                    len(attempts),
                )
                text_response = await self._complete(
                    attempt_messages,
                    temperature=0 if attempt_idx > 1 else temperature,
                )
                if not text_response:
                    raise ValueError("Model returned empty content")
                return text_response
            except ValueError as e:
                if attempt_idx < len(attempts):
                    logger.warning(
                        "Chat generation failed for %s on attempt %s/%s: %s. Retrying...",
                        self.model_name,
                        attempt_idx,
                        len(attempts),
                        e,
                    )
                    continue
                logger.error("Error generating chat response from %s: %s", self.model_name, e)
                raise

        raise RuntimeError("Chat generation failed without a captured error")
