import asyncio
import logging
import aiohttp
from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError
from yarl import URL
from inline_translate.settings import (
    GOOGLE_TRANSLATE_URL,
    OPENAI_API_KEY_OPENROUTER,
    OPENROUTER_BASE_URL,
    TRANSLATE_PROVIDER,
    TRANSLATION_AI_MODEL,
)
from inline_translate.core.languages import language_name
from inline_translate.core.models import (
    Direction,
    TranslateSettings,
    TranslationResponse,
    TranslationResult,
)

log = logging.getLogger(__name__)

PROVIDERS = ("google", "openrouter")


class TranslationError(Exception):
    """A translation request failed at the network or provider level."""

    def __init__(self, direction: Direction, message: str):
        super().__init__(message)
        self.direction = direction


class Translator:
    """Direction-aware translation client. One request per call, no retries."""

    def __init__(self, http_session, settings: TranslateSettings, provider=TRANSLATE_PROVIDER, openai_client=None):
        if provider not in PROVIDERS:
            raise ValueError(f"Unknown translation provider {provider!r}, expected one of {PROVIDERS}")
        self.http_session = http_session
        self.settings = settings
        self.provider = provider
        if provider == "openrouter" and openai_client is None:
            openai_client = AsyncOpenAI(
                api_key=OPENAI_API_KEY_OPENROUTER, base_url=OPENROUTER_BASE_URL
            )
        self.openai_client_openrouter = openai_client

    async def translate(self, direction: Direction, text: str) -> TranslationResult:
        source, target = self.settings.languages_for(direction)
        log.debug(f"Translating {direction} message {source} -> {target} via {self.provider}")
        if self.provider == "openrouter":
            return await self._translate_openrouter(direction, text, source, target)
        return await self._translate_google(direction, text, source, target)

    async def _translate_google(self, direction, text, source, target):
        url = URL(GOOGLE_TRANSLATE_URL).with_query({
            "client": "gtx",
            "sl": source,
            "tl": target,
            "dt": "t",
            # JSON object instead of nested arrays
            "dj": "1",
            "source": "input",
            "q": text,
        })
        try:
            async with self.http_session.get(url) as resp:
                if resp.status != 200:
                    raise TranslationError(
                        direction,
                        f'Failed to translate "{text}" ({source} -> {target}): {resp.status} {resp.reason}',
                    )
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise TranslationError(direction, f"Translation request failed: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("sentences"), list):
            raise TranslationError(direction, f"Unexpected translation payload: {data!r:.200}")

        translated = "".join(
            s["trans"] for s in data["sentences"] if isinstance(s, dict) and s.get("trans")
        )
        return TranslationResult(
            text=translated,
            source_language=data.get("src") or source,
            target_language=target,
        )

    async def _translate_openrouter(self, direction, text, source, target):
        source_desc = "the auto-detected source language" if source == "auto" else language_name(source)
        try:
            completion = await self.openai_client_openrouter.chat.completions.parse(
                model=TRANSLATION_AI_MODEL,
                messages=[
                    {
                        "role": "system",
                        "content": (
                            f"Translate the chat message from {source_desc} to {language_name(target)}. "
                            "If the message is already in the target language, return it unchanged. "
                            "Keep mentions, emoji, URLs and markdown as they are. "
                            "Report the ISO 639-1 code of the language the message was written in."
                        ),
                    },
                    {"role": "user", "content": f"### MESSAGE TO TRANSLATE:\n{text}"},
                ],
                response_format=TranslationResponse,
            )
        except (OpenAIError, ValidationError) as e:
            raise TranslationError(direction, f"Translation request failed: {e}") from e

        parsed = completion.choices[0].message.parsed
        if parsed is None:
            raise TranslationError(direction, "Translation model returned no result")
        return TranslationResult(
            text=parsed.translation,
            source_language=parsed.source_language,
            target_language=target,
        )
