from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
from inline_translate import settings

Direction = Literal["sent", "received"]


class TranslationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    source_language: str
    target_language: str


class TranslationResponse(BaseModel):
    """Structured output requested from the LLM backend."""
    translation: str
    source_language: str = Field(description="ISO 639-1 code of the detected source language")


class ChatMessage(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    channel_id: str
    author_id: str
    content: str = ""


class OutgoingDraft(BaseModel):
    """A message about to be sent. Pre-send listeners may rewrite `content`."""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    channel_id: str
    content: str = ""


class PipelineResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: Literal["translated", "skipped", "failed"]
    translated: int = 0
    reason: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.status != "failed"


class TranslateSettings(BaseModel):
    received_input: str = settings.RECEIVED_INPUT
    received_output: str = settings.RECEIVED_OUTPUT
    sent_input: str = settings.SENT_INPUT
    sent_output: str = settings.SENT_OUTPUT
    auto_translate: bool = settings.AUTO_TRANSLATE
    show_auto_translate_tooltip: bool = settings.SHOW_AUTO_TRANSLATE_TOOLTIP
    amount_to_auto_translate: int = Field(default=settings.AMOUNT_TO_AUTO_TRANSLATE, ge=0)

    def languages_for(self, direction: Direction) -> tuple[str, str]:
        if direction == "sent":
            return self.sent_input, self.sent_output
        return self.received_input, self.received_output
