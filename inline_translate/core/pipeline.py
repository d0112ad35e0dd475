from typing import Optional, Protocol
from inline_translate.db import AutoTranslatePrefs
from inline_translate.core.annotations import AnnotationStore
from inline_translate.core.models import (
    ChatMessage,
    OutgoingDraft,
    PipelineResult,
    TranslateSettings,
    TranslationResult,
)
from inline_translate.core.tooltip import TooltipTimer
from inline_translate.core.translator import TranslationError, Translator


class HostSession(Protocol):
    """What the pipeline needs to know about the running chat client."""

    def current_user_id(self) -> Optional[str]: ...

    def current_channel_id(self) -> Optional[str]: ...

    async def channel_history(self, channel_id: str, limit: int) -> list[ChatMessage]:
        """Most recent messages of a channel, newest first."""
        ...


def _skipped(reason: str) -> PipelineResult:
    return PipelineResult(status="skipped", reason=reason)


class MessagePipeline:
    """Decides when to translate chat messages and where the result goes.

    The automatic entry points (`on_pre_send`, `on_message_create`,
    `on_channel_select`) never raise TranslationError; they report it in the
    returned PipelineResult. `translate_message` is the manual path and lets
    the error through to its caller.
    """

    def __init__(
        self,
        translator: Translator,
        prefs: AutoTranslatePrefs,
        annotations: AnnotationStore,
        settings: TranslateSettings,
        session: HostSession,
        tooltip: Optional[TooltipTimer] = None,
    ):
        self.translator = translator
        self.prefs = prefs
        self.annotations = annotations
        self.settings = settings
        self.session = session
        self.tooltip = tooltip

    async def on_pre_send(self, draft: OutgoingDraft) -> PipelineResult:
        """Translate an outgoing draft in place when translate-on-send is on."""
        if not self.settings.auto_translate:
            return _skipped("translate on send is off")
        if not draft.content:
            return _skipped("draft has no text")

        if self.tooltip is not None and self.settings.show_auto_translate_tooltip:
            self.tooltip.show()

        try:
            result = await self.translator.translate("sent", draft.content)
        except TranslationError as e:
            # Draft goes out untranslated
            return PipelineResult(status="failed", error=e)

        draft.content = result.text
        return PipelineResult(status="translated", translated=1)

    async def on_message_create(self, channel_id, message: ChatMessage) -> PipelineResult:
        current_channel = self.session.current_channel_id()
        if current_channel is None or str(channel_id) != str(current_channel):
            return _skipped("not the active channel")
        if message.author_id == str(self.session.current_user_id()):
            return _skipped("own message")
        if not message.content:
            return _skipped("message has no text")
        if not await self.prefs.get(current_channel):
            return _skipped("auto-translate is off for this channel")

        try:
            result = await self.translator.translate("received", message.content)
        except TranslationError as e:
            return PipelineResult(status="failed", error=e)

        self.annotations.attach(message.id, result)
        return PipelineResult(status="translated", translated=1)

    async def on_channel_select(self, channel_id=None) -> PipelineResult:
        """Backfill translations for the newest messages of the selected channel.

        Requests go out one at a time, newest first, and each annotation is
        attached as soon as it arrives. The first failure ends the backfill;
        annotations already attached stay. Messages without text use up their
        slot without a request.
        """
        if channel_id is None:
            channel_id = self.session.current_channel_id()
        if channel_id is None:
            return _skipped("no active channel")
        if not await self.prefs.get(channel_id):
            return _skipped("auto-translate is off for this channel")

        limit = self.settings.amount_to_auto_translate
        if limit <= 0:
            return _skipped("backfill disabled")

        messages = await self.session.channel_history(str(channel_id), limit)

        translated = 0
        for message in messages[:limit]:
            if not message.content:
                continue
            try:
                result = await self.translator.translate("received", message.content)
            except TranslationError as e:
                return PipelineResult(status="failed", translated=translated, error=e)
            self.annotations.attach(message.id, result)
            translated += 1

        if not translated:
            return _skipped("nothing to translate")
        return PipelineResult(status="translated", translated=translated)

    async def translate_message(self, message_id, text: str) -> TranslationResult:
        """Manual translate from a menu or button. Raises TranslationError."""
        result = await self.translator.translate("received", text)
        self.annotations.attach(message_id, result)
        return result
