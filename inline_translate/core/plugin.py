import logging
from typing import Callable, Optional, Protocol
from pydantic import BaseModel, ValidationError
from inline_translate.db import AutoTranslatePrefs, DataStore, PreferenceReadError
from inline_translate.settings import TRANSLATE_PROVIDER
from inline_translate.core.annotations import AnnotationStore
from inline_translate.core.languages import language_name
from inline_translate.core.models import (
    ChatMessage,
    OutgoingDraft,
    PipelineResult,
    TranslateSettings,
    TranslationResult,
)
from inline_translate.core.pipeline import HostSession, MessagePipeline
from inline_translate.core.tooltip import TooltipTimer
from inline_translate.core.translator import Translator

log = logging.getLogger(__name__)

PLUGIN_KEY = "inline-translate"
ACCESSORY_KEY = "inline-translation"
SETTINGS_KEY = "settings"


class ExtensionRegistry(Protocol):
    def add(self, key: str, callback: Callable) -> None: ...

    def remove(self, key: str) -> None: ...


class CallbackRegistry:
    """In-process extension point: a named set of callbacks."""

    def __init__(self):
        self.callbacks: dict[str, Callable] = {}

    def add(self, key: str, callback: Callable):
        self.callbacks[key] = callback

    def remove(self, key: str):
        self.callbacks.pop(key, None)

    def get(self, key: str) -> Optional[Callable]:
        return self.callbacks.get(key)

    def __contains__(self, key):
        return key in self.callbacks

    def __len__(self):
        return len(self.callbacks)


class HostRegistries:
    """The host's extension points the plugin installs itself into."""

    def __init__(
        self,
        chat_bar: ExtensionRegistry,
        popover: ExtensionRegistry,
        context_menu: ExtensionRegistry,
        accessories: ExtensionRegistry,
        pre_send: ExtensionRegistry,
    ):
        self.chat_bar = chat_bar
        self.popover = popover
        self.context_menu = context_menu
        self.accessories = accessories
        self.pre_send = pre_send


class Annotation(BaseModel):
    """What the accessory renderer shows under a message."""
    message_id: str
    text: str
    footer: str


def describe_translation(result: TranslationResult) -> str:
    return f"Translated from {language_name(result.source_language)}"


class TranslatePlugin:
    """Translate messages inline.

    `activate()` installs the chat-bar button, hover button, context-menu
    entry, message accessory and pre-send listener; `deactivate()` takes them
    all down again. Host events come in through `on_message_create`,
    `on_channel_select` and `on_pre_send`; failures on those paths are logged
    and dropped. Manual translations raise so the UI can report them.
    """

    name = "Translate"
    description = "Translate messages with Google Translate"

    def __init__(
        self,
        pipeline: MessagePipeline,
        registries: HostRegistries,
        datastore: DataStore,
        tooltip: Optional[TooltipTimer] = None,
    ):
        self.pipeline = pipeline
        self.registries = registries
        self.datastore = datastore
        self.tooltip = tooltip or TooltipTimer()
        self.pipeline.tooltip = self.tooltip
        self.active = False

    @classmethod
    def create(
        cls,
        http_session,
        datastore: DataStore,
        session: HostSession,
        registries: HostRegistries,
        settings: Optional[TranslateSettings] = None,
        provider: str = TRANSLATE_PROVIDER,
        openai_client=None,
        tooltip: Optional[TooltipTimer] = None,
    ) -> "TranslatePlugin":
        settings = settings or TranslateSettings()
        translator = Translator(http_session, settings, provider=provider, openai_client=openai_client)
        pipeline = MessagePipeline(
            translator=translator,
            prefs=AutoTranslatePrefs(datastore),
            annotations=AnnotationStore(),
            settings=settings,
            session=session,
        )
        return cls(pipeline, registries, datastore, tooltip=tooltip)

    @property
    def settings(self) -> TranslateSettings:
        return self.pipeline.settings

    @property
    def annotations(self) -> AnnotationStore:
        return self.pipeline.annotations

    @property
    def prefs(self) -> AutoTranslatePrefs:
        return self.pipeline.prefs

    # --- Lifecycle ---

    def activate(self):
        if self.active:
            return
        self.registries.accessories.add(ACCESSORY_KEY, self.render_accessory)
        self.registries.chat_bar.add(PLUGIN_KEY, self.toggle_auto_translate)
        self.registries.popover.add(PLUGIN_KEY, self.translate_message)
        self.registries.context_menu.add(PLUGIN_KEY, self.translate_message)
        self.registries.pre_send.add(PLUGIN_KEY, self.on_pre_send)
        self.active = True
        log.info(f"{self.name} plugin activated")

    def deactivate(self):
        if not self.active:
            return
        self.registries.pre_send.remove(PLUGIN_KEY)
        self.registries.chat_bar.remove(PLUGIN_KEY)
        self.registries.popover.remove(PLUGIN_KEY)
        self.registries.context_menu.remove(PLUGIN_KEY)
        self.registries.accessories.remove(ACCESSORY_KEY)
        self.tooltip.cancel()
        self.active = False
        log.info(f"{self.name} plugin deactivated")

    # --- Settings ---

    async def load_settings(self):
        """Overlay saved settings on the defaults. Unreadable settings keep the defaults."""
        try:
            saved = await self.datastore.get(SETTINGS_KEY)
        except PreferenceReadError as e:
            log.warning(f"Could not load translate settings: {e}")
            return
        if not isinstance(saved, dict):
            return
        try:
            loaded = TranslateSettings.model_validate({**self.settings.model_dump(), **saved})
        except ValidationError as e:
            log.warning(f"Ignoring invalid saved translate settings: {e}")
            return
        for field in TranslateSettings.model_fields:
            setattr(self.settings, field, getattr(loaded, field))

    async def save_settings(self):
        await self.datastore.set(SETTINGS_KEY, self.settings.model_dump())

    async def toggle_auto_translate(self) -> bool:
        """Chat-bar button: flip translate-on-send."""
        self.settings.auto_translate = not self.settings.auto_translate
        await self.save_settings()
        log.info(f"Translate on send {'enabled' if self.settings.auto_translate else 'disabled'}")
        return self.settings.auto_translate

    async def toggle_channel(self, channel_id) -> bool:
        """Flip auto-translate of received messages for one channel."""
        enabled = await self.prefs.toggle(channel_id)
        log.info(f"Auto-translate {'enabled' if enabled else 'disabled'} for channel {channel_id}")
        return enabled

    # --- Host events (automatic, fail-open) ---

    async def on_message_create(self, channel_id, message: ChatMessage) -> Optional[PipelineResult]:
        return await self._run_auto("MESSAGE_CREATE", self.pipeline.on_message_create(channel_id, message))

    async def on_channel_select(self, channel_id=None) -> Optional[PipelineResult]:
        return await self._run_auto("CHANNEL_SELECT", self.pipeline.on_channel_select(channel_id))

    async def on_pre_send(self, draft: OutgoingDraft) -> Optional[PipelineResult]:
        return await self._run_auto("pre-send", self.pipeline.on_pre_send(draft))

    async def _run_auto(self, event_name, coro) -> Optional[PipelineResult]:
        try:
            result = await coro
        except Exception as e:
            log.error(f"Error handling {event_name}: {e}")
            return None
        if result.status == "failed":
            log.warning(f"{event_name}: translation dropped after {result.translated} done: {result.error}")
        return result

    # --- Manual actions ---

    async def translate_message(self, message_id, text: str) -> TranslationResult:
        """Context menu and hover button. TranslationError reaches the caller."""
        return await self.pipeline.translate_message(message_id, text)

    def render_accessory(self, message_id) -> Optional[Annotation]:
        result = self.annotations.get(message_id)
        if result is None:
            return None
        return Annotation(message_id=str(message_id), text=result.text, footer=describe_translation(result))

    def dismiss(self, message_id):
        self.annotations.dismiss(message_id)
