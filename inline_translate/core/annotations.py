import logging
from typing import Callable, Optional
from inline_translate.core.models import TranslationResult

log = logging.getLogger(__name__)

AnnotationListener = Callable[[str, Optional[TranslationResult]], None]


class AnnotationStore:
    """Translations currently displayed under messages, keyed by message id.

    Writes are last-write-wins. Listeners are called with (message_id, result),
    and with result=None when an annotation is dismissed.
    """

    def __init__(self):
        self._annotations: dict[str, TranslationResult] = {}
        self._listeners: list[AnnotationListener] = []

    def subscribe(self, listener: AnnotationListener):
        self._listeners.append(listener)

    def unsubscribe(self, listener: AnnotationListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def attach(self, message_id, result: TranslationResult):
        message_id = str(message_id)
        self._annotations[message_id] = result
        self._notify(message_id, result)

    def dismiss(self, message_id):
        message_id = str(message_id)
        if self._annotations.pop(message_id, None) is not None:
            self._notify(message_id, None)

    def get(self, message_id) -> Optional[TranslationResult]:
        return self._annotations.get(str(message_id))

    def __contains__(self, message_id):
        return str(message_id) in self._annotations

    def __len__(self):
        return len(self._annotations)

    def _notify(self, message_id, result):
        for listener in list(self._listeners):
            try:
                listener(message_id, result)
            except Exception as e:
                # Renderer errors stay with the renderer
                log.error(f"Annotation listener failed for message {message_id}: {e}")
