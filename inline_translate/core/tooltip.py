import asyncio
from typing import Callable, Optional
from inline_translate.settings import TOOLTIP_SECONDS


class TooltipTimer:
    """Debounced "auto translate enabled" indicator.

    `show()` turns the indicator on and (re)starts the hide timer, so a burst of
    sends keeps it visible until `delay` seconds after the last one.
    """

    def __init__(self, on_change: Optional[Callable[[bool], None]] = None, delay: float = TOOLTIP_SECONDS):
        self.on_change = on_change
        self.delay = delay
        self.visible = False
        self._handle: Optional[asyncio.TimerHandle] = None

    def show(self):
        self.cancel()
        self._set_visible(True)
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self.hide)

    def hide(self):
        self._handle = None
        self._set_visible(False)

    def cancel(self):
        """Drop a pending hide without changing visibility."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _set_visible(self, visible: bool):
        if visible == self.visible:
            return
        self.visible = visible
        if self.on_change:
            self.on_change(visible)
