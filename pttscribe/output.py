"""Delivery of finished transcripts to the clipboard or the focused window."""

from __future__ import annotations

import logging
import sys
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import pyperclip

if TYPE_CHECKING:
    from pttscribe.config import OutputMode

logger = logging.getLogger(__name__)

# Gives the focused window time to settle after the hotkey is released
KEYSTROKE_SETTLE_S = 0.05


class OutputHandler(ABC):
    """Receives the text of each completed transcription."""

    @abstractmethod
    def deliver(self, text: str) -> None:
        ...


class NullOutput(OutputHandler):
    """Keeps the transcript to the app; nothing leaves the process."""

    def deliver(self, text: str) -> None:
        logger.debug("Output disabled, dropping %d characters", len(text))


class ClipboardOutput(OutputHandler):
    def deliver(self, text: str) -> None:
        pyperclip.copy(text)
        logger.debug("Copied %d characters to clipboard", len(text))


class KeystrokeOutput(OutputHandler):
    """
    Base for handlers that drive the keyboard with pynput.

    The pynput controller is created lazily so that importing this module
    never needs a display or accessibility permission.
    """

    def __init__(self, controller: Any = None) -> None:
        if controller is None:
            from pynput.keyboard import Controller

            controller = Controller()
        self._controller = controller

    def _settle(self) -> None:
        time.sleep(KEYSTROKE_SETTLE_S)


class KeyboardOutput(KeystrokeOutput):
    """Types the transcript character by character into the focused window."""

    def deliver(self, text: str) -> None:
        self._settle()
        self._controller.type(text)


class PasteOutput(KeystrokeOutput):
    """
    Puts the transcript on the clipboard, then sends the platform paste shortcut.

    A clipboard failure aborts before any keystroke, so stale clipboard
    contents are never pasted.
    """

    def __init__(
        self,
        clipboard: OutputHandler,
        controller: Any = None,
        modifier: Any = None,
    ) -> None:
        super().__init__(controller)
        if modifier is None:
            from pynput.keyboard import Key

            modifier = Key.cmd if sys.platform == "darwin" else Key.ctrl
        self._clipboard = clipboard
        self._modifier = modifier

    def deliver(self, text: str) -> None:
        self._clipboard.deliver(text)
        self._settle()
        with self._controller.pressed(self._modifier):
            self._controller.tap("v")


class CompositeOutput(OutputHandler):
    """Runs every handler, then re-raises the first failure."""

    def __init__(self, *handlers: OutputHandler) -> None:
        self._handlers = handlers

    def deliver(self, text: str) -> None:
        first_error: Exception | None = None
        for handler in self._handlers:
            try:
                handler.deliver(text)
            except Exception as e:
                logger.error("Output handler %s failed: %s", type(handler).__name__, e)
                first_error = first_error or e
        if first_error is not None:
            raise first_error


def create_output_handler(mode: "OutputMode") -> OutputHandler:
    """
    Build the handler for ``mode``.

    ``type`` also fills the clipboard so the text survives a window that
    rejects synthetic keystrokes.
    """
    from pttscribe.config import OutputMode

    if mode is OutputMode.NONE:
        return NullOutput()

    clipboard = ClipboardOutput()
    if mode is OutputMode.CLIPBOARD:
        return clipboard
    if mode is OutputMode.PASTE:
        return PasteOutput(clipboard)
    return CompositeOutput(clipboard, KeyboardOutput())
