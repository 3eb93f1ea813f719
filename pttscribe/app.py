"""Push-to-talk keyboard host for the recording pipeline."""

from __future__ import annotations

import logging
import signal
import threading
import time
from typing import TYPE_CHECKING

from pttscribe.capture import list_input_devices
from pttscribe.config import Config
from pttscribe.errors import EmptyRecordingError, SessionBusyError
from pttscribe.pipeline import RecordingPipeline

if TYPE_CHECKING:
    from pttscribe.types import StatusPayload

logger = logging.getLogger(__name__)

STATUS_LINES = {
    "recording": "🎙️ Recording...",
    "transcribing": "🛑 Stopped. Transcribing...",
    "idle": "🟢 Ready.",
}


class DictationApp:
    """
    Push-to-Talk Dictation Application.

    Records while a key is held, transcribes on release, and hands the text
    to the configured output.
    """

    def __init__(
        self,
        config: Config | None = None,
        pipeline: RecordingPipeline | None = None,
    ) -> None:
        self._config = config or Config()
        self._pipeline = pipeline
        self._shutdown_once = threading.Event()

    @property
    def pipeline(self) -> RecordingPipeline:
        if self._pipeline is None:
            raise RuntimeError("App not initialized. Call setup() first.")
        return self._pipeline

    def setup(self) -> None:
        """Initialize all components."""
        self._print_banner()
        self._print_devices()

        if self._pipeline is None:
            self._pipeline = RecordingPipeline(self._config)
        self._pipeline.subscribe(self._on_status)
        self._pipeline.on_error(self._on_error)

        print(f"\n📦 Loading model '{self._config.model.model}'...")
        try:
            self._pipeline.preload()
        except Exception as e:
            logger.error("Model preload failed: %s", e)
            print(f"   ⚠️ Model not loaded yet: {e}")

        self._print_instructions()

    def _print_banner(self) -> None:
        print("=" * 60)
        print("🎙️ PTTSCRIBE - Push-to-Talk Transcription")
        print("=" * 60)

    def _print_devices(self) -> None:
        print("\n🎤 Available audio input devices:")
        print("-" * 50)
        try:
            for device in list_input_devices():
                print(f"  {device}")
        except Exception as e:
            logger.warning("Could not list input devices: %s", e)
        print("-" * 50)
        print(f"\n🔊 Output mode: {self._config.output_mode.value}")

    def _print_instructions(self) -> None:
        print("\n" + "=" * 60)
        print("📌 INSTRUCTIONS:")
        print("   • Hold Right Alt / Option to talk. Release to transcribe.")
        print("   • Press Ctrl+Esc to quit cleanly. Ctrl+C also works.")
        print("=" * 60)
        print("\n🟢 Ready! Hold the key to start dictating...\n")

    def _on_status(self, payload: "StatusPayload") -> None:
        line = STATUS_LINES.get(payload["status"])
        if line:
            print(line)

    def _on_error(self, error: Exception) -> None:
        if isinstance(error, EmptyRecordingError):
            print("⛔️ Nothing recorded")
        else:
            print(f"❌ {error}")

    def start_recording(self) -> None:
        try:
            self.pipeline.begin()
        except SessionBusyError:
            logger.debug("Key press ignored, pipeline busy")

    def stop_recording(self) -> None:
        self.pipeline.cancel()

    def shutdown(self) -> None:
        """Shutdown the application gracefully."""
        if self._shutdown_once.is_set():
            return
        self._shutdown_once.set()
        logger.info("Shutting down...")
        if self._pipeline is not None:
            self._pipeline.shutdown()

    def run(self) -> None:
        """Run the application with keyboard listener."""
        from pynput import keyboard

        self.setup()

        ptt_key = keyboard.Key.alt_r
        quit_key = keyboard.Key.esc
        quit_modifier = keyboard.Key.ctrl
        ctrl_down = False
        ptt_down = False

        def on_press(key: keyboard.Key | keyboard.KeyCode | None) -> None:
            nonlocal ctrl_down, ptt_down

            if key == quit_modifier:
                ctrl_down = True
                return

            # Key repeat delivers extra presses while held
            if key == ptt_key and not ptt_down:
                ptt_down = True
                self.start_recording()

        def on_release(key: keyboard.Key | keyboard.KeyCode | None) -> bool | None:
            nonlocal ctrl_down, ptt_down

            if key == quit_modifier:
                ctrl_down = False
                return None

            if key == quit_key and ctrl_down:
                print("\n👋 Quitting...")
                self.shutdown()
                return False

            if key == ptt_key:
                ptt_down = False
                time.sleep(0.05)  # Small delay for cleaner cutoff
                self.stop_recording()

            return None

        def handle_sigint(sig: int, frame: object) -> None:
            self.shutdown()
            raise SystemExit(0)

        signal.signal(signal.SIGINT, handle_sigint)

        with keyboard.Listener(on_press=on_press, on_release=on_release) as listener:
            listener.join()

        self.shutdown()
