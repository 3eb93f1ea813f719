"""
pttscribe - Push-to-Talk Recording and Transcription

Captures microphone audio while a key is held, resamples it to 16 kHz mono,
and transcribes it locally with Whisper.
"""

__version__ = "1.0.0"

from pttscribe.config import Config
from pttscribe.pipeline import RecordingPipeline

__all__ = ["Config", "RecordingPipeline", "__version__"]
