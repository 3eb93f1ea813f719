"""
pttscribe.errors - Exception taxonomy for the recording pipeline.

All pttscribe exceptions inherit from PttScribeError. Capture-stage and
transcription-stage failures end the current attempt only; the pipeline
returns to idle and the caller decides whether to retry.
"""


class PttScribeError(Exception):
    """Base exception for all pttscribe errors."""

    pass


class CaptureError(PttScribeError):
    """Audio capture could not be started."""

    pass


class DeviceUnavailable(CaptureError):
    """No usable input device exists."""

    pass


class StreamConfigError(CaptureError):
    """The input device declined the requested stream."""

    pass


class ContainerCreateError(CaptureError):
    """The durable recording container could not be created."""

    pass


class EmptyRecordingError(PttScribeError):
    """The finalized recording is missing or holds no samples."""

    pass


class TranscriptionError(PttScribeError):
    """Base class for resample and inference failures."""

    pass


class ResampleError(TranscriptionError):
    """Sample-rate or channel conversion failed."""

    pass


class ModelLoadError(TranscriptionError):
    """The model artifact is missing or could not be loaded."""

    pass


class InferenceError(TranscriptionError):
    """Speech-to-text inference failed."""

    pass


class SessionBusyError(PttScribeError):
    """A recording is already in flight."""

    pass


class PipelineError(PttScribeError):
    """Unexpected failure inside a recording attempt."""

    def __init__(self, stage: str, cause: BaseException):
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage}: {cause}")
