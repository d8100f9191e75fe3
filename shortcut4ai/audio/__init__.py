"""Audio capture and transcription."""

from .recorder import Recorder, RecordingSession, list_input_devices
from .transcriber import GroqTranscriber

__all__ = ["Recorder", "RecordingSession", "list_input_devices", "GroqTranscriber"]
