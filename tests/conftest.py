"""
Shared fixtures and fakes for the Shortcut4AI tests.

The fakes stand in for the pieces that touch the desktop or the network so
the controller flows can run without a microphone, clipboard or API key.
"""

from pathlib import Path
from typing import List, Optional, Tuple
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

from shortcut4ai.config import Settings
from shortcut4ai.controller import InteractionController
from shortcut4ai.errors import NotRecordingError
from shortcut4ai.text.history import ConversationHistory
from shortcut4ai.ui.status import Cue, InteractionState, StatusSink


class RecordingSink(StatusSink):
    """Status sink that remembers everything it was told."""

    def __init__(self):
        self.states: List[InteractionState] = []
        self.flashes: List[Tuple[str, bool]] = []
        self.cues: List[Cue] = []

    def show(self, state: InteractionState) -> None:
        self.states.append(state)

    def flash(self, message: str, error: bool = False) -> None:
        self.flashes.append((message, error))

    def cue(self, cue: Cue) -> None:
        self.cues.append(cue)

    def messages(self) -> List[str]:
        return [message for message, _ in self.flashes]


class FakeRecorder:
    """In-memory recorder with the same session rules as ``Recorder``."""

    def __init__(self, artifact: Path):
        self.artifact = artifact
        self.recording = False
        self.start_error: Optional[Exception] = None
        self.on_cancel = None
        self.starts = 0
        self.stops = 0

    def is_recording(self) -> bool:
        return self.recording

    async def start(self, on_cancel=None):
        self.starts += 1
        if self.start_error is not None:
            raise self.start_error
        self.recording = True
        self.on_cancel = on_cancel

    async def stop(self) -> Path:
        if not self.recording:
            raise NotRecordingError()
        self.stops += 1
        self.recording = False
        return self.artifact

    async def cancel(self) -> None:
        self.recording = False


class FakeTranscriber:
    """Returns a fixed transcript (or raises) and honours the continuation."""

    def __init__(self, text: str = "hello world"):
        self.text = text
        self.error: Optional[Exception] = None
        self.calls: List[Path] = []

    async def transcribe(self, artifact_path, then=None):
        self.calls.append(artifact_path)
        if self.error is not None:
            raise self.error
        if then is not None:
            return await then(self.text)
        return self.text


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def settings(tmp_path):
    return Settings(tmp_path / "settings.json")


@pytest.fixture
def history(tmp_path):
    return ConversationHistory(tmp_path / "history.json", capacity=50)


@pytest.fixture
def recorder(tmp_path):
    return FakeRecorder(tmp_path / "audio" / "output.m4a")


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def processor():
    processor = Mock()
    processor.grammar_profile.return_value = "grammar-profile"
    processor.correct = AsyncMock(return_value="Fixed text.")
    processor.converse = AsyncMock(return_value="Assistant reply")
    return processor


@pytest.fixture
def clipboard():
    clipboard = Mock()
    clipboard.probe_selection = AsyncMock(return_value="selected text")
    clipboard.copy_selection = AsyncMock(return_value="clipboard text")
    clipboard.deliver = AsyncMock()
    return clipboard


@pytest_asyncio.fixture
async def controller(recorder, transcriber, processor, history, clipboard, sink, settings):
    controller = InteractionController(
        recorder=recorder,
        transcriber=transcriber,
        processor=processor,
        history=history,
        clipboard=clipboard,
        status=sink,
        settings=settings,
        revert_delay=60,
        settle_delay=0,
    )
    yield controller
    await controller.shutdown()
