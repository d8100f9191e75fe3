"""
Tests for the ffmpeg recorder and the Groq transcriber.

The recorder lifecycle runs against a real child process: a small Python
script that writes the artifact and then idles like ffmpeg does until it
is terminated.
"""

import asyncio
import sys
from pathlib import Path
from unittest.mock import Mock

import httpx
import openai
import pytest

from shortcut4ai.audio.recorder import Recorder, parse_device_list
from shortcut4ai.audio.transcriber import GroqTranscriber
from shortcut4ai.errors import (
    AlreadyRecordingError,
    EmptyResultError,
    LaunchFailedError,
    NotRecordingError,
    ServiceError,
)

STAND_IN = (
    "import sys, time\n"
    "with open(sys.argv[1], 'wb') as f:\n"
    "    f.write(b'fake audio')\n"
    "time.sleep(60)\n"
)


class StandInRecorder(Recorder):
    """Recorder that launches a Python stand-in instead of ffmpeg."""

    def __init__(self, artifact_path, script=STAND_IN, confirm_delay=0.2, **kwargs):
        super().__init__(artifact_path, confirm_delay=confirm_delay, **kwargs)
        self.script = script

    def build_command(self):
        return [sys.executable, "-c", self.script, str(self.artifact_path)]


class FakeTrigger:

    def __init__(self):
        self.callback = None
        self.unbinds = 0

    def bind(self, callback):
        self.callback = callback

    def unbind(self):
        self.callback = None
        self.unbinds += 1


async def wait_for_file(path: Path, attempts: int = 100):
    for _ in range(attempts):
        if path.exists() and path.stat().st_size > 0:
            return
        await asyncio.sleep(0.05)
    raise AssertionError(f"{path} was never written")


class TestRecorderCommand:
    """ffmpeg invocation."""

    def test_avfoundation_command(self, tmp_path):
        recorder = Recorder(tmp_path / "out.m4a", device="1", ffmpeg_path="/opt/ffmpeg")

        assert recorder.build_command() == [
            "/opt/ffmpeg", "-f", "avfoundation", "-i", ":1", "-c:a", "aac", str(tmp_path / "out.m4a")
        ]

    def test_other_input_formats_keep_device(self, tmp_path):
        recorder = Recorder(tmp_path / "out.m4a", device="default", input_format="pulse")
        assert recorder.input_device() == "default"


class TestRecorderLifecycle:
    """Start, stop and cancel against a real child process."""

    @pytest.mark.asyncio
    async def test_start_then_stop_keeps_artifact(self, tmp_path):
        artifact = tmp_path / "audio" / "output.m4a"
        recorder = StandInRecorder(artifact)

        session = await recorder.start()
        assert recorder.is_recording()
        assert session.is_running
        await wait_for_file(artifact)

        path = await recorder.stop()

        assert path == artifact
        assert artifact.exists()
        assert not recorder.is_recording()
        assert session.process.returncode is not None

    @pytest.mark.asyncio
    async def test_start_while_recording_fails(self, tmp_path):
        recorder = StandInRecorder(tmp_path / "out.m4a")
        session = await recorder.start()

        with pytest.raises(AlreadyRecordingError):
            await recorder.start()

        assert recorder.session is session
        assert session.is_running
        await recorder.cancel()

    @pytest.mark.asyncio
    async def test_stop_without_session_fails(self, tmp_path):
        recorder = Recorder(tmp_path / "out.m4a")

        with pytest.raises(NotRecordingError):
            await recorder.stop()

    @pytest.mark.asyncio
    async def test_cancel_removes_artifact(self, tmp_path):
        artifact = tmp_path / "out.m4a"
        recorder = StandInRecorder(artifact)
        await recorder.start()
        await wait_for_file(artifact)

        await recorder.cancel()

        assert not recorder.is_recording()
        assert not artifact.exists()

    @pytest.mark.asyncio
    async def test_cancel_without_session_is_noop(self, tmp_path):
        recorder = Recorder(tmp_path / "out.m4a")
        await recorder.cancel()
        await recorder.cancel()
        assert not recorder.is_recording()

    @pytest.mark.asyncio
    async def test_start_removes_stale_artifact(self, tmp_path):
        artifact = tmp_path / "out.m4a"
        artifact.write_bytes(b"old recording")
        recorder = StandInRecorder(artifact, script="import time; time.sleep(60)")

        await recorder.start()

        assert not artifact.exists()
        await recorder.cancel()

    @pytest.mark.asyncio
    async def test_missing_executable_fails_to_launch(self, tmp_path):
        recorder = Recorder(tmp_path / "out.m4a", ffmpeg_path=str(tmp_path / "no-ffmpeg"), confirm_delay=0)

        with pytest.raises(LaunchFailedError):
            await recorder.start()
        assert not recorder.is_recording()

    @pytest.mark.asyncio
    async def test_immediate_exit_fails_to_launch(self, tmp_path):
        recorder = StandInRecorder(tmp_path / "out.m4a", script="import sys; sys.exit(1)", confirm_delay=1.0)

        with pytest.raises(LaunchFailedError):
            await recorder.start()
        assert not recorder.is_recording()

    @pytest.mark.asyncio
    async def test_cancel_trigger_bound_only_while_recording(self, tmp_path):
        trigger = FakeTrigger()
        recorder = StandInRecorder(tmp_path / "out.m4a", cancel_trigger=trigger)

        async def on_cancel():
            pass

        await recorder.start(on_cancel=on_cancel)
        assert trigger.callback is on_cancel

        await recorder.stop()
        assert trigger.callback is None
        assert trigger.unbinds >= 1


class TestDeviceList:
    """Parsing ``ffmpeg -list_devices`` output."""

    def test_parses_audio_section_only(self):
        output = (
            "[AVFoundation indev @ 0x7f] AVFoundation video devices:\n"
            "[AVFoundation indev @ 0x7f] [0] FaceTime HD Camera\n"
            "[AVFoundation indev @ 0x7f] [1] Capture screen 0\n"
            "[AVFoundation indev @ 0x7f] AVFoundation audio devices:\n"
            "[AVFoundation indev @ 0x7f] [0] MacBook Pro Microphone\n"
            "[AVFoundation indev @ 0x7f] [1] External USB Mic\n"
            ": Input/output error\n"
        )

        assert parse_device_list(output) == [(0, "MacBook Pro Microphone"), (1, "External USB Mic")]

    def test_no_audio_section(self):
        assert parse_device_list("ffmpeg version 6.0\n") == []


class TestGroqTranscriber:
    """Remote transcription."""

    @pytest.fixture
    def artifact(self, tmp_path):
        path = tmp_path / "output.m4a"
        path.write_bytes(b"fake audio")
        return path

    @pytest.mark.asyncio
    async def test_returns_stripped_text(self, artifact):
        client = Mock()
        client.audio.transcriptions.create.return_value = {"text": "  hello world "}
        transcriber = GroqTranscriber(client=client)

        assert await transcriber.transcribe(artifact) == "hello world"
        kwargs = client.audio.transcriptions.create.call_args.kwargs
        assert kwargs["model"] == "whisper-large-v3-turbo"
        assert kwargs["temperature"] == 0
        assert kwargs["response_format"] == "json"
        assert kwargs["language"] == "en"

    @pytest.mark.asyncio
    async def test_accepts_sdk_objects(self, artifact):
        client = Mock()
        client.audio.transcriptions.create.return_value = Mock(text="hello")
        transcriber = GroqTranscriber(client=client)

        assert await transcriber.transcribe(artifact) == "hello"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [{"text": ""}, {"text": "   "}, {}])
    async def test_empty_text_is_empty_result(self, artifact, response):
        client = Mock()
        client.audio.transcriptions.create.return_value = response
        transcriber = GroqTranscriber(client=client)

        with pytest.raises(EmptyResultError):
            await transcriber.transcribe(artifact)

    @pytest.mark.asyncio
    async def test_non_string_text_is_malformed(self, artifact):
        client = Mock()
        client.audio.transcriptions.create.return_value = {"text": 42}
        transcriber = GroqTranscriber(client=client)

        with pytest.raises(ServiceError, match="Malformed"):
            await transcriber.transcribe(artifact)

    @pytest.mark.asyncio
    async def test_continuation_receives_transcript(self, artifact):
        client = Mock()
        client.audio.transcriptions.create.return_value = {"text": "hello"}
        transcriber = GroqTranscriber(client=client)

        async def shout(text):
            return text.upper()

        assert await transcriber.transcribe(artifact, then=shout) == "HELLO"

    @pytest.mark.asyncio
    async def test_http_status_is_service_error(self, artifact):
        request = httpx.Request("POST", "https://api.groq.com/openai/v1/audio/transcriptions")
        client = Mock()
        client.audio.transcriptions.create.side_effect = openai.AuthenticationError(
            "bad key", response=httpx.Response(401, request=request), body=None
        )
        transcriber = GroqTranscriber(client=client)

        with pytest.raises(ServiceError, match="HTTP 401"):
            await transcriber.transcribe(artifact)

    @pytest.mark.asyncio
    async def test_connection_error_is_service_error(self, artifact):
        request = httpx.Request("POST", "https://api.groq.com/openai/v1/audio/transcriptions")
        client = Mock()
        client.audio.transcriptions.create.side_effect = openai.APIConnectionError(request=request)
        transcriber = GroqTranscriber(client=client)

        with pytest.raises(ServiceError):
            await transcriber.transcribe(artifact)

    @pytest.mark.asyncio
    async def test_missing_file_is_service_error(self, tmp_path):
        transcriber = GroqTranscriber(client=Mock())

        with pytest.raises(ServiceError, match="not found"):
            await transcriber.transcribe(tmp_path / "missing.m4a")

    def test_availability_follows_api_key(self, monkeypatch):
        monkeypatch.delenv("GROQ_API_KEY", raising=False)
        assert not GroqTranscriber().is_available()
        monkeypatch.setenv("GROQ_API_KEY", "gsk_test")
        assert GroqTranscriber().is_available()
