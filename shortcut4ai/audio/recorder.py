"""
Audio recording through an external ffmpeg process.

The recorder owns the lifecycle of a single capture process writing an
AAC artifact to disk. Encoding is left entirely to ffmpeg; this module only
spawns, stops and cancels it.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Protocol, Tuple

from ..errors import AlreadyRecordingError, LaunchFailedError, NotRecordingError, RecorderError

logger = logging.getLogger(__name__)

CancelCallback = Callable[[], Awaitable[None]]


class CancelTrigger(Protocol):
    """A transient input binding that requests cancellation (e.g. Escape)."""

    def bind(self, callback: CancelCallback) -> None:
        ...

    def unbind(self) -> None:
        ...


@dataclass
class RecordingSession:
    """The active capture process and the artifact it is writing."""
    process: asyncio.subprocess.Process
    artifact_path: Path
    started_at: float

    @property
    def is_running(self) -> bool:
        return self.process.returncode is None


class Recorder:
    """
    Async recorder that drives ffmpeg and hands back the recorded file.

    At most one session is active at a time. While a session is active an
    optional cancellation trigger is bound; it is always unbound again by
    ``stop`` and ``cancel``.

    Args:
        artifact_path: File ffmpeg writes the recording to
        device: Input device identifier from the configuration
        ffmpeg_path: ffmpeg executable
        input_format: ffmpeg input format (avfoundation, pulse, dshow, ...)
        confirm_delay: Seconds to wait after launch before reporting success
        stop_timeout: Seconds to wait for ffmpeg to exit before killing it
        cancel_trigger: Binding that fires ``on_cancel`` while recording

    Example:
        >>> recorder = Recorder(Path("out.m4a"), device="0")
        >>> await recorder.start()
        >>> # ... user speaks ...
        >>> path = await recorder.stop()
    """

    def __init__(
        self,
        artifact_path: Path,
        device: str = "0",
        ffmpeg_path: str = "ffmpeg",
        input_format: str = "avfoundation",
        confirm_delay: float = 0.5,
        stop_timeout: float = 5.0,
        cancel_trigger: Optional[CancelTrigger] = None,
    ):
        self.artifact_path = Path(artifact_path)
        self.device = device
        self.ffmpeg_path = ffmpeg_path
        self.input_format = input_format
        self.confirm_delay = confirm_delay
        self.stop_timeout = stop_timeout
        self.cancel_trigger = cancel_trigger

        self._session: Optional[RecordingSession] = None

    @property
    def session(self) -> Optional[RecordingSession]:
        return self._session

    def is_recording(self) -> bool:
        return self._session is not None

    def input_device(self) -> str:
        """Device argument for ``-i``; avfoundation needs ``:N`` for audio-only."""
        if self.input_format == "avfoundation" and not self.device.startswith(":"):
            return f":{self.device}"
        return self.device

    def build_command(self) -> List[str]:
        return [
            self.ffmpeg_path,
            "-f", self.input_format,
            "-i", self.input_device(),
            "-c:a", "aac",
            str(self.artifact_path),
        ]

    async def start(self, on_cancel: Optional[CancelCallback] = None) -> RecordingSession:
        """
        Launch the capture process.

        Deletes any stale artifact first, then waits ``confirm_delay`` so the
        capture device has settled before the caller announces recording.

        Raises:
            AlreadyRecordingError: If a session is active (it is left untouched)
            LaunchFailedError: If ffmpeg cannot be spawned or exits immediately
        """
        if self._session is not None:
            raise AlreadyRecordingError()

        self._remove_artifact()
        self.artifact_path.parent.mkdir(parents=True, exist_ok=True)

        command = self.build_command()
        logger.debug(f"Launching capture process: {command}")
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.error(f"Failed to launch {self.ffmpeg_path}: {e}")
            raise LaunchFailedError(f"Failed to start recording: {e}") from e

        self._session = RecordingSession(process, self.artifact_path, time.time())
        if self.cancel_trigger is not None and on_cancel is not None:
            self.cancel_trigger.bind(on_cancel)

        if self.confirm_delay > 0:
            await asyncio.sleep(self.confirm_delay)

        # The caller may have cancelled during the delay
        if self._session is None:
            raise LaunchFailedError("Recording was cancelled while starting")
        if not self._session.is_running:
            code = process.returncode
            await self.cancel()
            raise LaunchFailedError(f"Failed to start recording (ffmpeg exited with code {code})")

        logger.info(f"Recording started: {self.input_format} device {self.input_device()} -> {self.artifact_path}")
        return self._session

    async def stop(self) -> Path:
        """
        Stop the capture process and return the artifact path.

        The artifact is not deleted; it is replaced on the next ``start``.

        Raises:
            NotRecordingError: If no session is active
            RecorderError: If the process could not be stopped
        """
        self._unbind_cancel_trigger()
        session = self._session
        if session is None:
            raise NotRecordingError()

        self._session = None
        try:
            await self._terminate(session.process)
        except OSError as e:
            raise RecorderError(f"Failed to stop recording: {e}") from e

        duration = time.time() - session.started_at
        logger.info(f"Recording stopped after {duration:.1f}s: {session.artifact_path}")
        return session.artifact_path

    async def cancel(self) -> None:
        """Terminate any running capture and delete the partial artifact. Idempotent."""
        self._unbind_cancel_trigger()
        session = self._session
        self._session = None
        if session is not None:
            try:
                await self._terminate(session.process)
            except OSError as e:
                logger.warning(f"Error terminating capture process: {e}")
            logger.info("Recording cancelled")
        self._remove_artifact()

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        # ffmpeg finalizes the container on SIGTERM
        process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=self.stop_timeout)
        except asyncio.TimeoutError:
            logger.warning("Capture process did not exit in time, killing it")
            process.kill()
            await process.wait()

    def _unbind_cancel_trigger(self) -> None:
        if self.cancel_trigger is None:
            return
        try:
            self.cancel_trigger.unbind()
        except Exception as e:
            logger.warning(f"Error unbinding cancel trigger: {e}")

    def _remove_artifact(self) -> None:
        try:
            self.artifact_path.unlink()
        except FileNotFoundError:
            pass


_DEVICE_LINE = re.compile(r"\[(\d+)\]\s*(.+)$")


async def list_input_devices(ffmpeg_path: str = "ffmpeg") -> List[Tuple[int, str]]:
    """
    List avfoundation audio input devices as ``(index, name)`` pairs.

    ffmpeg prints the device list to stderr and exits non-zero because no
    input is opened; only the "AVFoundation audio devices" section is parsed.

    Raises:
        RecorderError: If ffmpeg cannot be run
    """
    try:
        process = await asyncio.create_subprocess_exec(
            ffmpeg_path, "-f", "avfoundation", "-list_devices", "true", "-i", "",
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise RecorderError(f"Could not run {ffmpeg_path}: {e}") from e

    _, stderr = await process.communicate()
    return parse_device_list(stderr.decode("utf-8", errors="replace"))


def parse_device_list(output: str) -> List[Tuple[int, str]]:
    devices = []
    in_audio_section = False
    for line in output.splitlines():
        if "AVFoundation audio devices" in line:
            in_audio_section = True
            continue
        if not in_audio_section:
            continue
        if "AVFoundation" in line and "devices" in line:
            break
        match = _DEVICE_LINE.search(line)
        if match:
            devices.append((int(match.group(1)), match.group(2).strip()))
    return devices
