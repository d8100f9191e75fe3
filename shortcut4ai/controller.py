"""
Interaction state machine behind the hotkeys.

Coordinates the recorder, transcriber, text processor and conversation
history for the grammar-fix, transcription and assistant actions, and
reports every phase to a status sink.

States: IDLE -> RECORDING -> PROCESSING -> DONE | ERROR -> IDLE. DONE and
ERROR are display states that fall back to IDLE after ``revert_delay``.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Optional

from .audio.recorder import Recorder
from .audio.transcriber import GroqTranscriber
from .config import AUTO_GRAMMAR_KEY, CONDENSED_MODE_KEY, Settings
from .desktop.clipboard import Clipboard
from .errors import (
    BusyError,
    NoClipboardContentError,
    NoSelectionError,
    RecorderError,
    ServiceError,
    Shortcut4AIError,
)
from .text.history import ConversationHistory
from .text.processor import TextProcessor
from .ui.status import Cue, InteractionState, StatusSink

logger = logging.getLogger(__name__)


class InteractionController:
    """
    Owns the single recording slot and the interaction state.

    All entry points are coroutines meant to run on one event loop. An
    ``asyncio.Lock`` serializes the step where an action claims the state
    (probing the selection, starting or stopping the recorder); the slow
    remote calls then run outside the lock while the state reads PROCESSING,
    so concurrent triggers are rejected with ``BusyError`` instead of racing.

    Args:
        recorder: Capture process owner
        transcriber: Speech-to-text client
        processor: Grammar correction and assistant client
        history: Conversation history used by the assistant
        clipboard: Clipboard used for selection probes and paste delivery
        status: Receiver of state changes, flashes and cues
        settings: Persisted flags (auto-correct, condensed mode)
        revert_delay: Seconds DONE/ERROR stay visible before IDLE
        settle_delay: Seconds to let the artifact settle after stopping
    """

    def __init__(
        self,
        recorder: Recorder,
        transcriber: GroqTranscriber,
        processor: TextProcessor,
        history: ConversationHistory,
        clipboard: Clipboard,
        status: StatusSink,
        settings: Settings,
        revert_delay: float = 1.0,
        settle_delay: float = 0.1,
    ):
        self.recorder = recorder
        self.transcriber = transcriber
        self.processor = processor
        self.history = history
        self.clipboard = clipboard
        self.status = status
        self.settings = settings
        self.revert_delay = revert_delay
        self.settle_delay = settle_delay

        self._state = InteractionState.IDLE
        self._lock = asyncio.Lock()
        self._pending_selection: Optional[str] = None
        self._revert_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> InteractionState:
        return self._state

    @property
    def auto_correct(self) -> bool:
        return self.settings.get_bool(AUTO_GRAMMAR_KEY, False)

    @property
    def condensed(self) -> bool:
        return self.settings.get_bool(CONDENSED_MODE_KEY, False)

    # Entry actions

    async def grammar_fix(self) -> None:
        """Correct the selected text and paste the result over it."""
        async with self._lock:
            if self._reject_if_busy(allow_recording=False):
                return
            try:
                selection = await self.clipboard.probe_selection(restore=False)
                if not selection:
                    raise NoSelectionError()
            except Exception as e:
                await self._fail(e)
                return
            self._set_state(InteractionState.PROCESSING)

        await self._run(self._correct_and_deliver(selection))

    async def toggle_transcription(self) -> None:
        """Start recording, or stop and transcribe the active recording."""
        async with self._lock:
            if self._reject_if_busy(allow_recording=True):
                return
            if not self.recorder.is_recording():
                await self._start_recording(selection=None)
                return
            self._pending_selection = None
            artifact = await self._stop_recording()
            if artifact is None:
                return

        await self._run(self._transcribe_and_deliver(artifact))

    async def assistant(self) -> None:
        """
        Start recording a request, or stop and send it to the assistant.

        The selection is probed invisibly each time; the one found when the
        recording stops wins over the one captured when it started.
        """
        async with self._lock:
            if self._reject_if_busy(allow_recording=True):
                return
            try:
                selection = await self.clipboard.probe_selection(restore=True)
            except Exception as e:
                await self._fail(e)
                return

            if not self.recorder.is_recording():
                await self._start_recording(selection=selection)
                return

            selection = selection or self._pending_selection
            self._pending_selection = None
            artifact = await self._stop_recording()
            if artifact is None:
                return

        await self._run(self._assist_and_deliver(artifact, selection))

    async def assistant_from_clipboard(self) -> None:
        """Send the clipboard (after copying any selection) to the assistant."""
        async with self._lock:
            if self._reject_if_busy(allow_recording=False):
                return
            try:
                text = await self.clipboard.copy_selection()
                if not text or not text.strip():
                    raise NoClipboardContentError()
            except Exception as e:
                await self._fail(e)
                return
            self._set_state(InteractionState.PROCESSING)

        await self._run(self._converse_and_deliver(text, None))

    async def cancel_recording(self) -> None:
        """Discard the active recording. Ignored unless RECORDING."""
        async with self._lock:
            if self._state != InteractionState.RECORDING or not self.recorder.is_recording():
                logger.debug(f"Cancel ignored in state {self._state.value}")
                return
            await self.recorder.cancel()
            self._pending_selection = None
            self._set_state(InteractionState.IDLE)
            logger.info("Recording cancelled by user")

    async def toggle_auto_correct(self) -> bool:
        value = self.settings.toggle(AUTO_GRAMMAR_KEY)
        self.status.flash(f"Auto-Grammar: {'ON' if value else 'OFF'}")
        return value

    async def toggle_condensed(self) -> bool:
        value = self.settings.toggle(CONDENSED_MODE_KEY)
        self.status.flash(f"Condensed Mode: {'ON' if value else 'OFF'}")
        return value

    async def shutdown(self) -> None:
        """Cancel any recording and pending revert on exit."""
        if self._revert_task is not None:
            self._revert_task.cancel()
            self._revert_task = None
        await self.recorder.cancel()

    # Flow steps

    async def _start_recording(self, selection: Optional[str]) -> None:
        try:
            await self.recorder.start(on_cancel=self.cancel_recording)
        except RecorderError as e:
            await self._fail(e)
            return
        self._pending_selection = selection
        self._set_state(InteractionState.RECORDING)
        self.status.cue(Cue.START)

    async def _stop_recording(self) -> Optional[Path]:
        try:
            artifact = await self.recorder.stop()
        except RecorderError as e:
            await self._fail(e)
            return None
        self._set_state(InteractionState.PROCESSING)
        return artifact

    async def _correct_and_deliver(self, text: str) -> None:
        profile = self.processor.grammar_profile(condensed=self.condensed)
        result = await self.processor.correct(text, profile)
        await self._deliver(result)

    async def _transcribe_and_deliver(self, artifact: Path) -> None:
        await asyncio.sleep(self.settle_delay)
        result = await self.transcriber.transcribe(artifact, then=self._maybe_correct)
        await self._deliver(result)

    async def _assist_and_deliver(self, artifact: Path, selection: Optional[str]) -> None:
        await asyncio.sleep(self.settle_delay)

        async def ask(transcript: str) -> str:
            return await self.processor.converse(transcript, self.history, selection)

        reply = await self.transcriber.transcribe(artifact, then=ask)
        await self._deliver(reply)

    async def _converse_and_deliver(self, text: str, selection: Optional[str]) -> None:
        reply = await self.processor.converse(text, self.history, selection)
        await self._deliver(reply)

    async def _maybe_correct(self, transcript: str) -> str:
        """Apply auto-correct; on failure keep the raw transcript and say so."""
        if not self.auto_correct:
            return transcript
        profile = self.processor.grammar_profile(condensed=self.condensed)
        try:
            return await self.processor.correct(transcript, profile)
        except ServiceError as e:
            logger.warning(f"Auto-correct failed, pasting raw transcript: {e}")
            self.status.flash(f"Grammar fix failed: {e}", error=True)
            return transcript

    async def _deliver(self, text: str) -> None:
        await self.clipboard.deliver(text)
        self.status.cue(Cue.SUCCESS)
        self._set_state(InteractionState.DONE)

    async def _run(self, flow: Awaitable[None]) -> None:
        try:
            await flow
        except Exception as e:
            await self._fail(e)

    # State handling

    def _reject_if_busy(self, allow_recording: bool) -> bool:
        busy = self._state == InteractionState.PROCESSING or (
            self._state == InteractionState.RECORDING and not allow_recording
        )
        if busy:
            logger.info(f"Trigger rejected while {self._state.value}")
            self.status.flash(str(BusyError()), error=True)
            self.status.cue(Cue.FAILURE)
        return busy

    async def _fail(self, error: Exception) -> None:
        """Report a failure and make sure no recording is left behind."""
        if not isinstance(error, Shortcut4AIError):
            logger.error("Unexpected error during interaction", exc_info=error)
            error = Shortcut4AIError(f"Unexpected error: {error}")
        else:
            logger.warning(f"Interaction failed: {error}")

        try:
            await self.recorder.cancel()
        except Exception as e:
            logger.error(f"Failed to clean up recording: {e}")
        self._pending_selection = None

        self._set_state(InteractionState.ERROR)
        self.status.flash(str(error), error=True)
        self.status.cue(Cue.FAILURE)

    def _set_state(self, state: InteractionState) -> None:
        if self._revert_task is not None:
            self._revert_task.cancel()
            self._revert_task = None
        self._state = state
        self.status.show(state)
        if state in (InteractionState.DONE, InteractionState.ERROR):
            self._revert_task = asyncio.get_running_loop().create_task(self._revert_to_idle(state))

    async def _revert_to_idle(self, state: InteractionState) -> None:
        await asyncio.sleep(self.revert_delay)
        if self._state == state:
            self._state = InteractionState.IDLE
            self.status.show(InteractionState.IDLE)
        self._revert_task = None
