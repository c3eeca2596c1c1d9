"""
Continuous speech recognition with automatic recovery.

The recognition engine is a black box that reports start, end, error and
result signals, possibly from its own threads. ContinuousRecognitionSession
turns those into one ordered stream of RecognitionEvents and owns the
restart policy:

- every end of listening is followed by one restart after a short delay
- manual stops suppress the restart for that stop only
- permission errors are terminal (manual activation only from then on)
- quick repeated failures back off exponentially and eventually give up
"""

import asyncio
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

from sora_assistant.config import RecognitionConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Started:
    """The engine began listening."""


@dataclass(frozen=True)
class Ended:
    """The engine stopped listening, for any reason."""


@dataclass(frozen=True)
class Error:
    """The engine reported an error of the given kind."""

    kind: str


@dataclass(frozen=True)
class FinalTranscript:
    """A finalized utterance, lower-cased and trimmed."""

    text: str


@dataclass(frozen=True)
class EngineResult:
    """Raw engine result. Only final results reach subscribers."""

    transcript: str
    is_final: bool = True


RecognitionEvent = Union[Started, Ended, Error, FinalTranscript]
EngineSignal = Union[Started, Ended, Error, EngineResult]

# Error kinds that disable voice activation for the rest of the session
TERMINAL_ERROR_KINDS = frozenset({"not-allowed", "service-not-allowed"})

# Reported when restarts keep failing and the session stops trying
RESTART_EXHAUSTED = "restart-exhausted"


class ListeningState(str, Enum):
    """Recognition session states."""

    IDLE = "idle"  # Never started
    LISTENING = "listening"
    RESTART_PENDING = "restart_pending"  # Waiting out the restart delay
    STOPPED = "stopped"  # Stopped by the user
    DISABLED = "disabled"  # Permission denied (terminal)
    UNSUPPORTED = "unsupported"  # No engine on this device (terminal)
    EXHAUSTED = "exhausted"  # Gave up after repeated failures


class RecognitionEngine(ABC):
    """Abstract base class for continuous recognition engines."""

    name: str = "base"

    @abstractmethod
    def start(self, emit: Callable[[EngineSignal], None]) -> None:
        """
        Begin listening.

        Args:
            emit: Signal sink. May be called from any thread. The engine must
                emit Ended after any Error and whenever listening stops.

        Raises:
            RuntimeError: If the engine can't be started right now
        """

    @abstractmethod
    def stop(self) -> None:
        """Stop listening (the engine emits Ended)."""


class SpeechRecognitionEngine(RecognitionEngine):
    """
    Microphone recognition via the SpeechRecognition package.

    Phrases are captured in a background listener thread and transcribed with
    the Google web recognizer. Each transcribed phrase is a final result;
    phrases with nothing intelligible are skipped silently.

    Requires: SpeechRecognition, PyAudio
    """

    name = "google"

    def __init__(
        self,
        language: str = "en-US",
        phrase_time_limit: Optional[float] = 8.0,
        device_index: Optional[int] = None,
        calibration_s: float = 0.5,
    ):
        try:
            import speech_recognition as sr
        except ImportError as e:
            raise ImportError(
                "SpeechRecognition not installed. "
                "Install with: pip install SpeechRecognition pyaudio"
            ) from e

        try:
            sr.Microphone.get_pyaudio()
        except AttributeError as e:
            raise ImportError("PyAudio not installed. Install with: pip install pyaudio") from e

        self._sr = sr
        self._recognizer = sr.Recognizer()
        self._recognizer.dynamic_energy_threshold = True
        self.language = language
        self.phrase_time_limit = phrase_time_limit
        self.device_index = device_index
        self.calibration_s = calibration_s

        self._lock = threading.Lock()
        self._active = False
        self._stop_listening: Optional[Callable] = None
        self._emit: Callable[[EngineSignal], None] = lambda signal: None

    def start(self, emit: Callable[[EngineSignal], None]) -> None:
        with self._lock:
            if self._active:
                raise RuntimeError("Recognition already started")
            self._active = True
            self._emit = emit

        # Opening the microphone blocks, keep it off the caller's thread
        threading.Thread(target=self._open_and_listen, daemon=True, name="recognition-start").start()

    def _open_and_listen(self) -> None:
        error_kind = None
        try:
            microphone = self._sr.Microphone(device_index=self.device_index)
            with microphone as source:
                self._recognizer.adjust_for_ambient_noise(source, duration=self.calibration_s)
        except PermissionError as e:
            logger.error("Microphone access denied: %s", e)
            error_kind = "not-allowed"
        except (OSError, AttributeError) as e:
            logger.error("Microphone unavailable: %s", e)
            error_kind = "audio-capture"

        if error_kind is not None:
            self._finish(Error(error_kind))
            return

        stopper = self._recognizer.listen_in_background(
            microphone, self._on_audio, phrase_time_limit=self.phrase_time_limit
        )

        with self._lock:
            if not self._active:
                # Stopped while the microphone was opening
                stopper(wait_for_stop=False)
                return
            self._stop_listening = stopper

        self._emit(Started())

    def _on_audio(self, recognizer, audio) -> None:
        """Listener thread callback for each captured phrase."""
        try:
            text = recognizer.recognize_google(audio, language=self.language)
        except self._sr.UnknownValueError:
            return
        except self._sr.RequestError as e:
            logger.error("Recognition service error: %s", e)
            self._finish(Error("network"))
            return

        self._emit(EngineResult(transcript=text, is_final=True))

    def _finish(self, error: Optional[Error] = None) -> None:
        with self._lock:
            was_active = self._active
            stopper = self._stop_listening
            self._active = False
            self._stop_listening = None

        if not was_active:
            return

        if stopper is not None:
            # Never join here: this may run on the listener thread itself
            stopper(wait_for_stop=False)

        if error is not None:
            self._emit(error)
        self._emit(Ended())

    def stop(self) -> None:
        self._finish()


def create_recognition_engine(
    backend: str = "google",
    language: str = "en-US",
    phrase_time_limit: Optional[float] = 8.0,
    device_index: Optional[int] = None,
) -> Optional[RecognitionEngine]:
    """
    Factory function to create a recognition engine.

    Args:
        backend: "google" or "none"
        language: Recognition language tag
        phrase_time_limit: Max seconds per captured phrase
        device_index: Microphone device index (None for system default)

    Returns:
        RecognitionEngine, or None when recognition isn't available here
    """
    if backend == "none":
        return None
    if backend != "google":
        raise ValueError(f"Unknown recognition backend: {backend}")

    try:
        return SpeechRecognitionEngine(
            language=language,
            phrase_time_limit=phrase_time_limit,
            device_index=device_index,
        )
    except ImportError as e:
        logger.warning("Voice recognition unavailable: %s", e)
        return None


_CLOSED = object()


class ContinuousRecognitionSession:
    """
    Keeps a recognition engine listening and streams its events.

    Usage:
        session = ContinuousRecognitionSession(create_recognition_engine())
        await session.start()
        async for event in session.events():
            if isinstance(event, FinalTranscript):
                print(event.text)
    """

    def __init__(
        self,
        engine: Optional[RecognitionEngine],
        config: Optional[RecognitionConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            engine: Recognition engine, or None when the device has none.
            config: Restart timing and backoff settings.
            clock: Monotonic clock used to judge how long a run lasted.
            sleep: Awaitable delay used between restarts.
        """
        self.engine = engine
        self.config = config or RecognitionConfig()
        self._clock = clock
        self._sleep = sleep

        self._signals: asyncio.Queue = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._state = ListeningState.IDLE
        self._suppressed_restarts = 0
        self._failures = 0
        self._started_at = 0.0
        self._heard = False
        self._restart_task: Optional[asyncio.Task] = None
        self._unsupported_reported = False
        self.restart_attempts = 0

    @property
    def is_supported(self) -> bool:
        return self.engine is not None

    @property
    def state(self) -> ListeningState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._state in (ListeningState.LISTENING, ListeningState.RESTART_PENDING)

    def restart_delay(self) -> float:
        """Delay before the next restart given the current failure streak."""
        # The first restart of a streak waits the base delay, later ones double
        delay = self.config.restart_delay_s * (2 ** max(self._failures - 1, 0))
        return min(delay, max(self.config.max_restart_delay_s, self.config.restart_delay_s))

    # === Engine side ===

    def _emit(self, signal: EngineSignal) -> None:
        """Thread-safe signal sink handed to the engine."""
        loop = self._loop
        if loop is None:
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._signals.put_nowait(signal)
        else:
            try:
                loop.call_soon_threadsafe(self._signals.put_nowait, signal)
            except RuntimeError:
                logger.debug("Recognition signal after loop closed: %s", signal)

    def _start_engine(self) -> bool:
        try:
            self.engine.start(self._emit)
        except Exception as e:
            logger.error("Failed to start recognition: %s", e)
            self._schedule_restart(failed=True)
            return False

        self._state = ListeningState.LISTENING
        self._started_at = self._clock()
        self._heard = False
        return True

    def _schedule_restart(self, failed: bool) -> None:
        if failed:
            self._failures += 1
        else:
            self._failures = 0

        if self._failures >= self.config.max_restart_attempts:
            self._state = ListeningState.EXHAUSTED
            logger.error("Voice recognition stopped after %d failed restarts", self._failures)
            self._signals.put_nowait(Error(RESTART_EXHAUSTED))
            return

        delay = self.restart_delay()
        self._state = ListeningState.RESTART_PENDING
        logger.debug("Restarting recognition in %.1fs", delay)
        self._restart_task = self._loop.create_task(self._restart_after(delay))

    async def _restart_after(self, delay: float) -> None:
        await self._sleep(delay)
        if self._state != ListeningState.RESTART_PENDING:
            return
        self.restart_attempts += 1
        self._start_engine()

    def _cancel_restart(self) -> None:
        task = self._restart_task
        self._restart_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _was_healthy(self) -> bool:
        return self._heard or (self._clock() - self._started_at) >= self.config.healthy_uptime_s

    def _process(self, signal: EngineSignal) -> Optional[RecognitionEvent]:
        """Apply the session policy to one engine signal."""
        if isinstance(signal, Started):
            logger.info("Voice recognition started")
            return signal

        if isinstance(signal, EngineResult):
            if not signal.is_final:
                return None
            text = signal.transcript.strip().lower()
            if not text:
                return None
            self._heard = True
            logger.debug("Voice transcript: %s", text)
            return FinalTranscript(text)

        if isinstance(signal, Error):
            if signal.kind != RESTART_EXHAUSTED:
                logger.error("Speech recognition error: %s", signal.kind)
            if signal.kind in TERMINAL_ERROR_KINDS:
                self._state = ListeningState.DISABLED
                self._cancel_restart()
            return signal

        if isinstance(signal, Ended):
            logger.info("Voice recognition ended")
            if self._suppressed_restarts > 0:
                self._suppressed_restarts -= 1
            elif self._state == ListeningState.LISTENING:
                self._schedule_restart(failed=not self._was_healthy())
            return signal

        logger.debug("Ignoring unknown recognition signal: %r", signal)
        return None

    # === Subscriber side ===

    async def start(self) -> bool:
        """
        Begin listening.

        Returns:
            True if the engine was started (or is already running)
        """
        self._loop = asyncio.get_running_loop()

        if self.engine is None:
            self._state = ListeningState.UNSUPPORTED
            if not self._unsupported_reported:
                self._unsupported_reported = True
                logger.warning("Voice recognition not supported on this device")
            return False

        if self._state in (ListeningState.DISABLED, ListeningState.UNSUPPORTED):
            return False
        if self._state == ListeningState.LISTENING:
            return True

        self._cancel_restart()
        self._failures = 0
        return self._start_engine()

    async def stop(self) -> None:
        """Stop listening. The resulting end of listening is not auto-restarted."""
        if self._state == ListeningState.RESTART_PENDING:
            self._cancel_restart()
            self._state = ListeningState.STOPPED
        elif self._state == ListeningState.LISTENING:
            self._suppressed_restarts += 1
            self._state = ListeningState.STOPPED
            try:
                self.engine.stop()
            except Exception as e:
                logger.error("Failed to stop recognition: %s", e)

    async def toggle_listening(self) -> bool:
        """
        Stop if listening, start otherwise.

        Returns:
            True if listening afterwards
        """
        if self.is_listening:
            await self.stop()
            return False
        return await self.start()

    async def events(self) -> AsyncIterator[RecognitionEvent]:
        """Ordered recognition events until close() is called."""
        while True:
            signal = await self._signals.get()
            if signal is _CLOSED:
                return
            event = self._process(signal)
            if event is not None:
                yield event

    async def close(self) -> None:
        """Stop the engine and end the event stream."""
        self._cancel_restart()
        if self._state == ListeningState.LISTENING:
            self._suppressed_restarts += 1
            try:
                self.engine.stop()
            except Exception as e:
                logger.error("Failed to stop recognition: %s", e)
        if self._state in (ListeningState.LISTENING, ListeningState.RESTART_PENDING):
            self._state = ListeningState.STOPPED
        self._signals.put_nowait(_CLOSED)
