"""
Activation orchestrator.

Ties the pieces into one loop: recognition events and manual controls
trigger activations, each activation captures a frame, analyzes it,
extracts structured hints and speaks the result.

Phases of one activation:

    IDLE -> CAPTURING -> ANALYZING -> SPEAKING -> COOLDOWN -> IDLE

Failures in capture or analysis skip straight to SPEAKING with a fixed
message. At most one activation is in flight; triggers that arrive while
busy are dropped.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from sora_assistant.analysis.client import AnalysisClient
from sora_assistant.analysis.errors import (
    AnalysisTimeoutError,
    CaptureUnavailableError,
    MalformedResponseError,
    ServiceError,
)
from sora_assistant.analysis.extractor import (
    ExtractedInsight,
    NavigationPolicy,
    Vocabulary,
    extract_insight,
)
from sora_assistant.assistant.announce import LiveRegion, Notifier
from sora_assistant.assistant.chimes import ChimePlayer
from sora_assistant.assistant.controls import Command
from sora_assistant.assistant.recognition import (
    RESTART_EXHAUSTED,
    TERMINAL_ERROR_KINDS,
    ContinuousRecognitionSession,
    Ended,
    Error,
    FinalTranscript,
    ListeningState,
    RecognitionEvent,
    Started,
)
from sora_assistant.assistant.speech import SpeechOutputSink
from sora_assistant.assistant.vision import FrameSource
from sora_assistant.assistant.wakeword import WakePhraseDetector, create_wake_detector
from sora_assistant.config import ExtractionConfig, OrchestratorConfig

logger = logging.getLogger(__name__)

ACTIVATION_NOTICE = "Sora activated. Analyzing your environment..."
READY_GREETING = 'Sora is ready. Say "Hey Sora" or press space to activate your AI assistant.'
ANALYSIS_ERROR_MESSAGE = (
    "Sorry, I encountered an error while analyzing the environment. Please try again."
)
CAPTURE_UNAVAILABLE_MESSAGE = (
    "I couldn't get a picture from the camera. Please check the camera and try again."
)
FALLBACK_DESCRIPTION = (
    "I apologize, but I cannot analyze this image at the moment. Please try again."
)
CAMERA_DENIED_MESSAGE = "Camera access denied. Please enable camera permissions to use Sora."
MICROPHONE_DENIED_MESSAGE = "Microphone access denied. You can still use the wake button."
VOICE_UNSUPPORTED_MESSAGE = (
    "Voice recognition not supported on this device. Use the wake button instead."
)
VOICE_EXHAUSTED_MESSAGE = "Voice activation stopped working. You can still use the wake button."

ANNOUNCEMENT_PREFIX = "Sora says: "


class ActivationPhase(Enum):
    """Activation state machine phases."""

    IDLE = "idle"  # Waiting for a trigger
    CAPTURING = "capturing"  # Grabbing a frame
    ANALYZING = "analyzing"  # Waiting on the analysis service
    SPEAKING = "speaking"  # Handing the result to speech
    COOLDOWN = "cooldown"  # Short pause before accepting triggers again


@dataclass
class ActivationSession:
    """State shared by all activations of one orchestrator. Only the orchestrator mutates it."""

    phase: ActivationPhase = ActivationPhase.IDLE
    last_insight: Optional[ExtractedInsight] = None


@dataclass(frozen=True)
class ActivationResult:
    """Outcome of one activation."""

    source: str
    spoken_text: str
    insight: Optional[ExtractedInsight] = None
    error: Optional[str] = None  # capture-unavailable, malformed, service, timeout, unexpected

    @property
    def succeeded(self) -> bool:
        return self.error is None


class ActivationOrchestrator:
    """
    Runs activations and reacts to recognition events.

    Usage:
        orchestrator = ActivationOrchestrator(camera, client, speech, recognition)
        await orchestrator.activate("button")  # one cycle
        await orchestrator.run()               # until shutdown()
    """

    def __init__(
        self,
        frame_source: Optional[FrameSource],
        analysis_client: AnalysisClient,
        speech: SpeechOutputSink,
        recognition: Optional[ContinuousRecognitionSession] = None,
        announcer: Optional[LiveRegion] = None,
        notifier: Optional[Notifier] = None,
        wake_detector: Optional[WakePhraseDetector] = None,
        config: Optional[OrchestratorConfig] = None,
        extraction: Optional[ExtractionConfig] = None,
        chimes: Optional[ChimePlayer] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.frame_source = frame_source
        self.client = analysis_client
        self.speech = speech
        self.recognition = recognition
        self.announcer = announcer or LiveRegion()
        self.notifier = notifier or Notifier()
        self.config = config or OrchestratorConfig()
        self.wake_detector = wake_detector or create_wake_detector("substring", self.config.wake_phrases)
        self.chimes = chimes if self.config.play_chimes else None
        self._sleep = sleep

        extraction = extraction or ExtractionConfig()
        self.navigation_policy: NavigationPolicy = extraction.navigation_policy
        self.vocabulary: Vocabulary = extraction.vocabulary()

        self._session = ActivationSession()
        self.voice_enabled = recognition is not None
        self._activation_task: Optional[asyncio.Task] = None
        self._reported: set[str] = set()
        self._shutdown: Optional[asyncio.Event] = None

    @property
    def phase(self) -> ActivationPhase:
        return self._session.phase

    @property
    def last_insight(self) -> Optional[ExtractedInsight]:
        """Insight from the most recent analysis that produced text."""
        return self._session.last_insight

    @property
    def is_busy(self) -> bool:
        return self._session.phase != ActivationPhase.IDLE

    def _set_phase(self, new_phase: ActivationPhase) -> None:
        """The only place the activation phase changes."""
        old_phase = self._session.phase
        self._session.phase = new_phase
        if old_phase != new_phase:
            logger.debug("Phase: %s -> %s", old_phase.value, new_phase.value)

    def _report_once(self, key: str, spoken: str, notice: Optional[str] = None) -> None:
        """Speak and show a notice the first time a condition occurs."""
        if key in self._reported:
            return
        self._reported.add(key)
        self.speech.speak(spoken)
        if notice:
            self.notifier.error(notice)

    # === Activation ===

    def trigger(self, source: str = "button") -> bool:
        """
        Start an activation if idle.

        Must be called from the event loop thread.

        Returns:
            True if an activation was started, False if one is already running
        """
        if self.is_busy:
            logger.debug("Trigger from %s ignored (%s)", source, self.phase.value)
            return False

        self._set_phase(ActivationPhase.CAPTURING)
        loop = asyncio.get_running_loop()
        self._activation_task = loop.create_task(self._run_activation(source))
        return True

    async def activate(self, source: str = "button") -> Optional[ActivationResult]:
        """
        Run one activation to completion.

        Returns:
            ActivationResult, or None if an activation was already running
        """
        if not self.trigger(source):
            return None
        return await self._activation_task

    async def _run_activation(self, source: str) -> ActivationResult:
        logger.info("Activated by %s", source)

        try:
            if self.chimes is not None:
                self.chimes.wake()
            if self.config.announce_activation:
                self.speech.speak(ACTIVATION_NOTICE)

            try:
                result = await self._capture_and_analyze(source)
            except Exception:
                logger.exception("Unexpected activation error")
                result = ActivationResult(source, ANALYSIS_ERROR_MESSAGE, error="unexpected")

            self._set_phase(ActivationPhase.SPEAKING)
            self._deliver(result)

            self._set_phase(ActivationPhase.COOLDOWN)
            await self._sleep(self.config.cooldown_s)
            return result
        finally:
            self._set_phase(ActivationPhase.IDLE)

    async def _capture_and_analyze(self, source: str) -> ActivationResult:
        try:
            frame = await self._capture()
        except CaptureUnavailableError as e:
            logger.error("Capture failed: %s", e)
            self.notifier.error("Camera unavailable")
            return ActivationResult(source, CAPTURE_UNAVAILABLE_MESSAGE, error="capture-unavailable")

        self._set_phase(ActivationPhase.ANALYZING)

        error = None
        try:
            response = await self.client.analyze(frame)
            raw_text = response.raw_text
        except MalformedResponseError as e:
            logger.warning("Analysis response unusable: %s", e)
            raw_text = FALLBACK_DESCRIPTION
            error = "malformed"
        except (ServiceError, AnalysisTimeoutError) as e:
            logger.error("Analysis failed: %s", e)
            self.notifier.error("Analysis failed")
            kind = "timeout" if isinstance(e, AnalysisTimeoutError) else "service"
            return ActivationResult(source, ANALYSIS_ERROR_MESSAGE, error=kind)
        except Exception:
            logger.exception("Analysis failed")
            self.notifier.error("Analysis failed")
            return ActivationResult(source, ANALYSIS_ERROR_MESSAGE, error="unexpected")

        insight = extract_insight(raw_text, self.vocabulary, self.navigation_policy)
        self._session.last_insight = insight
        logger.debug("Insight: %s", insight.to_dict())
        return ActivationResult(source, insight.description, insight=insight, error=error)

    async def _capture(self):
        if self.frame_source is None or not self.frame_source.is_open:
            raise CaptureUnavailableError("No active video stream")

        try:
            frame = await asyncio.to_thread(self.frame_source.capture_frame)
        except Exception as e:
            raise CaptureUnavailableError(str(e)) from e

        if frame is None:
            raise CaptureUnavailableError("Camera returned no frame")
        return frame

    def _deliver(self, result: ActivationResult) -> None:
        if not result.succeeded and result.error != "malformed" and self.chimes is not None:
            self.chimes.error()
        self.speech.speak(result.spoken_text)
        self.announcer.announce(f"{ANNOUNCEMENT_PREFIX}{result.spoken_text}")
        logger.info("Sora: %s", result.spoken_text)

    # === Voice ===

    def handle_transcript(self, text: str) -> bool:
        """
        Trigger an activation if the transcript contains a wake phrase.

        Returns:
            True if an activation was started
        """
        if not self.wake_detector.detect(text):
            logger.debug("No wake phrase in: %s", text)
            return False

        logger.info("Wake phrase heard: %s", text)
        return self.trigger("voice")

    def handle_event(self, event: RecognitionEvent) -> None:
        """React to one recognition event."""
        if isinstance(event, FinalTranscript):
            self.handle_transcript(event.text)
        elif isinstance(event, Error):
            if event.kind in TERMINAL_ERROR_KINDS:
                self.voice_enabled = False
                self._report_once(
                    "microphone-denied",
                    MICROPHONE_DENIED_MESSAGE,
                    "Microphone access denied. Voice activation disabled.",
                )
            elif event.kind == RESTART_EXHAUSTED:
                self.voice_enabled = False
                self._report_once(
                    "voice-exhausted",
                    VOICE_EXHAUSTED_MESSAGE,
                    "Voice activation unavailable",
                )
            else:
                logger.warning("Recognition error (%s), restarting", event.kind)
        elif isinstance(event, (Started, Ended)):
            logger.debug("Recognition %s", type(event).__name__.lower())

    async def _consume_events(self) -> None:
        async for event in self.recognition.events():
            self.handle_event(event)

    # === Manual controls ===

    def stop_speaking(self) -> None:
        """Silence speech. An analysis in flight still completes and is spoken."""
        logger.debug("Stop speaking")
        self.speech.stop_speaking()

    async def toggle_listening(self) -> bool:
        """
        Turn voice activation on or off.

        Returns:
            True if listening afterwards
        """
        if self.recognition is None:
            self.notifier.error("Voice activation unavailable")
            return False

        listening = await self.recognition.toggle_listening()
        if listening:
            self.voice_enabled = True
            self.notifier.info("Voice activation on")
        elif self.recognition.state in (ListeningState.DISABLED, ListeningState.UNSUPPORTED):
            self.notifier.error("Voice activation unavailable")
        else:
            self.notifier.info("Voice activation off")
        return listening

    async def handle_command(self, command: Command) -> None:
        """Dispatch one keyboard command."""
        if command is Command.ACTIVATE:
            self.trigger("keyboard")
        elif command is Command.STOP_SPEAKING:
            self.stop_speaking()
        elif command is Command.TOGGLE_LISTENING:
            await self.toggle_listening()
        elif command is Command.QUIT:
            self.shutdown()

    # === Main loop ===

    async def _open_camera(self) -> bool:
        if self.frame_source is None:
            opened = False
        elif self.frame_source.is_open:
            opened = True
        else:
            opened = await asyncio.to_thread(self.frame_source.open)

        if not opened:
            logger.error("Camera unavailable")
            self._report_once(
                "camera-denied",
                CAMERA_DENIED_MESSAGE,
                "Camera access is required for Sora to function",
            )
        return opened

    async def _start_recognition(self) -> bool:
        if self.recognition is None:
            # Voice activation turned off
            return False

        started = await self.recognition.start()
        if self.recognition.state == ListeningState.UNSUPPORTED:
            self.voice_enabled = False
            self._report_once("voice-unsupported", VOICE_UNSUPPORTED_MESSAGE)
        return started

    async def run(self, controls=None) -> None:
        """
        Run until shutdown() is called (or controls send quit).

        Args:
            controls: Optional KeyboardControls feeding handle_command
        """
        self._shutdown = asyncio.Event()
        tasks: list[asyncio.Task] = []

        try:
            camera_ready = await self._open_camera()
            if camera_ready:
                await self._sleep(self.config.ready_delay_s)
                self.speech.speak(READY_GREETING)

            await self._start_recognition()
            if self.recognition is not None and self.recognition.is_supported:
                tasks.append(asyncio.create_task(self._consume_events()))

            if controls is not None:
                tasks.append(asyncio.create_task(controls.run(self.handle_command)))

            logger.info("Sora ready (voice %s)", "on" if self.voice_enabled else "off")
            await self._shutdown.wait()

        finally:
            logger.info("Stopping Sora...")
            if self.recognition is not None:
                await self.recognition.close()
            if self._activation_task is not None and not self._activation_task.done():
                tasks.append(self._activation_task)
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self.speech.stop_speaking()
            if self.frame_source is not None:
                self.frame_source.close()

    def shutdown(self) -> None:
        """Ask run() to return."""
        if self._shutdown is not None:
            self._shutdown.set()
