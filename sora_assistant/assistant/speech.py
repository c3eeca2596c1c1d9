"""
Speech output for the assistant.

One utterance at a time, newest wins: speaking cancels whatever is playing
and there is no queue. Descriptions are transient and can always be asked
for again, so dropping an older one is fine.
"""

import logging
import queue
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional

from sora_assistant.config import SpeechConfig
from sora_assistant.core.text import clean_text_for_speech

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpeechOptions:
    """Prosody for one utterance. Rate and pitch are multipliers of the engine default."""

    rate: float = 0.9
    pitch: float = 1.0
    volume: float = 1.0


@dataclass(frozen=True)
class Voice:
    """A synthesis voice offered by the platform."""

    id: str
    name: str
    language: str = ""

    @property
    def is_english(self) -> bool:
        if self.language:
            return "en" in self.language.lower()
        return "english" in self.name.lower() or "english" in self.id.lower()


def select_voice(voices: list[Voice], preferred_names: Iterable[str] = ("Google", "Microsoft")) -> Optional[Voice]:
    """
    Pick the voice to speak with.

    Prefers an English voice from a preferred vendor, then any English voice,
    then the first voice. Returns None when no voices are listed, which means
    "use the platform default".
    """
    preferred = [name.lower() for name in preferred_names]
    english = [v for v in voices if v.is_english]

    for voice in english:
        if any(name in voice.name.lower() for name in preferred):
            return voice

    if english:
        return english[0]

    return voices[0] if voices else None


class SpeechEngine(ABC):
    """Platform speech synthesis capability."""

    @abstractmethod
    def voices(self) -> list[Voice]:
        """List available voices (may be empty until the engine is ready)."""

    @abstractmethod
    def say(self, text: str, voice_id: Optional[str], options: SpeechOptions) -> None:
        """Begin speaking. Returns without waiting for playback to finish."""

    @abstractmethod
    def cancel(self) -> None:
        """Stop the current utterance and drop anything pending."""

    def close(self) -> None:
        """Release engine resources."""


def _voice_language(raw_voice) -> str:
    """Normalize pyttsx3 voice languages (espeak reports bytes like b'\\x05en-us')."""
    for lang in getattr(raw_voice, "languages", None) or []:
        if isinstance(lang, bytes):
            lang = lang.decode("utf-8", errors="ignore")
        lang = re.sub(r"[^\w-]", "", str(lang))
        if lang:
            return lang
    return ""


class Pyttsx3Engine(SpeechEngine):
    """
    Offline speech synthesis via pyttsx3 (SAPI5, NSSpeechSynthesizer or espeak).

    pyttsx3 blocks while speaking and must be driven from the thread that
    created it, so a single worker thread owns the engine and plays requests
    from a queue.
    """

    BASE_RATE_WPM = 200

    def __init__(self, ready_timeout: float = 5.0):
        try:
            import pyttsx3  # noqa: F401
        except ImportError as e:
            raise ImportError(
                "pyttsx3 not installed. Install with: pip install pyttsx3"
            ) from e

        self._queue: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        self._generation = 0  # bumped by cancel(), older requests are stale
        self._engine = None
        self._voices: list[Voice] = []
        self._ready = threading.Event()
        self._init_error: Optional[Exception] = None

        self._thread = threading.Thread(target=self._worker, daemon=True, name="speech-worker")
        self._thread.start()

        if not self._ready.wait(timeout=ready_timeout):
            logger.warning("Speech engine slow to start (>%.0fs)", ready_timeout)
        if self._init_error is not None:
            raise RuntimeError(f"Speech engine failed to start: {self._init_error}") from self._init_error

    def _worker(self) -> None:
        import pyttsx3

        try:
            engine = pyttsx3.init()
            self._voices = [
                Voice(id=v.id, name=v.name or v.id, language=_voice_language(v))
                for v in engine.getProperty("voices") or []
            ]
            self._engine = engine
        except Exception as e:
            self._init_error = e
            self._ready.set()
            return

        logger.info("Speech engine ready (%d voices)", len(self._voices))
        self._ready.set()

        while True:
            item = self._queue.get()
            if item is None:
                break

            generation, text, voice_id, options = item
            try:
                if voice_id:
                    engine.setProperty("voice", voice_id)
                engine.setProperty("rate", int(self.BASE_RATE_WPM * options.rate))
                engine.setProperty("volume", max(0.0, min(1.0, options.volume)))

                with self._lock:
                    stale = generation != self._generation
                    if not stale:
                        engine.say(text)
                if stale:
                    logger.debug("Dropping cancelled utterance")
                    continue

                engine.runAndWait()
            except Exception as e:
                logger.error("Speech engine error: %s", e)

    def voices(self) -> list[Voice]:
        return list(self._voices)

    def say(self, text: str, voice_id: Optional[str], options: SpeechOptions) -> None:
        with self._lock:
            self._queue.put((self._generation, text, voice_id, options))

    def cancel(self) -> None:
        # Also covers a request the worker has dequeued but not yet started
        with self._lock:
            self._generation += 1
            while True:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    break

            if self._engine is not None:
                try:
                    self._engine.stop()
                except Exception as e:
                    logger.debug("Speech cancel error: %s", e)

    def close(self) -> None:
        self.cancel()
        self._queue.put(None)
        self._thread.join(timeout=2.0)


def create_speech_engine(backend: str = "pyttsx3") -> Optional[SpeechEngine]:
    """
    Factory function to create a speech engine.

    Args:
        backend: "pyttsx3" or "none" (log-only output)

    Returns:
        SpeechEngine instance, or None if synthesis is unavailable
    """
    if backend == "none":
        return None
    if backend != "pyttsx3":
        raise ValueError(f"Unknown speech backend: {backend}")

    try:
        return Pyttsx3Engine()
    except (ImportError, RuntimeError) as e:
        logger.warning("Speech synthesis unavailable: %s", e)
        return None


class SpeechOutputSink:
    """
    Serializes spoken output.

    Usage:
        sink = SpeechOutputSink(create_speech_engine())
        sink.speak("Hello")
        sink.speak("Newer message")  # cancels "Hello" first
        sink.stop_speaking()
    """

    def __init__(self, engine: Optional[SpeechEngine], config: Optional[SpeechConfig] = None):
        self.engine = engine
        self.config = config or SpeechConfig()
        self._voice: Optional[Voice] = None
        self._voice_resolved = False
        self.last_utterance: Optional[str] = None

    @property
    def default_options(self) -> SpeechOptions:
        return SpeechOptions(
            rate=self.config.rate,
            pitch=self.config.pitch,
            volume=self.config.volume,
        )

    @property
    def voice(self) -> Optional[Voice]:
        """Voice in use, resolved once the engine has listed its voices."""
        if not self._voice_resolved and self.engine is not None:
            voices = self.engine.voices()
            if voices:
                self._voice = select_voice(voices, self.config.preferred_voice_names)
                self._voice_resolved = True
                if self._voice is not None:
                    logger.debug("Speech voice: %s", self._voice.name)
        return self._voice

    def speak(self, text: str, options: Optional[SpeechOptions] = None) -> None:
        """Cancel any utterance in progress, then start speaking text."""
        text = clean_text_for_speech(text)
        if not text:
            return

        self.last_utterance = text

        if self.engine is None:
            logger.info("Speech: %s", text)
            return

        voice = self.voice
        self.engine.cancel()
        self.engine.say(text, voice.id if voice else None, options or self.default_options)

    def stop_speaking(self) -> None:
        """Immediately halt speech output."""
        if self.engine is not None:
            self.engine.cancel()

    def close(self) -> None:
        if self.engine is not None:
            self.engine.close()
