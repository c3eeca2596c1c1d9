"""
Feedback chimes for activation and errors.

Synthesized with numpy and played non-blocking through sounddevice.
"""

import logging
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


class ChimeSounds:
    """
    Generate feedback sounds for the assistant.

    Provides wake and error chimes.
    """

    def __init__(self, sample_rate: int = 24000):
        self.sample_rate = sample_rate

    def _two_tone(self, freq1: float, freq2: float, duration: float = 0.15) -> np.ndarray:
        t = np.linspace(0, duration, int(self.sample_rate * duration))
        half = t[:len(t) // 2]

        tone1 = np.sin(2 * np.pi * freq1 * half) * 0.3
        tone2 = np.sin(2 * np.pi * freq2 * half) * 0.3

        envelope = np.exp(-3 * np.linspace(0, 1, len(half)))
        chime = np.concatenate([tone1 * envelope, tone2 * envelope])
        return (chime * 32767).astype(np.int16)

    def wake_chime(self) -> np.ndarray:
        """Ascending tones, played when an activation starts."""
        return self._two_tone(440, 660)  # A4 -> E5

    def error_chime(self) -> np.ndarray:
        """Generate an error/problem indicator."""
        duration = 0.3
        t = np.linspace(0, duration, int(self.sample_rate * duration))

        # Dissonant tone
        freq = 220  # A3
        tone = np.sin(2 * np.pi * freq * t) * 0.3
        tone += np.sin(2 * np.pi * freq * 1.05 * t) * 0.2  # Slight detuning

        envelope = np.exp(-2 * np.linspace(0, 1, len(tone)))
        return ((tone * envelope) * 32767).astype(np.int16)


class ChimePlayer:
    """
    Plays chimes on the default output device.

    Playback failures are logged and ignored; chimes are never essential.
    """

    def __init__(self, sounds: Optional[ChimeSounds] = None, device: Optional[int] = None):
        self.sounds = sounds or ChimeSounds()
        self.device = device
        self._sd = None

        try:
            import sounddevice as sd

            self._sd = sd
        except (ImportError, OSError) as e:
            logger.warning("Chimes disabled, sounddevice unavailable: %s", e)

    @property
    def available(self) -> bool:
        return self._sd is not None

    def play(self, audio: np.ndarray) -> None:
        """Start playback without waiting for it to finish."""
        if self._sd is None:
            return

        try:
            self._sd.play(audio.astype(np.float32) / 32768.0, self.sounds.sample_rate, device=self.device)
        except Exception as e:
            logger.debug("Chime playback failed: %s", e)

    def wake(self) -> None:
        self.play(self.sounds.wake_chime())

    def error(self) -> None:
        self.play(self.sounds.error_chime())
