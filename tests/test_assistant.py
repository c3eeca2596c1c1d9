"""
Tests for assistant components: wake phrases, controls, announcements, chimes.
"""

import asyncio
import io
import sys
from unittest.mock import MagicMock, patch

import numpy as np
import pytest
from rich.console import Console


class TestWakePhraseDetector:
    """Tests for wake phrase detection."""

    def test_substring_detector(self):
        from sora_assistant.assistant.wakeword import SubstringWakeDetector

        detector = SubstringWakeDetector()

        assert detector.detect("hey sora what's in front of me")
        assert detector.detect("Please WAKE SORA now")
        assert not detector.detect("hey sonar")
        assert not detector.detect("")

    def test_custom_phrases(self):
        from sora_assistant.assistant.wakeword import SubstringWakeDetector

        detector = SubstringWakeDetector(["  OK Camera ", ""])
        assert detector.phrases == ("ok camera",)
        assert detector.detect("ok camera, look")

        with pytest.raises(ValueError):
            SubstringWakeDetector(["  "])

    def test_create_wake_detector(self):
        """Test factory function."""
        from sora_assistant.assistant.wakeword import create_wake_detector

        detector = create_wake_detector(backend="substring", phrases=["hey sora"])
        assert detector.detect("hey sora")
        assert not detector.detect("hey sonar")

        # Unknown backend should raise
        with pytest.raises(ValueError):
            create_wake_detector(backend="unknown")


class TestKeyboardControls:
    """Tests for keyboard command parsing and dispatch."""

    @pytest.mark.parametrize(
        "line, command",
        [
            ("\n", "activate"),
            (" \n", "activate"),
            ("space\n", "activate"),
            ("s\n", "stop_speaking"),
            ("ESC\n", "stop_speaking"),
            ("\x1b\n", "stop_speaking"),
            ("l\n", "toggle_listening"),
            ("q\n", "quit"),
        ],
    )
    def test_parse_command(self, line, command):
        from sora_assistant.assistant.controls import parse_command

        assert parse_command(line).value == command

    def test_unknown_key(self):
        from sora_assistant.assistant.controls import parse_command

        assert parse_command("x\n") is None

    def test_run_dispatches_until_quit(self):
        from sora_assistant.assistant.controls import Command, KeyboardControls

        stream = io.StringIO("\nzz\nl\nq\ns\n")
        received = []

        async def handler(command):
            received.append(command)

        asyncio.run(KeyboardControls(stream).run(handler))
        assert received == [Command.ACTIVATE, Command.TOGGLE_LISTENING, Command.QUIT]

    def test_run_stops_at_end_of_input(self):
        from sora_assistant.assistant.controls import Command, KeyboardControls

        received = []

        async def handler(command):
            received.append(command)

        asyncio.run(KeyboardControls(io.StringIO("s\n")).run(handler))
        assert received == [Command.STOP_SPEAKING]


class TestAnnouncements:
    """Tests for the live region and notifier."""

    def test_live_region_keeps_latest(self):
        from sora_assistant.assistant.announce import LiveRegion

        region = LiveRegion()
        seen = []
        region.add_listener(seen.append)

        region.announce("Sora says: first")
        region.announce("Sora says: second")

        assert region.text == "Sora says: second"
        assert seen == ["Sora says: first", "Sora says: second"]

    def test_listener_errors_do_not_propagate(self):
        from sora_assistant.assistant.announce import LiveRegion

        region = LiveRegion()
        region.add_listener(MagicMock(side_effect=RuntimeError("reader gone")))
        region.announce("hello")
        assert region.text == "hello"

    def test_console_live_region(self):
        from sora_assistant.assistant.announce import ConsoleLiveRegion

        out = io.StringIO()
        region = ConsoleLiveRegion(Console(file=out, width=120))
        region.announce("Sora says: a chair on your left")
        assert "Sora says: a chair on your left" in out.getvalue()

    def test_notifier(self):
        from sora_assistant.assistant.announce import Notifier

        out = io.StringIO()
        notifier = Notifier(Console(file=out, width=120))
        notifier.info("Voice activation on")
        notifier.error("Analysis failed")

        assert notifier.history == [("info", "Voice activation on"), ("error", "Analysis failed")]
        assert "Analysis failed" in out.getvalue()


class TestChimes:
    """Tests for feedback chimes."""

    def test_chime_sounds(self):
        from sora_assistant.assistant.chimes import ChimeSounds

        chimes = ChimeSounds(sample_rate=16000)

        wake = chimes.wake_chime()
        assert wake.dtype == np.int16
        assert len(wake) > 0

        error = chimes.error_chime()
        assert len(error) == int(16000 * 0.3)
        assert np.abs(error).max() <= 32767

    def test_player_uses_sounddevice(self):
        from sora_assistant.assistant.chimes import ChimePlayer

        fake_sd = MagicMock()
        with patch.dict(sys.modules, {"sounddevice": fake_sd}):
            player = ChimePlayer()
        assert player.available

        player.wake()
        audio, rate = fake_sd.play.call_args[0]
        assert audio.dtype == np.float32
        assert rate == 24000

    def test_player_without_sounddevice(self):
        from sora_assistant.assistant.chimes import ChimePlayer

        with patch.dict(sys.modules, {"sounddevice": None}):
            player = ChimePlayer()
        assert not player.available
        player.error()  # no-op
