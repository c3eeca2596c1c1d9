"""
Tests for continuous recognition: session restart policy and the
SpeechRecognition engine adapter.
"""

import asyncio
import sys
import threading
import time
from unittest.mock import MagicMock, patch

import pytest

from sora_assistant.assistant.recognition import (
    RESTART_EXHAUSTED,
    ContinuousRecognitionSession,
    Ended,
    EngineResult,
    Error,
    FinalTranscript,
    ListeningState,
    RecognitionEngine,
    SpeechRecognitionEngine,
    Started,
    create_recognition_engine,
)
from sora_assistant.config import RecognitionConfig


class FakeEngine(RecognitionEngine):
    """Engine that reports Started on start() and Ended on stop()."""

    def __init__(self, fail_starts: int = 0):
        self.emit = None
        self.start_calls = 0
        self.stop_calls = 0
        self.fail_starts = fail_starts

    def start(self, emit):
        self.start_calls += 1
        if self.fail_starts:
            self.fail_starts -= 1
            raise RuntimeError("engine busy")
        self.emit = emit
        emit(Started())

    def stop(self):
        self.stop_calls += 1
        self.emit(Ended())


class SleepRecorder:
    """Stand-in for asyncio.sleep that records delays and returns at once."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


async def _next(events):
    return await asyncio.wait_for(events.__anext__(), timeout=1.0)


def _session(engine, sleep=None, clock=None, **config):
    kwargs = {"sleep": sleep or SleepRecorder()}
    if clock is not None:
        kwargs["clock"] = clock
    return ContinuousRecognitionSession(engine, RecognitionConfig(**config), **kwargs)


class TestTranscripts:
    """Tests for result filtering."""

    def test_final_results_are_normalized(self):
        """Interim and blank results are dropped, finals are trimmed and lower-cased."""

        async def scenario():
            engine = FakeEngine()
            session = _session(engine)
            assert await session.start()
            events = session.events()
            assert await _next(events) == Started()

            engine.emit(EngineResult("  Hey Sora What's Ahead ", is_final=False))
            engine.emit(EngineResult("   ", is_final=True))
            engine.emit(EngineResult("  Hey Sora What's Ahead ", is_final=True))
            assert await _next(events) == FinalTranscript("hey sora what's ahead")
            await session.close()

        asyncio.run(scenario())

    def test_signals_from_other_threads(self):
        """Engines may emit from their own threads."""

        async def scenario():
            engine = FakeEngine()
            session = _session(engine)
            await session.start()
            events = session.events()
            await _next(events)

            thread = threading.Thread(target=lambda: engine.emit(EngineResult("Hey Sora")))
            thread.start()
            assert await _next(events) == FinalTranscript("hey sora")
            thread.join()
            await session.close()

        asyncio.run(scenario())


class TestRestartPolicy:
    """Tests for automatic restarts."""

    def test_end_is_followed_by_one_restart(self):
        """A spontaneous end restarts once after the fixed delay."""

        async def scenario():
            engine = FakeEngine()
            sleep = SleepRecorder()
            session = _session(engine, sleep=sleep, healthy_uptime_s=0.0)
            await session.start()
            events = session.events()
            assert await _next(events) == Started()

            engine.emit(Ended())
            assert await _next(events) == Ended()
            assert await _next(events) == Started()

            assert engine.start_calls == 2
            assert sleep.delays == [1.0]
            assert session.restart_attempts == 1
            assert session.state == ListeningState.LISTENING
            await session.close()

        asyncio.run(scenario())

    def test_first_quick_end_waits_base_delay(self):
        """A single quick end is not yet backed off."""

        async def scenario():
            engine = FakeEngine()
            sleep = SleepRecorder()
            session = ContinuousRecognitionSession(engine, RecognitionConfig(), clock=lambda: 0.0, sleep=sleep)
            await session.start()
            events = session.events()
            await _next(events)

            engine.emit(Ended())
            assert await _next(events) == Ended()
            assert await _next(events) == Started()
            assert sleep.delays == [1.0]
            await session.close()

        asyncio.run(scenario())

    def test_manual_stop_suppresses_only_that_restart(self):
        async def scenario():
            engine = FakeEngine()
            session = _session(engine, healthy_uptime_s=0.0)
            await session.start()
            events = session.events()
            await _next(events)

            await session.stop()
            assert await _next(events) == Ended()
            await asyncio.sleep(0)
            assert engine.start_calls == 1
            assert session.state == ListeningState.STOPPED

            assert await session.start()
            assert await _next(events) == Started()
            engine.emit(Ended())
            assert await _next(events) == Ended()
            assert await _next(events) == Started()
            assert engine.start_calls == 3
            await session.close()

        asyncio.run(scenario())

    @pytest.mark.parametrize("kind", ["not-allowed", "service-not-allowed"])
    def test_permission_errors_are_terminal(self, kind):
        async def scenario():
            engine = FakeEngine()
            session = _session(engine, healthy_uptime_s=0.0)
            await session.start()
            events = session.events()
            await _next(events)

            engine.emit(Error(kind))
            engine.emit(Ended())
            assert await _next(events) == Error(kind)
            assert await _next(events) == Ended()
            await asyncio.sleep(0)

            assert session.state == ListeningState.DISABLED
            assert engine.start_calls == 1
            assert await session.start() is False
            await session.close()

        asyncio.run(scenario())

    def test_transient_errors_restart(self):
        async def scenario():
            engine = FakeEngine()
            session = _session(engine, healthy_uptime_s=0.0)
            await session.start()
            events = session.events()
            await _next(events)

            engine.emit(Error("network"))
            engine.emit(Ended())
            assert await _next(events) == Error("network")
            assert await _next(events) == Ended()
            assert await _next(events) == Started()
            assert engine.start_calls == 2
            await session.close()

        asyncio.run(scenario())

    def test_quick_failures_back_off_then_give_up(self):
        """Quick consecutive ends double the delay (capped) until the session gives up."""

        async def scenario():
            engine = FakeEngine()
            sleep = SleepRecorder()
            session = _session(
                engine,
                sleep=sleep,
                clock=lambda: 0.0,
                healthy_uptime_s=5.0,
                max_restart_delay_s=3.0,
                max_restart_attempts=4,
            )
            await session.start()
            events = session.events()
            await _next(events)

            for _ in range(3):
                engine.emit(Ended())
                assert await _next(events) == Ended()
                assert await _next(events) == Started()

            engine.emit(Ended())
            assert await _next(events) == Ended()
            assert await _next(events) == Error(RESTART_EXHAUSTED)

            assert sleep.delays == [1.0, 2.0, 3.0]
            assert session.state == ListeningState.EXHAUSTED
            assert engine.start_calls == 4
            await session.close()

        asyncio.run(scenario())

    def test_healthy_run_resets_backoff(self):
        async def scenario():
            now = [0.0]
            engine = FakeEngine()
            sleep = SleepRecorder()
            session = _session(engine, sleep=sleep, clock=lambda: now[0], healthy_uptime_s=5.0)
            await session.start()
            events = session.events()
            await _next(events)

            for _ in range(2):
                engine.emit(Ended())  # after 0s: quick failure
                await _next(events)
                await _next(events)

            now[0] = 60.0
            engine.emit(Ended())  # after 60s: healthy
            await _next(events)
            await _next(events)

            assert sleep.delays == [1.0, 2.0, 1.0]
            await session.close()

        asyncio.run(scenario())

    def test_start_failure_is_retried(self):
        async def scenario():
            engine = FakeEngine(fail_starts=1)
            sleep = SleepRecorder()
            session = _session(engine, sleep=sleep)
            assert await session.start() is False
            events = session.events()

            assert await _next(events) == Started()
            assert engine.start_calls == 2
            assert sleep.delays == [1.0]
            await session.close()

        asyncio.run(scenario())


class TestSessionControl:
    """Tests for start/stop/toggle/close."""

    def test_unsupported(self):
        async def scenario():
            session = _session(None)
            assert session.is_supported is False
            assert await session.start() is False
            assert await session.start() is False
            assert session.state == ListeningState.UNSUPPORTED

        asyncio.run(scenario())

    def test_toggle_listening(self):
        async def scenario():
            engine = FakeEngine()
            session = _session(engine)
            assert await session.toggle_listening() is True
            assert await session.toggle_listening() is False
            assert engine.stop_calls == 1
            assert await session.toggle_listening() is True
            assert engine.start_calls == 2
            await session.close()

        asyncio.run(scenario())

    def test_close_ends_stream(self):
        async def scenario():
            engine = FakeEngine()
            session = _session(engine)
            await session.start()
            events = session.events()
            await _next(events)

            await session.close()
            remaining = [event async for event in events]
            assert remaining == [Ended()]
            assert engine.start_calls == 1

        asyncio.run(scenario())


def _fake_sr():
    fake = MagicMock()
    fake.UnknownValueError = type("UnknownValueError", (Exception,), {})
    fake.RequestError = type("RequestError", (Exception,), {})
    return fake


def _wait_for(signals, count, timeout=1.0):
    deadline = time.monotonic() + timeout
    while len(signals) < count and time.monotonic() < deadline:
        time.sleep(0.01)
    return signals


class TestSpeechRecognitionEngine:
    """Tests for the SpeechRecognition adapter (library mocked)."""

    @staticmethod
    def _make_engine(fake_sr):
        with patch.dict(sys.modules, {"speech_recognition": fake_sr}):
            return SpeechRecognitionEngine(calibration_s=0.0)

    def test_start_listens_in_background(self):
        fake_sr = _fake_sr()
        engine = self._make_engine(fake_sr)
        signals = []

        engine.start(signals.append)
        assert _wait_for(signals, 1) == [Started()]
        fake_sr.Recognizer.return_value.listen_in_background.assert_called_once()

        with pytest.raises(RuntimeError):
            engine.start(signals.append)

    def test_phrase_results(self):
        fake_sr = _fake_sr()
        engine = self._make_engine(fake_sr)
        signals = []
        engine.start(signals.append)
        _wait_for(signals, 1)

        callback = fake_sr.Recognizer.return_value.listen_in_background.call_args[0][1]
        recognizer = MagicMock()

        recognizer.recognize_google.return_value = "Hey Sora"
        callback(recognizer, MagicMock())
        recognizer.recognize_google.side_effect = fake_sr.UnknownValueError()
        callback(recognizer, MagicMock())

        assert signals == [Started(), EngineResult("Hey Sora", is_final=True)]

    def test_request_error_ends_listening(self):
        fake_sr = _fake_sr()
        engine = self._make_engine(fake_sr)
        signals = []
        engine.start(signals.append)
        _wait_for(signals, 1)

        stopper = fake_sr.Recognizer.return_value.listen_in_background.return_value
        callback = fake_sr.Recognizer.return_value.listen_in_background.call_args[0][1]
        recognizer = MagicMock()
        recognizer.recognize_google.side_effect = fake_sr.RequestError("offline")
        callback(recognizer, MagicMock())

        assert signals == [Started(), Error("network"), Ended()]
        stopper.assert_called_once_with(wait_for_stop=False)

    def test_microphone_denied(self):
        fake_sr = _fake_sr()
        engine = self._make_engine(fake_sr)
        fake_sr.Microphone.side_effect = PermissionError("denied")
        signals = []

        engine.start(signals.append)
        assert _wait_for(signals, 2) == [Error("not-allowed"), Ended()]

    def test_microphone_missing(self):
        fake_sr = _fake_sr()
        engine = self._make_engine(fake_sr)
        fake_sr.Microphone.side_effect = OSError("No Default Input Device Available")
        signals = []

        engine.start(signals.append)
        assert _wait_for(signals, 2) == [Error("audio-capture"), Ended()]

    def test_stop_emits_ended_once(self):
        fake_sr = _fake_sr()
        engine = self._make_engine(fake_sr)
        signals = []
        engine.start(signals.append)
        _wait_for(signals, 1)

        engine.stop()
        engine.stop()
        assert signals == [Started(), Ended()]


class TestFactory:
    def test_none_backend(self):
        assert create_recognition_engine("none") is None

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_recognition_engine("bogus")

    def test_missing_library(self):
        with patch.dict(sys.modules, {"speech_recognition": None}):
            assert create_recognition_engine("google") is None
