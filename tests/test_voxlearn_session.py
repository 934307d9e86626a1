"""
Tests for the voxlearn SessionController.

Drives the controller end to end with a scripted key monitor, a fake
recorder/transcriber and Mock output collaborators.
"""

import threading
import time
from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from voxlearn.clients import Recorder, Transcriber


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeRecorder(Recorder):
    """Writes a small placeholder file per stop."""

    def __init__(self, directory):
        self.directory = directory
        self.started = 0
        self.stopped = []

    def start_recording(self):
        self.started += 1

    def stop_recording(self):
        path = self.directory / f"capture-{len(self.stopped)}.wav"
        path.write_bytes(b"RIFF0000WAVE")
        self.stopped.append(path)
        return path

    def observe_audio_level(self, token):
        from voxlearn.types import Meter

        yield Meter(average_power=-30.0, peak_power=-12.0)
        token.wait()


class FakeTranscriber(Transcriber):
    def __init__(self, text="", error=None, gate=None):
        self.text = text
        self.error = error
        self.gate = gate
        self.calls = []
        self.entered = threading.Event()

    def transcribe(self, audio_path, hotwords=(), language=None):
        self.calls.append((audio_path, tuple(hotwords), language))
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(2.0)
        if self.error is not None:
            raise self.error
        return self.text


def make_snapshot(**overrides):
    from voxlearn.types import ConfigSnapshot, CorrectionAnalysisMode, HotKey, LLMConfig

    values = dict(
        hotkey=HotKey.parse("option"),
        minimum_key_time=0.2,
        use_double_tap_only=False,
        double_tap_threshold=0.3,
        language=None,
        transcription_model="whisper-large-v3",
        enable_instant_edit=False,
        save_transcription_history=True,
        max_history_entries=None,
        word_removals_enabled=False,
        correction_analysis_mode=CorrectionAnalysisMode.TRADITIONAL,
        llm_config=LLMConfig(),
        groq_api_key="gsk_test",
    )
    values.update(overrides)
    return ConfigSnapshot(**values)


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def option_down():
    from voxlearn.types import KeyEvent, Modifier

    return KeyEvent(key=None, modifiers=frozenset({Modifier.OPTION}))


def all_up():
    from voxlearn.types import KeyEvent

    return KeyEvent(key=None, modifiers=frozenset())


def cues(sounds):
    return [c.args[0] for c in sounds.play.call_args_list]


class TestSessionController:
    """End-to-end controller flows."""

    @pytest.fixture
    def make(self, tmp_path):
        controllers = []

        def factory(transcriber=None, vocabulary=None, analysis_client=None, **overrides):
            from voxlearn.clients import Pasteboard, SoundEffects, TranscriptEditor
            from voxlearn.monitor import ScriptedKeyEventMonitor
            from voxlearn.session import SessionController
            from voxlearn.store import TranscriptionHistory, TranscriptPersistence, VocabularyStore
            from voxlearn.types import AppIdentity

            capture_dir = tmp_path / "tmp"
            capture_dir.mkdir(exist_ok=True)

            h = SimpleNamespace()
            h.clock = FakeClock()
            h.snapshot = make_snapshot(**overrides)
            h.recorder = FakeRecorder(capture_dir)
            h.transcriber = transcriber or FakeTranscriber("hello world")
            h.editor = Mock(spec=TranscriptEditor)
            h.pasteboard = Mock(spec=Pasteboard)
            h.sounds = Mock(spec=SoundEffects)
            h.monitor = ScriptedKeyEventMonitor()
            h.vocabulary = vocabulary or VocabularyStore()
            h.history = TranscriptionHistory()
            h.recordings = tmp_path / "recordings"
            h.metrics = Mock()
            h.controller = SessionController(
                config_snapshot_fn=lambda: h.snapshot,
                recorder=h.recorder,
                transcriber=h.transcriber,
                editor=h.editor,
                pasteboard=h.pasteboard,
                sounds=h.sounds,
                monitor=h.monitor,
                vocabulary=h.vocabulary,
                history=h.history,
                persistence=TranscriptPersistence(h.recordings),
                analysis_client=analysis_client,
                metrics=h.metrics,
                app_context_fn=lambda: AppIdentity(bundle_id="com.apple.Notes", name="Notes"),
                clock=h.clock,
            )
            h.controller.start()
            controllers.append(h.controller)

            def feed(event, at=None):
                if at is not None:
                    h.clock.now = at
                result = h.monitor.feed(event)
                assert h.controller.wait_until_idle(timeout=3.0)
                return result

            h.feed = feed
            return h

        yield factory

        for controller in controllers:
            controller.shutdown(timeout=2.0)

    def test_hold_records_transcribes_and_pastes(self, make):
        from voxlearn.clients import SoundCue
        from voxlearn.store import Vocabulary, VocabularyStore
        from voxlearn.types import WordRemapping

        vocabulary = VocabularyStore(initial=Vocabulary(
            hotwords=["Anthropic"],
            remappings=[WordRemapping(match="antropic", replacement="Anthropic")],
        ))
        h = make(transcriber=FakeTranscriber("I use antropic API"), vocabulary=vocabulary, language="en")

        h.feed(option_down(), at=0.0)
        assert h.controller.state.is_recording
        assert h.controller.state.source_app.name == "Notes"

        h.feed(all_up(), at=1.5)

        h.pasteboard.paste.assert_called_once_with("I use Anthropic API")
        h.pasteboard.copy.assert_not_called()
        assert h.transcriber.calls[0][1:] == (("Anthropic",), "en")
        assert cues(h.sounds) == [
            SoundCue.START_RECORDING, SoundCue.STOP_RECORDING, SoundCue.PASTE_TRANSCRIPT,
        ]

        entry = h.history.entries[0]
        assert entry.text == "I use Anthropic API"
        assert entry.duration == pytest.approx(1.5)
        assert entry.source_app_name == "Notes"
        assert entry.audio_path.parent == h.recordings
        assert entry.audio_path.exists()
        assert not h.recorder.stopped[0].exists()
        assert entry.was_edited is False

        events = [c.args[0] for c in h.metrics.log.call_args_list]
        assert events == ["recording_started", "recording_stopped", "transcription", "session_complete"]

    def test_short_tap_is_discarded(self, make):
        from voxlearn.clients import SoundCue

        h = make()

        h.feed(option_down(), at=0.0)
        h.feed(all_up(), at=0.1)

        assert h.transcriber.calls == []
        h.pasteboard.paste.assert_not_called()
        assert cues(h.sounds) == [SoundCue.START_RECORDING]
        assert len(h.recorder.stopped) == 1
        assert not h.recorder.stopped[0].exists()
        assert h.history.entries == ()
        assert h.metrics.log.call_args_list[1].kwargs["decision"] == "discard_short"

    def test_key_bound_hotkey_is_never_too_short(self, make):
        from voxlearn.types import HotKey, KeyEvent

        h = make(hotkey=HotKey.parse("f17"))

        h.feed(KeyEvent(key="f17"), at=0.0)
        h.feed(KeyEvent(key="f17", is_key_up=True), at=0.05)

        h.pasteboard.paste.assert_called_once_with("hello world")

    def test_double_tap_lock_survives_release(self, make):
        h = make()

        h.feed(option_down(), at=0.0)
        h.feed(all_up(), at=0.1)  # first tap: discarded
        h.feed(option_down(), at=0.2)  # second tap: locked
        assert h.controller.state.recording_session.double_tap_locked
        h.feed(all_up(), at=0.3)
        assert h.controller.state.is_recording

        # Locked sessions are exempt from the minimum hold
        h.feed(option_down(), at=0.35)

        assert h.recorder.started == 2
        assert len(h.recorder.stopped) == 2
        assert len(h.transcriber.calls) == 1
        assert h.transcriber.calls[0][0] == h.recorder.stopped[1]
        h.pasteboard.paste.assert_called_once_with("hello world")

    def test_escape_cancels_recording(self, make):
        from voxlearn.clients import SoundCue
        from voxlearn.types import KeyEvent

        h = make()

        h.feed(option_down(), at=0.0)
        result = h.feed(KeyEvent(key="escape"), at=1.0)
        h.feed(all_up(), at=1.1)

        assert result.consumed is True
        assert not h.controller.state.is_recording
        assert h.transcriber.calls == []
        assert cues(h.sounds) == [SoundCue.START_RECORDING, SoundCue.CANCEL]
        assert not h.recorder.stopped[0].exists()

    def test_escape_cancels_transcription(self, make):
        from voxlearn.clients import SoundCue
        from voxlearn.types import KeyEvent

        gate = threading.Event()
        h = make(transcriber=FakeTranscriber("too late", gate=gate))

        h.feed(option_down(), at=0.0)
        h.clock.now = 1.0
        h.monitor.feed(all_up())
        assert h.transcriber.entered.wait(2.0)
        assert h.controller.state.is_transcribing

        h.feed(KeyEvent(key="escape"), at=1.2)
        assert not h.controller.state.is_transcribing
        gate.set()

        assert wait_for(lambda: not h.recorder.stopped[0].exists())
        assert h.controller.wait_until_idle(timeout=2.0)
        h.pasteboard.paste.assert_not_called()
        assert SoundCue.CANCEL in cues(h.sounds)

    def test_new_press_supersedes_transcription(self, make):
        gate = threading.Event()
        h = make(transcriber=FakeTranscriber("stale", gate=gate))

        h.feed(option_down(), at=0.0)
        h.clock.now = 1.0
        h.monitor.feed(all_up())
        assert h.transcriber.entered.wait(2.0)

        h.feed(option_down(), at=2.0)
        assert h.controller.state.is_recording
        assert not h.controller.state.is_transcribing

        gate.set()
        assert wait_for(lambda: not h.recorder.stopped[0].exists())
        h.pasteboard.paste.assert_not_called()

        # Shutting down mid-recording stops the recorder and drops the audio
        h.controller.shutdown(timeout=2.0)
        assert len(h.recorder.stopped) == 2
        assert not h.recorder.stopped[1].exists()
        assert h.monitor.is_running is False

    def test_mouse_click_discards_short_hold(self, make):
        from voxlearn.clients import SoundCue
        from voxlearn.types import MouseClick

        h = make()

        h.feed(option_down(), at=0.0)
        result = h.feed(MouseClick(), at=0.1)
        h.feed(all_up(), at=0.15)

        assert result.consumed is False
        assert h.transcriber.calls == []
        assert cues(h.sounds) == [SoundCue.START_RECORDING]
        assert not h.recorder.stopped[0].exists()

    def test_instant_edit_learns_and_pastes(self, make):
        from voxlearn.types import EditResult

        h = make(transcriber=FakeTranscriber("I use antropic api"), enable_instant_edit=True)
        h.editor.show.return_value = EditResult(edited_text="I use Anthropic API")

        h.feed(option_down(), at=0.0)
        h.feed(all_up(), at=1.0)

        h.editor.show.assert_called_once_with("I use antropic api", pytest.approx(1.0), "Notes")
        h.pasteboard.copy.assert_called_once_with("I use Anthropic API")
        h.pasteboard.paste.assert_called_once_with("I use Anthropic API")

        assert h.vocabulary.hotwords == ("Anthropic", "API")
        assert [(r.match, r.replacement) for r in h.vocabulary.remappings] == [
            ("antropic", "Anthropic"),
            ("api", "API"),
        ]

        entry = h.history.entries[0]
        assert entry.original_text == "I use antropic api"
        assert entry.was_edited
        assert [c.corrected for c in entry.corrections] == ["Anthropic", "API"]

        learning = [c for c in h.metrics.log.call_args_list if c.args[0] == "learning"]
        assert learning[0].kwargs["source"] == "Traditional"

    def test_instant_edit_without_auto_learn(self, make):
        from voxlearn.types import EditResult

        h = make(transcriber=FakeTranscriber("I use antropic api"), enable_instant_edit=True)
        h.editor.show.return_value = EditResult(edited_text="I use Anthropic API", auto_learn=False)

        h.feed(option_down(), at=0.0)
        h.feed(all_up(), at=1.0)

        h.pasteboard.paste.assert_called_once_with("I use Anthropic API")
        assert h.vocabulary.hotwords == ()
        assert h.vocabulary.remappings == ()
        assert h.history.entries[0].original_text == "I use antropic api"

    def test_instant_edit_cancelled(self, make):
        h = make(enable_instant_edit=True)
        h.editor.show.return_value = None

        h.feed(option_down(), at=0.0)
        h.feed(all_up(), at=1.0)

        h.pasteboard.paste.assert_not_called()
        assert h.history.entries == ()
        assert not h.recorder.stopped[0].exists()

    def test_superseded_edit_drops_first_session(self, make):
        from voxlearn.types import EditResult

        release = threading.Event()
        shown = []

        def show(text, duration, source_app_name):
            shown.append(text)
            if len(shown) == 1:
                release.wait(2.0)
                return EditResult(edited_text="first edited")
            return EditResult(edited_text="second edited")

        h = make(enable_instant_edit=True)
        h.editor.show.side_effect = show

        # The open editor keeps an effect pending, so feed without waiting for idle
        h.monitor.feed(option_down())
        h.clock.now = 1.0
        h.monitor.feed(all_up())
        assert wait_for(lambda: len(shown) == 1)

        h.clock.now = 2.0
        h.monitor.feed(option_down())
        assert wait_for(lambda: h.controller.state.is_recording)
        h.clock.now = 3.0
        h.monitor.feed(all_up())
        assert wait_for(lambda: h.pasteboard.paste.called)

        release.set()
        assert wait_for(lambda: not h.recorder.stopped[0].exists())
        assert h.controller.wait_until_idle(timeout=3.0)

        h.pasteboard.paste.assert_called_once_with("second edited")
        assert [e.text for e in h.history.entries] == ["second edited"]
        assert h.history.entries[0].audio_path.exists()

    def test_llm_analysis_mode(self, make):
        from voxlearn.analysis import StaticAnalysisClient
        from voxlearn.types import (
            CorrectionAnalysisMode, EditResult, LLMAnalysisResponse, TextCorrection,
        )

        client = StaticAnalysisClient(LLMAnalysisResponse(
            corrections=[TextCorrection(original="grok", corrected="Groq")],
            hotwords=["Groq", "Whisper"],
        ))
        h = make(
            transcriber=FakeTranscriber("use grok whisper"),
            analysis_client=client,
            enable_instant_edit=True,
            correction_analysis_mode=CorrectionAnalysisMode.LLM,
            language="en",
        )
        h.editor.show.return_value = EditResult(edited_text="use Groq Whisper")

        h.feed(option_down(), at=0.0)
        h.feed(all_up(), at=1.0)

        assert len(client.requests) == 1
        assert client.requests[0].language == "en"
        assert h.vocabulary.hotwords == ("Groq", "Whisper")
        learning = [c for c in h.metrics.log.call_args_list if c.args[0] == "learning"]
        assert learning[0].kwargs["mode"] == "LLM"
        assert learning[0].kwargs["source"] == "LLM"

    def test_llm_failure_falls_back_to_traditional(self, make):
        from voxlearn.analysis import APIError, StaticAnalysisClient
        from voxlearn.types import CorrectionAnalysisMode, EditResult

        h = make(
            transcriber=FakeTranscriber("use grok"),
            analysis_client=StaticAnalysisClient(error=APIError(503, "overloaded")),
            enable_instant_edit=True,
            correction_analysis_mode=CorrectionAnalysisMode.LLM,
        )
        h.editor.show.return_value = EditResult(edited_text="use Groq")

        h.feed(option_down(), at=0.0)
        h.feed(all_up(), at=1.0)

        h.pasteboard.paste.assert_called_once_with("use Groq")
        assert h.vocabulary.hotwords == ("Groq",)
        learning = [c for c in h.metrics.log.call_args_list if c.args[0] == "learning"]
        assert learning[0].kwargs["source"] == "Traditional"

    def test_transcription_error(self, make):
        h = make(transcriber=FakeTranscriber(error=RuntimeError("network down")))

        h.feed(option_down(), at=0.0)
        h.feed(all_up(), at=1.0)

        assert h.controller.state.error == "network down"
        assert not h.controller.state.is_transcribing
        assert not h.recorder.stopped[0].exists()
        h.pasteboard.paste.assert_not_called()

    def test_empty_transcription(self, make):
        h = make(transcriber=FakeTranscriber(""))

        h.feed(option_down(), at=0.0)
        h.feed(all_up(), at=1.0)

        h.pasteboard.paste.assert_not_called()
        assert h.history.entries == ()
        assert not h.recorder.stopped[0].exists()

    def test_word_removals(self, make):
        from voxlearn.store import Vocabulary, VocabularyStore
        from voxlearn.types import WordRemoval

        vocabulary = VocabularyStore(initial=Vocabulary(removals=[WordRemoval(pattern="um")]))
        h = make(transcriber=FakeTranscriber("um hello there"), vocabulary=vocabulary,
                 word_removals_enabled=True)

        h.feed(option_down(), at=0.0)
        h.feed(all_up(), at=1.0)

        h.pasteboard.paste.assert_called_once_with("hello there")

    def test_history_disabled(self, make):
        h = make(save_transcription_history=False)

        h.feed(option_down(), at=0.0)
        h.feed(all_up(), at=1.0)

        h.pasteboard.paste.assert_called_once_with("hello world")
        assert h.history.entries == ()
        assert not h.recorder.stopped[0].exists()

    def test_history_limit_deletes_evicted_audio(self, make):
        h = make(max_history_entries=1)

        h.feed(option_down(), at=0.0)
        h.feed(all_up(), at=1.0)
        first = h.history.entries[0]

        h.feed(option_down(), at=5.0)
        h.feed(all_up(), at=6.0)

        assert len(h.history.entries) == 1
        assert h.history.entries[0].id != first.id
        assert not first.audio_path.exists()
        assert h.history.entries[0].audio_path.exists()

    def test_force_quit_command(self, make):
        h = make(transcriber=FakeTranscriber("Force quit VoxLearn!"))

        h.feed(option_down(), at=0.0)
        h.clock.now = 1.0
        h.monitor.feed(all_up())

        assert h.controller.wait_closed(timeout=3.0)
        assert h.controller.state.is_shut_down
        assert h.monitor.is_running is False
        h.pasteboard.paste.assert_not_called()

    def test_apply_config_rebinds_hotkey(self, make):
        import dataclasses

        from voxlearn.types import HotKey, KeyEvent

        h = make()
        h.snapshot = dataclasses.replace(h.snapshot, hotkey=HotKey.parse("f18"))
        h.controller.apply_config()

        assert h.feed(option_down(), at=0.0).signal is None
        h.feed(KeyEvent(key="f18"), at=1.0)
        h.feed(KeyEvent(key="f18", is_key_up=True), at=2.0)

        h.pasteboard.paste.assert_called_once_with("hello world")

    def test_settings_change_reaches_processor_on_next_event(self, make):
        import dataclasses

        from voxlearn.types import HotKey, KeyEvent

        h = make()
        h.snapshot = dataclasses.replace(h.snapshot, hotkey=HotKey.parse("f18"))

        assert h.feed(option_down(), at=0.0).signal is None
        assert h.controller.processor.hotkey == HotKey.parse("f18")

        h.feed(KeyEvent(key="f18"), at=1.0)
        h.feed(KeyEvent(key="f18", is_key_up=True), at=2.0)

        h.pasteboard.paste.assert_called_once_with("hello world")


class TestForceQuitPhrase:
    """Tests for is_force_quit_command()."""

    @pytest.mark.parametrize("text,expected", [
        ("force quit voxlearn", True),
        ("Force quit VoxLearn now.", True),
        ("  FORCE QUIT, VOXLEARN!  ", True),
        ("force quit vöxlearn", True),
        ("please force quit voxlearn", False),
        ("force quit", False),
        ("", False),
    ])
    def test_phrases(self, text, expected):
        from voxlearn.session import is_force_quit_command

        assert is_force_quit_command(text) is expected
