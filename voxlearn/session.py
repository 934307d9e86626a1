"""
Session controller for the recording lifecycle.

One actor thread drains a queue of actions and applies them to the
controller state one at a time. Anything slow (recorder start/stop,
transcription, the editor, LLM analysis, disk writes) runs as an effect on
the TaskRunner and reports back by sending another action.

    idle -> recording -> decision -> transcribing -> (edit) -> finalize
                                +-> discard (silent)
"""

import queue
import threading
import time
import unicodedata
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, Sequence
from uuid import uuid4

from .analysis import AnalysisClient
from .clients import Pasteboard, Recorder, SoundCue, SoundEffects, Transcriber, TranscriptEditor
from .context import get_app_context
from .corrections import detect_corrections
from .decision import RecordingDecision, decide
from .effects import CancelToken, Send, TaskRunner
from .input import HotKeyProcessor
from .learning import analyze_edit
from .metrics import (
    MetricsWriter, log_learning, log_recording_stopped, log_session_complete,
    log_transcription,
)
from .monitor import KeyEventMonitor
from .store import TranscriptionHistory, TranscriptPersistence, VocabularyStore, delete_file
from .types import (
    AppIdentity, ConfigSnapshot, GestureResult, GestureSignal, HotKeyState, InputEvent,
    Meter, RecordingSession, TextCorrection,
)


# Cancel ids
TRANSCRIPTION = "transcription"
METERING = "metering"
RECORDING = "recording"
CLEANUP = "cleanup"

FORCE_QUIT_PHRASES = ("force quit voxlearn", "force quit voxlearn now")


# Actions

@dataclass(frozen=True)
class HotKeyPressed:
    pass


@dataclass(frozen=True)
class HotKeyReleased:
    pass


@dataclass(frozen=True)
class StartRecording:
    locked: bool = False


@dataclass(frozen=True)
class RecordingStarted:
    source_app: Optional[AppIdentity] = None


@dataclass(frozen=True)
class StopRecording:
    pass


@dataclass(frozen=True)
class Cancel:
    pass


@dataclass(frozen=True)
class Discard:
    pass


@dataclass(frozen=True)
class AudioLevelUpdated:
    meter: Meter


@dataclass(frozen=True)
class TranscriptionResult:
    text: str
    audio_path: Path


@dataclass(frozen=True)
class TranscriptionError:
    error: str
    audio_path: Optional[Path] = None


@dataclass(frozen=True)
class TranscriptEdited:
    original_text: str
    edited_text: str
    auto_learn: bool
    duration: float
    audio_path: Path
    source_app: Optional[AppIdentity] = None


@dataclass(frozen=True)
class Shutdown:
    pass


@dataclass
class ControllerState:
    is_recording: bool = False
    is_transcribing: bool = False
    recording_session: Optional[RecordingSession] = None
    source_app: Optional[AppIdentity] = None
    duration: float = 0.0
    meter: Meter = field(default_factory=Meter)
    error: Optional[str] = None
    session_id: Optional[str] = None
    is_shut_down: bool = False


def is_force_quit_command(text: str) -> bool:
    """Case/diacritic-insensitive match of "force quit voxlearn [now]"."""
    folded = unicodedata.normalize("NFKD", text.casefold())
    folded = "".join(c for c in folded if not unicodedata.combining(c))
    words = "".join(c if c.isalnum() else " " for c in folded).split()
    return " ".join(words) in FORCE_QUIT_PHRASES


class SessionController:
    """
    Top-level recording state machine.

    Usage:
        controller = SessionController(
            config_snapshot_fn=config.snapshot,
            recorder=recorder, transcriber=transcriber, editor=editor,
            pasteboard=pasteboard, sounds=sounds, monitor=monitor,
            vocabulary=vocabulary, history=history, persistence=persistence,
        )
        controller.start()
        ...
        controller.shutdown()
    """

    def __init__(
        self,
        config_snapshot_fn: Callable[[], ConfigSnapshot],
        recorder: Recorder,
        transcriber: Transcriber,
        editor: TranscriptEditor,
        pasteboard: Pasteboard,
        sounds: SoundEffects,
        monitor: KeyEventMonitor,
        vocabulary: VocabularyStore,
        history: TranscriptionHistory,
        persistence: TranscriptPersistence,
        analysis_client: Optional[AnalysisClient] = None,
        metrics: Optional[MetricsWriter] = None,
        app_context_fn: Callable[[], Optional[AppIdentity]] = get_app_context,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config_snapshot_fn = config_snapshot_fn
        self.recorder = recorder
        self.transcriber = transcriber
        self.editor = editor
        self.pasteboard = pasteboard
        self.sounds = sounds
        self.monitor = monitor
        self.vocabulary = vocabulary
        self.history = history
        self.persistence = persistence
        self.analysis_client = analysis_client
        self.metrics = metrics
        self.app_context_fn = app_context_fn
        self.clock = clock

        self.state = ControllerState()

        snapshot = config_snapshot_fn()
        self.processor = HotKeyProcessor(
            snapshot.hotkey,
            minimum_key_time=snapshot.minimum_key_time,
            use_double_tap_only=snapshot.use_double_tap_only,
            double_tap_window=snapshot.double_tap_threshold,
            clock=clock,
        )

        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._runner = TaskRunner(send=self.send, background_ids=(METERING,))
        # Recorder start/stop run in the order the actor submits them
        self._recorder_calls = ThreadPoolExecutor(max_workers=1, thread_name_prefix="recorder")
        self._thread: Optional[threading.Thread] = None
        self._closed = threading.Event()

    # Lifecycle

    def start(self) -> None:
        """Start the actor, audio metering and the hotkey monitor."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="session-controller", daemon=True)
        self._thread.start()

        self._runner.run(METERING, self._meter_effect)
        self.monitor.start(self.handle_input)
        print(f"[Session] Ready, hotkey: {self.processor.hotkey}")

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop the monitor, cancel every effect and stop the actor."""
        if self._thread is None:
            return
        self.send(Shutdown())
        if threading.current_thread() is not self._thread:
            self._closed.wait(timeout)
        self._runner.shutdown(wait=False)
        self._recorder_calls.shutdown(wait=False)

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """Block until the actor has processed Shutdown."""
        return self._closed.wait(timeout)

    def send(self, action: Any) -> None:
        """Enqueue an action. Safe from any thread."""
        self._queue.put(action)

    def wait_until_idle(self, timeout: float = 5.0) -> bool:
        """
        Wait until no action is queued and no effect other than metering runs.

        Returns:
            False on timeout
        """
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self._queue.unfinished_tasks == 0 and not self._runner.has_pending():
                return True
            time.sleep(0.01)
        return False

    def apply_config(self, snapshot: Optional[ConfigSnapshot] = None) -> None:
        """Push hotkey settings to the processor between events."""
        snapshot = snapshot or self.config_snapshot_fn()
        self.processor.update_config(
            hotkey=snapshot.hotkey,
            minimum_key_time=snapshot.minimum_key_time,
            use_double_tap_only=snapshot.use_double_tap_only,
            double_tap_window=snapshot.double_tap_threshold,
        )

    # Monitor callback: only enqueues

    def handle_input(self, event: InputEvent) -> GestureResult:
        self.apply_config()
        result = self.processor.handle(event)

        if result.signal is GestureSignal.START:
            if self.processor.state is HotKeyState.DOUBLE_TAP_LOCKED:
                self.send(StartRecording(locked=True))
            else:
                self.send(HotKeyPressed())
        elif result.signal is GestureSignal.STOP:
            self.send(HotKeyReleased())
        elif result.signal is GestureSignal.CANCEL:
            self.send(Cancel())
        elif result.signal is GestureSignal.DISCARD:
            self.send(Discard())

        return result

    # Actor

    def _run(self) -> None:
        while True:
            action = self._queue.get()
            try:
                self._reduce(action)
            except Exception as e:
                print(f"[Session] Error handling {type(action).__name__}: {e}")
            finally:
                self._queue.task_done()

            if isinstance(action, Shutdown):
                break

        self._closed.set()

    def _reduce(self, action: Any) -> None:
        if isinstance(action, HotKeyPressed):
            # Starting over supersedes an in-flight transcription
            if self.state.is_transcribing:
                self._cancel()
            self._start_recording(locked=False)
        elif isinstance(action, StartRecording):
            self._start_recording(action.locked)
        elif isinstance(action, RecordingStarted):
            if self.state.is_recording:
                self.state.source_app = action.source_app
        elif isinstance(action, HotKeyReleased):
            if self.state.is_recording:
                self._stop_recording()
        elif isinstance(action, StopRecording):
            self._stop_recording()
        elif isinstance(action, Cancel):
            self._cancel()
        elif isinstance(action, Discard):
            self._discard()
        elif isinstance(action, AudioLevelUpdated):
            self.state.meter = action.meter
        elif isinstance(action, TranscriptionResult):
            self._transcription_result(action)
        elif isinstance(action, TranscriptionError):
            self._transcription_error(action)
        elif isinstance(action, TranscriptEdited):
            self._transcript_edited(action)
        elif isinstance(action, Shutdown):
            self._shutdown()
        else:
            raise ValueError(f"Unknown action: {action!r}")

    # Recording

    def _start_recording(self, locked: bool) -> None:
        if self.state.is_recording:
            return

        self.state.is_recording = True
        self.state.error = None
        self.state.source_app = None
        self.state.session_id = uuid4().hex[:12]
        self.state.recording_session = RecordingSession(
            start_time=self.clock(),
            double_tap_locked=locked,
        )
        print(f"[Session] Recording started{' (locked)' if locked else ''}")

        if self.metrics:
            self.metrics.log(
                "recording_started",
                session_id=self.state.session_id,
                double_tap_locked=locked,
            )

        started = self._recorder_calls.submit(self._begin_capture)

        def effect(token: CancelToken, send: Send) -> None:
            started.result()
            send(RecordingStarted(source_app=self.app_context_fn()))

        self._runner.run(RECORDING, effect)

    def _begin_capture(self) -> None:
        self.sounds.play(SoundCue.START_RECORDING)
        self.recorder.start_recording()

    def _stop_recording(self) -> None:
        if not self.state.is_recording:
            return

        snapshot = self.config_snapshot_fn()
        session = self.state.recording_session
        now = self.clock()

        self.state.is_recording = False
        self.state.recording_session = None

        start_time = session.start_time if session else None
        locked = session.double_tap_locked if session else False
        duration = now - start_time if start_time is not None else 0.0

        decision = decide(
            snapshot.hotkey,
            snapshot.minimum_key_time,
            start_time,
            now,
            double_tap_locked=locked,
        )

        if self.metrics:
            log_recording_stopped(
                self.metrics, self.state.session_id or "", decision.value, duration, locked,
            )

        if decision is RecordingDecision.DISCARD_SHORT:
            print(f"[Session] Discarding short recording ({duration:.2f}s)")
            self._run_cleanup(stop_recorder=True, play_cancel=False)
            return

        self.state.is_transcribing = True
        self.state.duration = duration

        hotwords = self.vocabulary.hotwords
        language = snapshot.language
        session_id = self.state.session_id or ""
        stopped = self._recorder_calls.submit(self._end_capture)

        def effect(token: CancelToken, send: Send) -> None:
            try:
                audio_path = stopped.result()
            except Exception as e:
                print(f"[Session] Recorder failed to stop: {e}")
                send(TranscriptionError(error=str(e)))
                return
            if token.cancelled:
                delete_file(audio_path)
                return

            start = time.time()
            try:
                text = self.transcriber.transcribe(audio_path, hotwords, language)
            except Exception as e:
                print(f"[Session] Transcription failed: {e}")
                send(TranscriptionError(error=str(e), audio_path=audio_path))
                if token.cancelled:
                    delete_file(audio_path)
                return

            if token.cancelled:
                delete_file(audio_path)
                return

            if self.metrics:
                latency_ms = int((time.time() - start) * 1000)
                log_transcription(self.metrics, session_id, latency_ms, text, len(hotwords))
            send(TranscriptionResult(text=text, audio_path=audio_path))

        print(f"[Session] Transcribing {duration:.1f}s recording")
        self._runner.run(TRANSCRIPTION, effect)

    def _cancel(self) -> None:
        if not (self.state.is_recording or self.state.is_transcribing):
            return

        was_recording = self.state.is_recording
        self.state.is_recording = False
        self.state.is_transcribing = False
        self.state.recording_session = None

        print("[Session] Cancelled")
        self._runner.cancel(TRANSCRIPTION)
        if self.metrics:
            self.metrics.log("session_cancelled", session_id=self.state.session_id)
        self._run_cleanup(stop_recorder=was_recording, play_cancel=True)

    def _discard(self) -> None:
        if not self.state.is_recording:
            return

        self.state.is_recording = False
        self.state.recording_session = None

        print("[Session] Discarded")
        self._run_cleanup(stop_recorder=True, play_cancel=False)

    def _end_capture(self) -> Path:
        self.sounds.play(SoundCue.STOP_RECORDING)
        return self.recorder.stop_recording()

    def _run_cleanup(self, stop_recorder: bool, play_cancel: bool) -> None:
        stopped: Optional[Future] = None
        if stop_recorder:
            stopped = self._recorder_calls.submit(self.recorder.stop_recording)

        def effect(token: CancelToken, send: Send) -> None:
            if stopped is not None:
                delete_file(stopped.result())
            if play_cancel:
                self.sounds.play(SoundCue.CANCEL)

        self._runner.run(CLEANUP, effect)

    # Transcription results

    def _transcription_result(self, action: TranscriptionResult) -> None:
        self.state.is_transcribing = False
        audio_path = action.audio_path

        if is_force_quit_command(action.text):
            print("[Session] Force quit voice command recognized, shutting down")
            delete_file(audio_path)
            self.send(Shutdown())
            return

        if not action.text:
            print("[Session] Empty transcription")
            delete_file(audio_path)
            return

        snapshot = self.config_snapshot_fn()
        text = self.vocabulary.apply(action.text, snapshot.word_removals_enabled)
        if text != action.text:
            print(f"[Session] Vocabulary rules: '{action.text}' -> '{text}'")

        if not text:
            delete_file(audio_path)
            return

        duration = self.state.duration
        source_app = self.state.source_app

        if snapshot.enable_instant_edit:
            source_name = source_app.name if source_app else None

            def edit_effect(token: CancelToken, send: Send) -> None:
                result = self.editor.show(text, duration, source_name)
                if token.cancelled:
                    print("[Session] Edit superseded by a newer session")
                    delete_file(audio_path)
                    return
                if result is None:
                    print("[Session] Edit cancelled")
                    delete_file(audio_path)
                    return
                send(TranscriptEdited(
                    original_text=text,
                    edited_text=result.edited_text,
                    auto_learn=result.auto_learn,
                    duration=duration,
                    audio_path=audio_path,
                    source_app=source_app,
                ))

            self._runner.run(TRANSCRIPTION, edit_effect)
            return

        session_id = self.state.session_id or ""

        def finalize_effect(token: CancelToken, send: Send) -> None:
            try:
                self._finalize(
                    snapshot, session_id, text, audio_path, duration, source_app,
                    original_text=None, corrections=[], from_instant_edit=False,
                )
            except Exception as e:
                send(TranscriptionError(error=str(e), audio_path=audio_path))

        self._runner.run(TRANSCRIPTION, finalize_effect)

    def _transcript_edited(self, action: TranscriptEdited) -> None:
        self.state.is_transcribing = False

        snapshot = self.config_snapshot_fn()
        session_id = self.state.session_id or ""
        should_learn = action.auto_learn and action.edited_text != action.original_text

        def effect(token: CancelToken, send: Send) -> None:
            corrections = detect_corrections(action.original_text, action.edited_text)

            if should_learn:
                outcome = analyze_edit(
                    action.original_text,
                    action.edited_text,
                    snapshot.correction_analysis_mode,
                    snapshot.llm_config,
                    client=self.analysis_client,
                    language=snapshot.language,
                )
                self.vocabulary.merge(outcome.corrections, outcome.hotwords)
                print(
                    f"[Learn] {outcome.source.value}: {len(outcome.corrections)} corrections, "
                    f"{len(outcome.hotwords)} hotwords"
                )
                if self.metrics:
                    log_learning(
                        self.metrics, session_id,
                        snapshot.correction_analysis_mode.value, outcome.source.value,
                        len(outcome.corrections), len(outcome.hotwords),
                    )

            try:
                self._finalize(
                    snapshot, session_id, action.edited_text, action.audio_path,
                    action.duration, action.source_app,
                    original_text=action.original_text,
                    corrections=corrections,
                    from_instant_edit=True,
                )
            except Exception as e:
                send(TranscriptionError(error=str(e), audio_path=action.audio_path))

        self._runner.run(TRANSCRIPTION, effect)

    def _transcription_error(self, action: TranscriptionError) -> None:
        self.state.is_transcribing = False
        self.state.error = action.error
        print(f"[Session] Error: {action.error}")
        delete_file(action.audio_path)

    def _finalize(
        self,
        snapshot: ConfigSnapshot,
        session_id: str,
        text: str,
        audio_path: Path,
        duration: float,
        source_app: Optional[AppIdentity],
        original_text: Optional[str],
        corrections: Sequence[TextCorrection],
        from_instant_edit: bool,
    ) -> None:
        """Store the transcript (or drop the audio), paste, and play the cue. Runs in an effect."""
        if snapshot.save_transcription_history:
            transcript = self.persistence.save(
                text,
                audio_path,
                duration,
                source_app.bundle_id if source_app else None,
                source_app.name if source_app else None,
            )
            if original_text is not None and original_text != text:
                transcript.original_text = original_text
                transcript.corrections = list(corrections)

            evicted = self.history.insert(transcript, snapshot.max_history_entries)
            for old in evicted:
                self.persistence.delete_audio(old)
        else:
            delete_file(audio_path)

        if from_instant_edit:
            self.pasteboard.copy(text)
        self.pasteboard.paste(text)
        self.sounds.play(SoundCue.PASTE_TRANSCRIPT)

        print(f"[Session] Pasted: \"{text[:50]}\"")
        if self.metrics:
            log_session_complete(
                self.metrics, session_id, duration * 1000, text,
                edited=original_text is not None and original_text != text,
            )

    # Metering / shutdown

    def _meter_effect(self, token: CancelToken, send: Send) -> None:
        for meter in self.recorder.observe_audio_level(token):
            if token.cancelled:
                break
            send(AudioLevelUpdated(meter=meter))

    def _shutdown(self) -> None:
        if self.state.is_shut_down:
            return
        self.state.is_shut_down = True

        self.monitor.stop()
        self._runner.cancel_all()

        if self.state.is_recording:
            self.state.is_recording = False
            self.state.recording_session = None
            stopped = self._recorder_calls.submit(self.recorder.stop_recording)
            try:
                delete_file(stopped.result(timeout=5.0))
            except Exception as e:
                print(f"[Session] Recorder failed to stop: {e}")

        self.state.is_transcribing = False
        print("[Session] Shut down")
