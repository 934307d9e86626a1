"""
Main entry point for VoxLearn.

Run with: python -m voxlearn
"""

import argparse
import signal
import sys
from typing import Optional

from . import __version__
from .analysis import HTTPAnalysisClient
from .clients.groq import GroqTranscriber
from .clients.output import MacPasteboard, SystemSoundEffects, TerminalTranscriptEditor
from .clients.recorder import SoundDeviceRecorder
from .config import Config
from .metrics import MetricsWriter
from .monitor import PynputKeyEventMonitor
from .session import SessionController
from .store import TranscriptionHistory, TranscriptPersistence, VocabularyStore


controller: Optional[SessionController] = None
metrics: Optional[MetricsWriter] = None


def main(argv=None) -> int:
    """Main entry point."""
    global controller, metrics

    parser = argparse.ArgumentParser(prog="voxlearn", description="Dictation that learns from your corrections")
    parser.add_argument("--test-llm", action="store_true", help="check the LLM analysis endpoint and exit")
    parser.add_argument("--list-vocabulary", action="store_true", help="print learned hotwords and remappings")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args(argv)

    config = Config.load()

    if args.test_llm:
        return _test_llm(config)

    vocabulary = VocabularyStore.load(config.vocabulary_file)
    if args.list_vocabulary:
        _print_vocabulary(vocabulary)
        return 0

    print(f"VoxLearn v{__version__} starting...")

    try:
        snapshot = config.snapshot()
    except ValueError as e:
        print(f"Invalid settings: {e}")
        return 1

    if not snapshot.groq_api_key:
        print("GROQ_API_KEY is not set (environment, ./.env or ~/.voxlearn/.env)")
        return 1

    print(f"  Hotkey: {snapshot.hotkey}")
    print(f"  Correction analysis: {snapshot.correction_analysis_mode.value}")
    print(f"  Learned: {len(vocabulary.hotwords)} hotwords, {len(vocabulary.remappings)} remappings")

    metrics = MetricsWriter(config.metrics_file)

    controller = SessionController(
        config_snapshot_fn=config.snapshot,
        recorder=SoundDeviceRecorder(output_dir=config.data_dir / "tmp"),
        transcriber=GroqTranscriber(snapshot.groq_api_key, model=snapshot.transcription_model),
        editor=TerminalTranscriptEditor(),
        pasteboard=MacPasteboard(),
        sounds=SystemSoundEffects(),
        monitor=PynputKeyEventMonitor(),
        vocabulary=vocabulary,
        history=TranscriptionHistory.load(config.history_file),
        persistence=TranscriptPersistence(config.recordings_dir),
        analysis_client=HTTPAnalysisClient(),
        metrics=metrics,
    )

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    controller.start()
    print(f"Ready! Hold {snapshot.hotkey} to record, double-tap to lock, Esc to cancel.")
    print("Press Ctrl+C to quit.")

    # Blocks until Ctrl+C or the force quit voice command
    while not controller.wait_closed(timeout=0.5):
        pass

    shutdown()
    return 0


def _test_llm(config: Config) -> int:
    llm_config = config.llm_config()
    print(f"Testing {llm_config.provider.value} at {llm_config.base_url} ({llm_config.model})...")
    if HTTPAnalysisClient().test_connection(llm_config):
        print("LLM connection OK")
        return 0
    print("LLM connection failed")
    return 1


def _print_vocabulary(vocabulary: VocabularyStore) -> None:
    print("Hotwords:")
    for word in vocabulary.hotwords:
        print(f"  {word}")
    print("Remappings:")
    for remapping in vocabulary.remappings:
        print(f"  {remapping.match} -> {remapping.replacement}")


def shutdown() -> None:
    """Clean shutdown."""
    global controller, metrics

    print("\nShutting down...")
    if controller is not None:
        controller.shutdown()
        controller = None
    if metrics is not None:
        metrics.shutdown()
        metrics = None
    print("Goodbye!")


def _signal_handler(signum, frame):
    """Handle SIGINT/SIGTERM."""
    shutdown()
    sys.exit(0)


if __name__ == "__main__":
    sys.exit(main())
