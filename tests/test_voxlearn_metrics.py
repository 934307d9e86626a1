"""
Tests for the JSONL metrics writer.
"""

import json


class TestMetricsWriter:
    """Tests for MetricsWriter and the typed helpers."""

    def test_events_written_on_shutdown(self, tmp_path):
        from voxlearn.metrics import MetricsWriter, log_learning, log_session_complete

        path = tmp_path / "metrics.jsonl"
        metrics = MetricsWriter(path)

        log_learning(metrics, "abc123", "LLM", "Traditional", corrections=2, hotwords=1)
        log_session_complete(metrics, "abc123", 1500.0, "测试 text", edited=True)
        metrics.shutdown()

        entries = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
        by_event = {e["event"]: e for e in entries}

        assert by_event["learning"]["source"] == "Traditional"
        assert by_event["learning"]["corrections"] == 2
        assert by_event["session_complete"]["final_text"] == "测试 text"
        assert by_event["session_complete"]["edited"] is True
        assert all("ts" in e for e in entries)

    def test_text_is_truncated(self, tmp_path):
        from voxlearn.metrics import MetricsWriter, log_transcription

        path = tmp_path / "metrics.jsonl"
        metrics = MetricsWriter(path)

        log_transcription(metrics, "s1", 250, "x" * 1000, hotword_count=3)
        metrics.shutdown()

        entry = json.loads(path.read_text(encoding="utf-8").splitlines()[0])
        assert len(entry["text"]) == 200
        assert entry["hotword_count"] == 3

    def test_recording_stopped_rounds_duration(self, tmp_path):
        from voxlearn.metrics import MetricsWriter, log_recording_stopped

        path = tmp_path / "metrics.jsonl"
        metrics = MetricsWriter(path)

        log_recording_stopped(metrics, "s1", "discard_short", 0.123456, double_tap_locked=False)
        metrics.shutdown()

        entry = json.loads(path.read_text(encoding="utf-8").splitlines()[0])
        assert entry["duration_s"] == 0.123
        assert entry["decision"] == "discard_short"
