"""
Shared persisted state: learned vocabulary and transcription history.

Both stores are single-writer: mutations happen inside a lock-scoped block
on a working copy that is committed (and written to disk) only when the
block exits cleanly. Readers get snapshots of the last committed state.

Usage:
    vocabulary = VocabularyStore.load(config.vocabulary_file)
    with vocabulary.locked() as vocab:
        vocab.add_hotword("Anthropic")
    vocabulary.hotwords  # ("Anthropic",)
"""

import copy
import json
import os
import re
import shutil
import tempfile
import threading
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple
from uuid import UUID

from .text import contains_cjk
from .types import TextCorrection, Transcript, WordRemapping, WordRemoval


@dataclass
class MergeResult:
    """What a merge actually added."""
    remappings: List[WordRemapping] = field(default_factory=list)
    hotwords: List[str] = field(default_factory=list)


@dataclass
class Vocabulary:
    """Learned hotwords, remappings and removal patterns."""
    hotwords: List[str] = field(default_factory=list)
    remappings: List[WordRemapping] = field(default_factory=list)
    removals: List[WordRemoval] = field(default_factory=list)

    def has_hotword(self, word: str) -> bool:
        lower = word.lower()
        return any(h.lower() == lower for h in self.hotwords)

    def add_hotword(self, word: str) -> bool:
        """Append unless an entry matches case-insensitively."""
        word = word.strip()
        if not word or self.has_hotword(word):
            return False
        self.hotwords.append(word)
        return True

    def remove_hotword(self, word: str) -> bool:
        lower = word.lower()
        before = len(self.hotwords)
        self.hotwords = [h for h in self.hotwords if h.lower() != lower]
        return len(self.hotwords) != before

    def add_remapping(self, match: str, replacement: str) -> bool:
        """Append unless an entry shares match case-insensitively. First one wins."""
        lower = match.lower()
        if not match or any(r.match.lower() == lower for r in self.remappings):
            return False
        self.remappings.append(WordRemapping(match=match, replacement=replacement))
        return True

    def remove_remapping(self, match: str) -> bool:
        lower = match.lower()
        before = len(self.remappings)
        self.remappings = [r for r in self.remappings if r.match.lower() != lower]
        return len(self.remappings) != before

    def merge(self, corrections: Iterable[TextCorrection], hotwords: Iterable[str]) -> MergeResult:
        """Fold learned corrections and hotwords in. Nothing is ever evicted."""
        result = MergeResult()
        for correction in corrections:
            if self.add_remapping(correction.original, correction.corrected):
                result.remappings.append(self.remappings[-1])
        for word in hotwords:
            if self.add_hotword(word):
                result.hotwords.append(self.hotwords[-1])
        return result


class VocabularyStore:
    """Lock-guarded owner of the process-wide Vocabulary."""

    def __init__(self, path: Optional[Path] = None, initial: Optional[Vocabulary] = None):
        self.path = path
        self._vocabulary = initial or Vocabulary()
        self._lock = threading.RLock()

    @classmethod
    def load(cls, path: Path) -> "VocabularyStore":
        """Load from JSON; a missing or unreadable file starts empty."""
        vocabulary = Vocabulary()
        if path.exists():
            try:
                with open(path, encoding="utf-8") as f:
                    data = json.load(f)
                vocabulary = Vocabulary(
                    hotwords=[str(h) for h in data.get("hotwords", [])],
                    remappings=[WordRemapping(**r) for r in data.get("remappings", [])],
                    removals=[WordRemoval(**r) for r in data.get("removals", [])],
                )
            except (OSError, ValueError, TypeError) as e:
                print(f"[Store] Could not load {path}: {e}")
        return cls(path=path, initial=vocabulary)

    @contextmanager
    def locked(self) -> Iterator[Vocabulary]:
        """Mutate a working copy; committed and persisted on clean exit."""
        with self._lock:
            working = copy.deepcopy(self._vocabulary)
            yield working
            self._vocabulary = working
            self._save()

    @property
    def hotwords(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._vocabulary.hotwords)

    @property
    def remappings(self) -> Tuple[WordRemapping, ...]:
        with self._lock:
            return tuple(copy.copy(r) for r in self._vocabulary.remappings)

    @property
    def removals(self) -> Tuple[WordRemoval, ...]:
        with self._lock:
            return tuple(copy.copy(r) for r in self._vocabulary.removals)

    def merge(self, corrections: Iterable[TextCorrection], hotwords: Iterable[str]) -> MergeResult:
        with self.locked() as vocab:
            result = vocab.merge(corrections, hotwords)

        for remapping in result.remappings:
            print(f"[Store] Learned remapping: '{remapping.match}' -> '{remapping.replacement}'")
        for word in result.hotwords:
            print(f"[Store] Learned hotword: '{word}'")
        return result

    def add_hotword(self, word: str) -> bool:
        with self.locked() as vocab:
            return vocab.add_hotword(word)

    def remove_hotword(self, word: str) -> bool:
        with self.locked() as vocab:
            return vocab.remove_hotword(word)

    def remove_remapping(self, match: str) -> bool:
        with self.locked() as vocab:
            return vocab.remove_remapping(match)

    def apply(self, text: str, removals_enabled: bool = True) -> str:
        """Strip enabled removals (when enabled), then apply remappings."""
        with self._lock:
            removals = [r.pattern for r in self._vocabulary.removals if r.is_enabled]
            remappings = list(self._vocabulary.remappings)

        if removals_enabled and removals:
            text = apply_removals(text, removals)
        return apply_remappings(text, remappings)

    def _save(self) -> None:
        if self.path is None:
            return
        data = {
            "hotwords": self._vocabulary.hotwords,
            "remappings": [asdict(r) for r in self._vocabulary.remappings],
            "removals": [asdict(r) for r in self._vocabulary.removals],
        }
        _atomic_write_json(self.path, data)


def _word_pattern(word: str) -> "re.Pattern[str]":
    """Whole-word for Latin text, substring for CJK (no spaces between words)."""
    escaped = re.escape(word)
    if contains_cjk(word):
        return re.compile(escaped, re.IGNORECASE)
    return re.compile(rf"(?<![A-Za-z0-9_]){escaped}(?![A-Za-z0-9_])", re.IGNORECASE)


def apply_removals(text: str, patterns: Iterable[str]) -> str:
    """Drop filler words and tidy the whitespace they leave behind."""
    for pattern in patterns:
        if pattern.strip():
            text = _word_pattern(pattern.strip()).sub("", text)

    text = re.sub(r"[ \t]{2,}", " ", text)
    text = re.sub(r" +([,.!?;:])", r"\1", text)
    text = re.sub(r"^[\s,]+", "", text)
    return text.strip()


def apply_remappings(text: str, remappings: Iterable[WordRemapping]) -> str:
    for remapping in remappings:
        if remapping.match:
            replacement = remapping.replacement
            text = _word_pattern(remapping.match).sub(lambda _m: replacement, text)
    return text


class TranscriptionHistory:
    """
    Newest-first list of saved transcripts.

    insert() returns the entries evicted by the size limit so the caller can
    delete their audio.
    """

    def __init__(self, path: Optional[Path] = None, entries: Optional[List[Transcript]] = None):
        self.path = path
        self._entries: List[Transcript] = list(entries or [])
        self._lock = threading.Lock()

    @classmethod
    def load(cls, path: Path) -> "TranscriptionHistory":
        entries: List[Transcript] = []
        if path.exists():
            try:
                with open(path, encoding="utf-8") as f:
                    entries = [_transcript_from_dict(d) for d in json.load(f)]
            except (OSError, ValueError, TypeError, KeyError) as e:
                print(f"[Store] Could not load {path}: {e}")
        return cls(path=path, entries=entries)

    @property
    def entries(self) -> Tuple[Transcript, ...]:
        with self._lock:
            return tuple(self._entries)

    def insert(self, transcript: Transcript, max_entries: Optional[int] = None) -> List[Transcript]:
        with self._lock:
            self._entries.insert(0, transcript)
            evicted: List[Transcript] = []
            if max_entries is not None and max_entries > 0:
                while len(self._entries) > max_entries:
                    evicted.append(self._entries.pop())
            self._save()
        return evicted

    def remove(self, transcript_id: UUID) -> Optional[Transcript]:
        with self._lock:
            for i, entry in enumerate(self._entries):
                if entry.id == transcript_id:
                    removed = self._entries.pop(i)
                    self._save()
                    return removed
        return None

    def _save(self) -> None:
        if self.path is None:
            return
        _atomic_write_json(self.path, [_transcript_to_dict(t) for t in self._entries])


class TranscriptPersistence:
    """Moves captured audio into the recordings directory and builds Transcript records."""

    def __init__(self, recordings_dir: Path):
        self.recordings_dir = recordings_dir

    def save(
        self,
        text: str,
        audio_path: Path,
        duration: float,
        source_app_bundle_id: Optional[str] = None,
        source_app_name: Optional[str] = None,
    ) -> Transcript:
        self.recordings_dir.mkdir(parents=True, exist_ok=True)
        timestamp = time.time()
        stem = datetime.fromtimestamp(timestamp).strftime("%Y%m%d-%H%M%S-%f")
        destination = self.recordings_dir / f"{stem}{audio_path.suffix or '.wav'}"
        shutil.move(str(audio_path), destination)

        return Transcript(
            text=text,
            audio_path=destination,
            duration=duration,
            timestamp=timestamp,
            source_app_bundle_id=source_app_bundle_id,
            source_app_name=source_app_name,
        )

    def delete_audio(self, transcript: Transcript) -> None:
        delete_file(transcript.audio_path)


def delete_file(path: Optional[Path]) -> None:
    """Remove a file if it exists."""
    if path is None:
        return
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        print(f"[Store] Failed to delete {path}: {e}")


def _transcript_to_dict(transcript: Transcript) -> Dict[str, Any]:
    data = asdict(transcript)
    data["id"] = str(transcript.id)
    data["audio_path"] = str(transcript.audio_path)
    return data


def _transcript_from_dict(data: Dict[str, Any]) -> Transcript:
    return Transcript(
        text=data["text"],
        audio_path=Path(data["audio_path"]),
        duration=float(data["duration"]),
        timestamp=float(data["timestamp"]),
        id=UUID(data["id"]),
        source_app_bundle_id=data.get("source_app_bundle_id"),
        source_app_name=data.get("source_app_name"),
        original_text=data.get("original_text"),
        corrections=[TextCorrection(**c) for c in data.get("corrections", [])],
    )


def _atomic_write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=path.parent, suffix=".json.tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(temp_path, path)
    except Exception:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise
