"""
External collaborators of the session controller.

Each collaborator is an interface with a live implementation in this
package; tests substitute Mocks or small fakes.
"""

from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Optional, Sequence

from ..types import EditResult, Meter

if TYPE_CHECKING:
    from ..effects import CancelToken


class SoundCue(str, Enum):
    START_RECORDING = "start_recording"
    STOP_RECORDING = "stop_recording"
    CANCEL = "cancel"
    PASTE_TRANSCRIPT = "paste_transcript"


class Recorder(ABC):
    """
    Audio capture.

    Subclasses must implement:
    - start_recording(): Begin capturing
    - stop_recording(): Stop and hand back the captured file
    - observe_audio_level(): Stream level samples until cancelled
    """

    @abstractmethod
    def start_recording(self) -> None:
        pass

    @abstractmethod
    def stop_recording(self) -> Path:
        """
        Stop capturing.

        Returns:
            Path of the WAV file holding the capture (may be empty)
        """
        pass

    @abstractmethod
    def observe_audio_level(self, token: "CancelToken") -> Iterator[Meter]:
        """Yield level samples until token is cancelled."""
        pass


class Transcriber(ABC):
    """Speech recognition."""

    @abstractmethod
    def transcribe(
        self,
        audio_path: Path,
        hotwords: Sequence[str] = (),
        language: Optional[str] = None,
    ) -> str:
        """
        Transcribe an audio file.

        Args:
            audio_path: WAV file from the recorder
            hotwords: Learned vocabulary to bias recognition toward
            language: ISO language hint, None for auto-detect

        Raises:
            Exception: recognition failed; the controller surfaces it as
                a transcription error
        """
        pass


class TranscriptEditor(ABC):
    """Instant-edit review step."""

    @abstractmethod
    def show(
        self,
        transcript: str,
        duration: float,
        source_app_name: Optional[str] = None,
    ) -> Optional[EditResult]:
        """Block until the user confirms (EditResult) or cancels (None)."""
        pass


class Pasteboard(ABC):
    @abstractmethod
    def copy(self, text: str) -> None:
        pass

    @abstractmethod
    def paste(self, text: str) -> None:
        """Insert text at the cursor of the frontmost app."""
        pass


class SoundEffects(ABC):
    @abstractmethod
    def play(self, cue: SoundCue) -> None:
        pass
