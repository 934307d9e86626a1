"""
macOS output collaborators: clipboard/paste, sound cues, terminal editor.

Uses system commands (pbcopy, pbpaste, osascript, afplay).
"""

import subprocess
import sys
import time
from typing import Callable, Dict, Optional, TextIO

from . import Pasteboard, SoundCue, SoundEffects, TranscriptEditor
from ..types import EditResult


_PASTE_SCRIPT = '''
tell application "System Events"
    keystroke "v" using command down
end tell
'''


class MacPasteboard(Pasteboard):
    """
    Clipboard via pbcopy/pbpaste, paste via a Cmd+V keystroke.

    paste() restores the previous clipboard afterwards unless
    restore_clipboard is False.
    """

    def __init__(self, restore_clipboard: bool = True):
        self.restore_clipboard = restore_clipboard

    def copy(self, text: str) -> None:
        if not text:
            return
        try:
            subprocess.run(["pbcopy"], input=text.encode("utf-8"), timeout=2.0)
        except (subprocess.TimeoutExpired, OSError) as e:
            print(f"[Output] copy failed: {e}")

    def read(self) -> str:
        try:
            result = subprocess.run(["pbpaste"], capture_output=True, timeout=2.0)
            return result.stdout.decode("utf-8")
        except (subprocess.TimeoutExpired, OSError) as e:
            print(f"[Output] pbpaste failed: {e}")
            return ""

    def paste(self, text: str) -> None:
        if not text:
            return

        previous = self.read() if self.restore_clipboard else None
        self.copy(text)
        try:
            subprocess.run(["osascript", "-e", _PASTE_SCRIPT], capture_output=True, timeout=2.0)
        except (subprocess.TimeoutExpired, OSError) as e:
            print(f"[Output] paste keystroke failed: {e}")
            return

        if previous:
            # Let the target app read the clipboard before restoring
            time.sleep(0.1)
            self.copy(previous)


SYSTEM_SOUNDS: Dict[SoundCue, str] = {
    SoundCue.START_RECORDING: "Tink",
    SoundCue.STOP_RECORDING: "Pop",
    SoundCue.CANCEL: "Basso",
    SoundCue.PASTE_TRANSCRIPT: "Glass",
}


class SystemSoundEffects(SoundEffects):
    """Plays /System/Library/Sounds cues without blocking the caller."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def play(self, cue: SoundCue) -> None:
        if not self.enabled:
            return
        try:
            subprocess.Popen(
                ["afplay", f"/System/Library/Sounds/{SYSTEM_SOUNDS[cue]}.aiff"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            print(f"[Output] play_sound error: {e}")


class TerminalTranscriptEditor(TranscriptEditor):
    """
    Review step on the terminal.

    Enter keeps the transcript, a line of text replaces it, "!" prefixed text
    replaces it without learning, and "/cancel" throws the recording away.
    """

    CANCEL_COMMAND = "/cancel"
    NO_LEARN_PREFIX = "!"

    def __init__(
        self,
        input_fn: Callable[[str], str] = input,
        stream: Optional[TextIO] = None,
    ):
        self._input = input_fn
        self._stream = stream or sys.stdout

    def show(
        self,
        transcript: str,
        duration: float,
        source_app_name: Optional[str] = None,
    ) -> Optional[EditResult]:
        source = f" for {source_app_name}" if source_app_name else ""
        print(f"\n[Edit] {duration:.1f}s recording{source}:", file=self._stream)
        print(f"  {transcript}", file=self._stream)

        try:
            line = self._input("[Edit] Enter = keep, text = replace, /cancel = discard: ")
        except EOFError:
            return None

        line = line.strip()
        if line == self.CANCEL_COMMAND:
            return None
        if not line:
            return EditResult(edited_text=transcript)
        if line.startswith(self.NO_LEARN_PREFIX):
            return EditResult(edited_text=line[len(self.NO_LEARN_PREFIX):].strip(), auto_learn=False)
        return EditResult(edited_text=line)
