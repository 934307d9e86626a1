"""
Recording decision engine.

Decides whether a finished key-hold should be transcribed or silently
discarded as an accidental tap.
"""

from enum import Enum
from typing import Optional

from .types import HotKey


class RecordingDecision(str, Enum):
    PROCEED_TO_TRANSCRIPTION = "proceed_to_transcription"
    DISCARD_SHORT = "discard_short"


def decide(
    hotkey: HotKey,
    minimum_key_time: float,
    recording_start_time: Optional[float],
    current_time: float,
    double_tap_locked: bool = False,
) -> RecordingDecision:
    """
    Evaluate a completed hold.

    Only modifier-only hotkeys are guarded: a brief Option tap is almost
    always a shortcut, not dictation. Key-bound hotkeys and double-tap locked
    sessions always proceed.

    Args:
        hotkey: Configured hotkey
        minimum_key_time: Shortest hold (seconds) that counts as dictation
        recording_start_time: When recording began, None if unknown (elapsed 0)
        current_time: Now, on the same clock as recording_start_time
        double_tap_locked: Session was started by a double-tap lock

    Returns:
        RecordingDecision
    """
    elapsed = current_time - recording_start_time if recording_start_time is not None else 0.0

    if hotkey.is_modifier_only and not double_tap_locked and elapsed < minimum_key_time:
        return RecordingDecision.DISCARD_SHORT
    return RecordingDecision.PROCEED_TO_TRANSCRIPTION
