"""
Hotkey/gesture processor.

Turns raw key and mouse events into recording signals. Handles
hold-to-record, double-tap lock, Escape cancel, and the accidental-tap
discard for modifier-only hotkeys.
"""

import threading
import time
from typing import Callable, FrozenSet, Optional

from .decision import RecordingDecision, decide
from .types import (
    GestureResult, GestureSignal, HotKey, HotKeyState, InputEvent, KeyEvent,
    Modifier, MouseClick,
)


ESCAPE = "escape"


class HotKeyProcessor:
    """
    State machine over idle / armed / recording / double_tap_locked.

    Handles:
    - Hold-to-record: press the hotkey, release to stop
    - Double-tap lock: two quick taps start recording that survives release,
      the next press stops it
    - Escape: cancels whatever is in progress
    - Mouse click / foreign key while a modifier-only hotkey is held:
      discard (short hold) or cancel / keep recording (long hold)

    Usage:
        processor = HotKeyProcessor(HotKey.parse("option"), minimum_key_time=0.2)
        result = processor.handle(KeyEvent(key=None, modifiers=frozenset({Modifier.OPTION})))
        if result.signal is GestureSignal.START:
            ...

    All entry points share one re-entrant lock, so update_config() never
    lands in the middle of an event.
    """

    def __init__(
        self,
        hotkey: HotKey,
        minimum_key_time: float = 0.2,
        use_double_tap_only: bool = False,
        double_tap_window: float = 0.3,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.hotkey = hotkey
        self.minimum_key_time = minimum_key_time
        self.use_double_tap_only = use_double_tap_only
        self.double_tap_window = double_tap_window
        self._clock = clock
        self._lock = threading.RLock()

        self.state = HotKeyState.IDLE
        self._pressed_at: Optional[float] = None
        self._last_tap_at: Optional[float] = None
        self._modifiers: FrozenSet[Modifier] = frozenset()
        self._dirty = False

    @property
    def recording_start_time(self) -> Optional[float]:
        """When the current chord went down, on the processor clock."""
        return self._pressed_at

    def update_config(
        self,
        hotkey: Optional[HotKey] = None,
        minimum_key_time: Optional[float] = None,
        use_double_tap_only: Optional[bool] = None,
        double_tap_window: Optional[float] = None,
    ) -> None:
        """Swap configuration between events. A new hotkey resets state."""
        with self._lock:
            if hotkey is not None and hotkey != self.hotkey:
                self.hotkey = hotkey
                self._reset()
                self._last_tap_at = None
            if minimum_key_time is not None:
                self.minimum_key_time = minimum_key_time
            if use_double_tap_only is not None:
                self.use_double_tap_only = use_double_tap_only
            if double_tap_window is not None:
                self.double_tap_window = double_tap_window

    def handle(self, event: InputEvent) -> GestureResult:
        """Process an event and decide whether it should be swallowed."""
        with self._lock:
            if isinstance(event, MouseClick):
                return GestureResult(signal=self.process_mouse_click(), consumed=False)

            signal = self.process(event)
            return GestureResult(signal=signal, consumed=self._consumes(event, signal))

    def process(self, event: KeyEvent) -> Optional[GestureSignal]:
        """Advance the state machine for one key event."""
        with self._lock:
            try:
                return self._process(event, self._clock())
            finally:
                self._modifiers = event.modifiers

    def process_mouse_click(self) -> Optional[GestureSignal]:
        """
        A click while a modifier-only hotkey is held means the user was
        doing something else (Option-click, drag). Short holds are discarded,
        long ones cancelled.
        """
        with self._lock:
            if self._dirty or not self.hotkey.is_modifier_only:
                return None
            if self.state is not HotKeyState.RECORDING:
                return None

            decision = decide(
                self.hotkey, self.minimum_key_time, self._pressed_at, self._clock(),
            )
            self._reset(dirty=True)

            if decision is RecordingDecision.DISCARD_SHORT:
                return GestureSignal.DISCARD
            return GestureSignal.CANCEL

    def _process(self, event: KeyEvent, now: float) -> Optional[GestureSignal]:
        if self._dirty:
            if not event.modifiers and (event.key is None or event.is_key_up):
                self._dirty = False
            return None

        if event.key == ESCAPE and not event.is_key_up and not event.modifiers:
            if self.state is not HotKeyState.IDLE:
                print(f"[Input] Escape in {self.state.value}, cancelling")
                self._reset()
            return GestureSignal.CANCEL

        if self.state is HotKeyState.RECORDING:
            return self._on_recording(event, now)
        if self.state is HotKeyState.DOUBLE_TAP_LOCKED:
            return self._on_locked(event)
        return self._on_idle_or_armed(event, now)

    def _on_idle_or_armed(self, event: KeyEvent, now: float) -> Optional[GestureSignal]:
        if self._is_press(event):
            return self._press(now)

        if self.state is HotKeyState.ARMED:
            if self._is_release(event):
                self._note_tap(now)
                self.state = HotKeyState.IDLE
                self._pressed_at = None
            return None

        # Key-bound hotkey: its modifiers alone arm it
        if (
            not self.hotkey.is_modifier_only
            and self.hotkey.modifiers
            and event.key is None
            and event.modifiers == self.hotkey.modifiers
        ):
            self.state = HotKeyState.ARMED
        return None

    def _on_recording(self, event: KeyEvent, now: float) -> Optional[GestureSignal]:
        if self._is_press(event) or self._is_repeat(event):
            return None

        if self._is_release(event):
            self._note_tap(now)
            self.state = HotKeyState.IDLE
            self._pressed_at = None
            return GestureSignal.STOP

        # Another key while the modifier is held: Option+Tab and friends
        if self.hotkey.is_modifier_only and event.key is not None and not event.is_key_up:
            decision = decide(self.hotkey, self.minimum_key_time, self._pressed_at, now)
            if decision is RecordingDecision.DISCARD_SHORT:
                print(f"[Input] Key '{event.key}' during short hold, discarding")
                self._reset(dirty=True)
                return GestureSignal.DISCARD

        return None

    def _on_locked(self, event: KeyEvent) -> Optional[GestureSignal]:
        # Release is ignored while locked; the next press stops
        if self._is_press(event):
            self._reset()
            return GestureSignal.STOP
        return None

    def _press(self, now: float) -> Optional[GestureSignal]:
        double_tap = (
            self._last_tap_at is not None
            and now - self._last_tap_at < self.double_tap_window
            and (self.hotkey.is_modifier_only or self.use_double_tap_only)
        )
        self._pressed_at = now
        self._last_tap_at = None

        if double_tap:
            print("[Input] Double-tap, recording locked")
            self.state = HotKeyState.DOUBLE_TAP_LOCKED
            return GestureSignal.START

        if self.use_double_tap_only:
            self.state = HotKeyState.ARMED
            return None

        self.state = HotKeyState.RECORDING
        return GestureSignal.START

    def _note_tap(self, now: float) -> None:
        if self._pressed_at is not None and now - self._pressed_at < self.double_tap_window:
            self._last_tap_at = now

    def _is_press(self, event: KeyEvent) -> bool:
        if event.is_key_up or event.modifiers != self.hotkey.modifiers:
            return False
        if self.hotkey.is_modifier_only:
            # Only the transition into the chord counts, not e.g. Shift up
            # while Option stays down
            return event.key is None and not self.hotkey.modifiers <= self._modifiers
        return event.key == self.hotkey.key

    def _is_repeat(self, event: KeyEvent) -> bool:
        return (
            not event.is_key_up
            and event.key is not None
            and event.key == self.hotkey.key
            and event.modifiers == self.hotkey.modifiers
        )

    def _is_release(self, event: KeyEvent) -> bool:
        if event.key is None:
            return not self.hotkey.modifiers <= event.modifiers
        return event.is_key_up and event.key == self.hotkey.key

    def _consumes(self, event: KeyEvent, signal: Optional[GestureSignal]) -> bool:
        if signal is GestureSignal.START:
            return self.use_double_tap_only or self.hotkey.key is not None
        if signal is GestureSignal.CANCEL:
            return True
        if signal is None:
            return self._is_repeat(event)
        return False

    def _reset(self, dirty: bool = False) -> None:
        self.state = HotKeyState.IDLE
        self._pressed_at = None
        self._dirty = dirty
