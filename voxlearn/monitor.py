"""
Global key/mouse event monitors.

The live monitor wraps pynput listeners and translates their key objects
into KeyEvents carrying the held-modifier set. The scripted monitor lets
tests drive the controller with synthetic events.
"""

import sys
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from .types import GestureResult, InputEvent, KeyEvent, Modifier, MouseClick


InputHandler = Callable[[InputEvent], GestureResult]


# pynput Key names -> modifier
MODIFIER_KEYS: Dict[str, Modifier] = {
    "alt": Modifier.OPTION,
    "alt_l": Modifier.OPTION,
    "alt_r": Modifier.OPTION,
    "alt_gr": Modifier.OPTION,
    "cmd": Modifier.COMMAND,
    "cmd_l": Modifier.COMMAND,
    "cmd_r": Modifier.COMMAND,
    "ctrl": Modifier.CONTROL,
    "ctrl_l": Modifier.CONTROL,
    "ctrl_r": Modifier.CONTROL,
    "shift": Modifier.SHIFT,
    "shift_l": Modifier.SHIFT,
    "shift_r": Modifier.SHIFT,
}

# F17 arrives as a bare KeyCode on macOS
_VK_NAMES = {64: "f17", 79: "f18", 80: "f19"}


def key_name(key: Any) -> Optional[str]:
    """
    Normalize a pynput key to a hotkey-style name.

    Key.esc -> "escape", Key.space -> "space", KeyCode(char="A") -> "a",
    KeyCode(vk=64) -> "f17".
    """
    name = getattr(key, "name", None)
    if name:
        return "escape" if name == "esc" else name

    char = getattr(key, "char", None)
    if char:
        return char.lower()

    vk = getattr(key, "vk", None)
    if vk is not None:
        return _VK_NAMES.get(vk, f"vk{vk}")
    return None


class KeyEventMonitor(ABC):
    """
    Long-lived source of input events.

    Subclasses must implement start() and stop(). The handler is called on
    the monitor's own thread and must return quickly.
    """

    @abstractmethod
    def start(self, handler: InputHandler) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        pass


class ModifierTracker:
    """Turns individual key presses/releases into KeyEvents with the held modifier set."""

    def __init__(self):
        # pynput key name -> modifier, per physical side
        self._held: Dict[str, Modifier] = {}
        self._lock = threading.Lock()

    def translate(self, key: Any, is_key_up: bool) -> Optional[KeyEvent]:
        name = key_name(key)
        if name is None:
            return None

        with self._lock:
            if name in MODIFIER_KEYS:
                if is_key_up:
                    self._held.pop(name, None)
                else:
                    self._held[name] = MODIFIER_KEYS[name]
                return KeyEvent(key=None, modifiers=self._modifiers(), is_key_up=is_key_up)

            return KeyEvent(key=name, modifiers=self._modifiers(), is_key_up=is_key_up)

    def _modifiers(self):
        return frozenset(self._held.values())


class PynputKeyEventMonitor(KeyEventMonitor):
    """
    Keyboard + mouse listeners via pynput.

    On macOS, consumed key events are swallowed through pynput's
    darwin_intercept hook, which runs right after the on_press/on_release
    callback for the same event. Elsewhere events are observed only.
    """

    def __init__(self):
        self._tracker = ModifierTracker()
        self._handler: Optional[InputHandler] = None
        self._keyboard = None
        self._mouse = None
        self._swallow = False

    def start(self, handler: InputHandler) -> None:
        from pynput import keyboard, mouse

        self._handler = handler

        kwargs = {}
        if sys.platform == "darwin":
            kwargs["darwin_intercept"] = self._darwin_intercept

        self._keyboard = keyboard.Listener(
            on_press=self._on_press,
            on_release=self._on_release,
            **kwargs,
        )
        self._mouse = mouse.Listener(on_click=self._on_click)

        self._keyboard.start()
        self._mouse.start()
        print("[Input] Keyboard and mouse listeners started")

    def stop(self) -> None:
        for listener in (self._keyboard, self._mouse):
            if listener is not None:
                listener.stop()
        self._keyboard = None
        self._mouse = None
        self._handler = None

    def _on_press(self, key, injected: bool = False) -> None:
        self._dispatch_key(key, is_key_up=False)

    def _on_release(self, key, injected: bool = False) -> None:
        self._dispatch_key(key, is_key_up=True)

    def _on_click(self, x, y, button, pressed, injected: bool = False) -> None:
        if not pressed or self._handler is None:
            return
        try:
            self._handler(MouseClick(button=getattr(button, "name", str(button))))
        except Exception as e:
            print(f"[Input] Handler error: {e}")

    def _dispatch_key(self, key, is_key_up: bool) -> None:
        self._swallow = False
        event = self._tracker.translate(key, is_key_up)
        if event is None or self._handler is None:
            return
        try:
            self._swallow = self._handler(event).consumed
        except Exception as e:
            print(f"[Input] Handler error: {e}")

    def _darwin_intercept(self, event_type, event):
        if self._swallow:
            self._swallow = False
            return None
        return event


class ScriptedKeyEventMonitor(KeyEventMonitor):
    """
    Deterministic monitor for tests.

    Usage:
        monitor = ScriptedKeyEventMonitor()
        controller = SessionController(..., monitor=monitor)
        controller.start()
        result = monitor.feed(KeyEvent(key=None, modifiers=frozenset({Modifier.OPTION})))
    """

    def __init__(self):
        self._handler: Optional[InputHandler] = None
        self.history: List[Tuple[InputEvent, GestureResult]] = []

    @property
    def is_running(self) -> bool:
        return self._handler is not None

    def start(self, handler: InputHandler) -> None:
        self._handler = handler

    def stop(self) -> None:
        self._handler = None

    def feed(self, event: InputEvent) -> GestureResult:
        """
        Deliver one event to the handler.

        Raises:
            RuntimeError: the monitor is not started
        """
        if self._handler is None:
            raise RuntimeError("Monitor is not running")
        result = self._handler(event)
        self.history.append((event, result))
        return result
