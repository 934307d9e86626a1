"""
Shared type definitions for VoxLearn.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import FrozenSet, List, Optional, Union
from uuid import UUID, uuid4


@dataclass
class TextCorrection:
    """A single original -> corrected substitution learned from a user edit."""
    original: str
    corrected: str
    timestamp: float = field(default_factory=time.time)

    def is_meaningful(self) -> bool:
        """Both sides present and different ignoring case."""
        return bool(
            self.original
            and self.corrected
            and self.original.lower() != self.corrected.lower()
        )


@dataclass
class WordRemapping:
    """Persisted substitution rule applied to future transcripts."""
    match: str
    replacement: str


@dataclass
class WordRemoval:
    """Word stripped from raw transcripts (fillers, verbal tics)."""
    pattern: str
    is_enabled: bool = True


class Modifier(str, Enum):
    COMMAND = "command"
    CONTROL = "control"
    OPTION = "option"
    SHIFT = "shift"
    FN = "fn"


# Aliases accepted when parsing hotkey strings from settings.json
MODIFIER_ALIASES = {
    "cmd": Modifier.COMMAND,
    "command": Modifier.COMMAND,
    "ctrl": Modifier.CONTROL,
    "control": Modifier.CONTROL,
    "alt": Modifier.OPTION,
    "opt": Modifier.OPTION,
    "option": Modifier.OPTION,
    "shift": Modifier.SHIFT,
    "fn": Modifier.FN,
}


@dataclass(frozen=True)
class HotKey:
    """
    Key plus modifier combination that triggers recording.

    A hotkey with no key is modifier-only (e.g. just Option).
    """
    key: Optional[str] = None
    modifiers: FrozenSet[Modifier] = frozenset()

    @property
    def is_modifier_only(self) -> bool:
        return self.key is None

    @classmethod
    def parse(cls, text: str) -> "HotKey":
        """
        Parse "option", "cmd+shift+space" or "f17" style strings.

        Raises:
            ValueError: empty text or more than one non-modifier key
        """
        parts = [p.strip().lower() for p in text.split("+") if p.strip()]
        if not parts:
            raise ValueError(f"Empty hotkey: {text!r}")

        key: Optional[str] = None
        modifiers = set()
        for part in parts:
            if part in MODIFIER_ALIASES:
                modifiers.add(MODIFIER_ALIASES[part])
            elif key is None:
                key = part
            else:
                raise ValueError(f"Hotkey has more than one key: {text!r}")

        return cls(key=key, modifiers=frozenset(modifiers))

    def __str__(self) -> str:
        names = sorted(m.value for m in self.modifiers)
        if self.key:
            names.append(self.key)
        return "+".join(names)


@dataclass(frozen=True)
class KeyEvent:
    """
    One keyboard event with the modifier set held at the time.

    Modifier presses and releases arrive with key=None and the updated set.
    """
    key: Optional[str]
    modifiers: FrozenSet[Modifier] = frozenset()
    is_key_up: bool = False


@dataclass(frozen=True)
class MouseClick:
    """A mouse button press anywhere on screen."""
    button: str = "left"


InputEvent = Union[KeyEvent, MouseClick]


class HotKeyState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    RECORDING = "recording"
    DOUBLE_TAP_LOCKED = "double_tap_locked"


class GestureSignal(str, Enum):
    START = "start"
    STOP = "stop"
    CANCEL = "cancel"
    DISCARD = "discard"


@dataclass(frozen=True)
class GestureResult:
    """Signal produced for an input event, and whether to swallow the event."""
    signal: Optional[GestureSignal] = None
    consumed: bool = False


@dataclass
class AppIdentity:
    """Frontmost application when recording started."""
    bundle_id: str
    name: str


@dataclass
class RecordingSession:
    """The single in-flight recording, consumed at stop/decision time."""
    start_time: float
    source_app: Optional[AppIdentity] = None
    double_tap_locked: bool = False


@dataclass
class Meter:
    """Audio level sample from the recorder."""
    average_power: float = 0.0
    peak_power: float = 0.0


@dataclass
class Transcript:
    """Finalized transcription record kept in history."""
    text: str
    audio_path: Path
    duration: float
    timestamp: float = field(default_factory=time.time)
    id: UUID = field(default_factory=uuid4)
    source_app_bundle_id: Optional[str] = None
    source_app_name: Optional[str] = None
    original_text: Optional[str] = None
    corrections: List[TextCorrection] = field(default_factory=list)

    @property
    def was_edited(self) -> bool:
        return self.original_text is not None and self.original_text != self.text


@dataclass
class EditResult:
    """Outcome of the instant-edit step when the user confirms."""
    edited_text: str
    auto_learn: bool = True


class LLMProvider(str, Enum):
    OLLAMA = "Ollama"
    LM_STUDIO = "LM Studio"
    OPENAI = "OpenAI"
    ANTHROPIC = "Anthropic"
    CUSTOM = "Custom"

    @property
    def default_base_url(self) -> str:
        return _PROVIDER_PRESETS[self][0]

    @property
    def default_model(self) -> str:
        return _PROVIDER_PRESETS[self][1]

    @property
    def requires_api_key(self) -> bool:
        return _PROVIDER_PRESETS[self][2]

    @property
    def is_openai_compatible(self) -> bool:
        return self is not LLMProvider.ANTHROPIC


# provider -> (base_url, model, requires_api_key)
_PROVIDER_PRESETS = {
    LLMProvider.OLLAMA: ("http://localhost:11434", "qwen2.5:7b", False),
    LLMProvider.LM_STUDIO: ("http://localhost:1234", "local-model", False),
    LLMProvider.OPENAI: ("https://api.openai.com", "gpt-4o-mini", True),
    LLMProvider.ANTHROPIC: ("https://api.anthropic.com", "claude-3-5-haiku-20241022", True),
    LLMProvider.CUSTOM: ("", "", True),
}


class CorrectionAnalysisMode(str, Enum):
    TRADITIONAL = "Traditional"
    LLM = "LLM"


@dataclass
class LLMConfig:
    """
    Settings for the language-model analysis path.

    Empty base_url/model fall back to the provider preset.
    """
    enabled: bool = True
    provider: LLMProvider = LLMProvider.OLLAMA
    base_url: str = ""
    model: str = ""
    api_key: str = ""
    temperature: float = 0.1
    max_tokens: int = 500
    timeout: float = 10.0

    def __post_init__(self):
        self.provider = LLMProvider(self.provider)
        if not self.base_url:
            self.base_url = self.provider.default_base_url
        if not self.model:
            self.model = self.provider.default_model

    @property
    def is_valid(self) -> bool:
        return bool(
            self.base_url
            and self.model
            and (not self.provider.requires_api_key or self.api_key)
        )


@dataclass
class LLMAnalysisRequest:
    original_text: str
    edited_text: str
    language: Optional[str] = None


@dataclass
class LLMAnalysisResponse:
    corrections: List[TextCorrection]
    hotwords: List[str]
    reasoning: Optional[str] = None


@dataclass(frozen=True)
class ConfigSnapshot:
    """
    Immutable snapshot of configuration.
    Ensures config changes mid-event don't cause inconsistency.
    """
    # Input
    hotkey: HotKey
    minimum_key_time: float
    use_double_tap_only: bool
    double_tap_threshold: float

    # Transcription
    language: Optional[str]
    transcription_model: str

    # Editing / history
    enable_instant_edit: bool
    save_transcription_history: bool
    max_history_entries: Optional[int]
    word_removals_enabled: bool

    # Learning
    correction_analysis_mode: CorrectionAnalysisMode
    llm_config: LLMConfig

    # API Keys
    groq_api_key: str = ""
