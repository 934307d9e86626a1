"""
Configuration management with immutable snapshots.

Loads from: environment variables > settings.json > defaults
Provides immutable snapshots so a settings change never lands mid-event.
"""

from pathlib import Path
from typing import Any, Dict, Optional
import json
import os

from .types import CorrectionAnalysisMode, ConfigSnapshot, HotKey, LLMConfig, LLMProvider


# Defaults for keys accepted in settings.json
DEFAULT_CONFIG: Dict[str, Any] = {
    # Input
    "hotkey": "option",
    "minimum_key_time": 0.2,
    "use_double_tap_only": False,
    "double_tap_threshold": 0.3,

    # Transcription
    "language": "",
    "transcription_model": "whisper-large-v3",

    # Editing / history
    "enable_instant_edit": False,
    "save_transcription_history": True,
    "max_history_entries": 0,  # 0 = unlimited
    "word_removals_enabled": False,

    # Learning
    "correction_analysis_mode": CorrectionAnalysisMode.TRADITIONAL.value,
    "llm_enabled": True,
    "llm_provider": LLMProvider.OLLAMA.value,
    "llm_base_url": "",
    "llm_model": "",
    "llm_temperature": 0.1,
    "llm_max_tokens": 500,
    "llm_timeout": 10.0,
}

ENV_KEYS = {
    "GROQ_API_KEY": "groq_api_key",
    "VOXLEARN_LLM_API_KEY": "llm_api_key",
}


class Config:
    """
    Single source of truth for all settings.

    Usage:
        config = Config.load()
        snapshot = config.snapshot()  # Immutable copy for one event/effect
    """

    def __init__(self, data_dir: Optional[Path] = None):
        # Input
        self.hotkey: str = "option"
        self.minimum_key_time: float = 0.2
        self.use_double_tap_only: bool = False
        self.double_tap_threshold: float = 0.3

        # Transcription
        self.language: str = ""
        self.transcription_model: str = "whisper-large-v3"

        # Editing / history
        self.enable_instant_edit: bool = False
        self.save_transcription_history: bool = True
        self.max_history_entries: int = 0
        self.word_removals_enabled: bool = False

        # Learning
        self.correction_analysis_mode: str = CorrectionAnalysisMode.TRADITIONAL.value
        self.llm_enabled: bool = True
        self.llm_provider: str = LLMProvider.OLLAMA.value
        self.llm_base_url: str = ""
        self.llm_model: str = ""
        self.llm_temperature: float = 0.1
        self.llm_max_tokens: int = 500
        self.llm_timeout: float = 10.0

        # API Keys
        self.groq_api_key: str = ""
        self.llm_api_key: str = ""

        # Paths
        self.data_dir: Path = data_dir or Path.home() / ".voxlearn"
        self.settings_file: Path = self.data_dir / "settings.json"
        self.env_file: Path = self.data_dir / ".env"
        self.metrics_file: Path = self.data_dir / "metrics.jsonl"
        self.vocabulary_file: Path = self.data_dir / "vocabulary.json"
        self.history_file: Path = self.data_dir / "history.json"
        self.recordings_dir: Path = self.data_dir / "recordings"

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> "Config":
        """Load configuration from all sources."""
        config = cls(data_dir)
        config._ensure_data_dir()
        config._load_env()
        config._load_settings()
        return config

    def _ensure_data_dir(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _load_env(self) -> None:
        """Load API keys from .env files, then the environment."""
        # Project root first, then ~/.voxlearn/.env
        env_file = Path(".env")
        if env_file.exists():
            self._parse_env_file(env_file)

        if self.env_file.exists():
            self._parse_env_file(self.env_file)

        # Environment variables override file values
        for env_key, attr in ENV_KEYS.items():
            setattr(self, attr, os.getenv(env_key, getattr(self, attr)))

    def _parse_env_file(self, env_file: Path) -> None:
        """Parse a .env file and extract API keys."""
        try:
            with open(env_file) as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, value = line.split("=", 1)
                    key = key.strip()
                    value = value.strip().strip("'\"")

                    if key in ENV_KEYS:
                        setattr(self, ENV_KEYS[key], value)
        except OSError as e:
            print(f"[Config] Error loading {env_file}: {e}")

    def _load_settings(self) -> None:
        """Load settings from settings.json."""
        project_settings = Path("settings.json")
        if project_settings.exists():
            self._apply_settings_file(project_settings)

        # ~/.voxlearn/settings.json overrides the project file
        if self.settings_file.exists():
            self._apply_settings_file(self.settings_file)

    def _apply_settings_file(self, settings_file: Path) -> None:
        """Apply settings from a JSON file."""
        try:
            with open(settings_file) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            print(f"[Config] Error loading {settings_file}: {e}")
            return

        # Apply settings with type validation
        for key, default in DEFAULT_CONFIG.items():
            if key not in data:
                continue
            try:
                setattr(self, key, type(default)(data[key]))
            except (TypeError, ValueError) as e:
                print(f"[Config] Ignoring {key}={data[key]!r}: {e}")

    def save_settings(self) -> None:
        """Save current settings to settings.json."""
        data = {key: getattr(self, key) for key in DEFAULT_CONFIG}

        self._ensure_data_dir()
        with open(self.settings_file, "w") as f:
            json.dump(data, f, indent=2)

    def llm_config(self) -> LLMConfig:
        return LLMConfig(
            enabled=self.llm_enabled,
            provider=LLMProvider(self.llm_provider),
            base_url=self.llm_base_url,
            model=self.llm_model,
            api_key=self.llm_api_key,
            temperature=self.llm_temperature,
            max_tokens=self.llm_max_tokens,
            timeout=self.llm_timeout,
        )

    def snapshot(self) -> ConfigSnapshot:
        """
        Return immutable copy.

        Raises:
            ValueError: hotkey, provider or analysis mode is not recognized
        """
        return ConfigSnapshot(
            hotkey=HotKey.parse(self.hotkey),
            minimum_key_time=self.minimum_key_time,
            use_double_tap_only=self.use_double_tap_only,
            double_tap_threshold=self.double_tap_threshold,
            language=self.language or None,
            transcription_model=self.transcription_model,
            enable_instant_edit=self.enable_instant_edit,
            save_transcription_history=self.save_transcription_history,
            max_history_entries=self.max_history_entries or None,
            word_removals_enabled=self.word_removals_enabled,
            correction_analysis_mode=CorrectionAnalysisMode(self.correction_analysis_mode),
            llm_config=self.llm_config(),
            groq_api_key=self.groq_api_key,
        )
