"""
Application configuration and persisted user settings.

``AppConfig`` holds the static configuration (paths, endpoints, models,
timings) loaded from ``config.json`` in the data directory. ``Settings`` is
the small key-value store for the flags and shortcut bindings the user
toggles at runtime; it is written back on every change.
"""

import json
import logging
import os
import platform
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

HOME_ENV_VAR = "SHORTCUT4AI_HOME"
CONFIG_FILE = "config.json"
SETTINGS_FILE = "settings.json"
HISTORY_FILE = "conversation_history.json"
GRAMMAR_PROMPT_FILE = "grammar_prompt.md"
ASSISTANT_PROMPT_FILE = "assistant_prompt.md"

AUTO_GRAMMAR_KEY = "auto_grammar_after_transcribe"
CONDENSED_MODE_KEY = "condensed_mode"
SHORTCUTS_KEY = "shortcuts"


def get_data_dir() -> Path:
    """Return the data directory, creating it if needed."""
    override = os.getenv(HOME_ENV_VAR)
    data_dir = Path(override).expanduser() if override else Path.home() / ".shortcut4ai"
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def _default_input_format() -> str:
    system = platform.system()
    if system == "Darwin":
        return "avfoundation"
    if system == "Windows":
        return "dshow"
    return "pulse"


@dataclass
class AppConfig:
    """Static application configuration."""
    data_dir: str = ""
    ffmpeg_path: str = "ffmpeg"
    audio_input_format: str = ""
    audio_device: str = "0"
    audio_file: str = "audio/output.m4a"
    transcription_base_url: str = "https://api.groq.com/openai/v1"
    transcription_model: str = "whisper-large-v3-turbo"
    transcription_language: str = "en"
    chat_provider: str = "openai"
    chat_model: str = ""
    grammar_temperature: float = 0.0
    assistant_temperature: float = 0.7
    history_capacity: int = 50
    revert_delay: float = 1.0
    paste_delay: float = 0.5
    copy_delay: float = 0.1
    confirm_delay: float = 0.5
    request_timeout: float = 30.0
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.audio_input_format:
            self.audio_input_format = _default_input_format()
        if self.history_capacity < 1:
            raise ValueError(f"history_capacity must be positive, got {self.history_capacity}")
        if self.chat_provider not in ("openai", "claude"):
            raise ValueError(f"Unknown chat provider: {self.chat_provider}")

    @property
    def home(self) -> Path:
        return Path(self.data_dir) if self.data_dir else get_data_dir()

    @property
    def audio_path(self) -> Path:
        path = Path(self.audio_file)
        return path if path.is_absolute() else self.home / path

    @property
    def history_path(self) -> Path:
        return self.home / HISTORY_FILE

    @property
    def settings_path(self) -> Path:
        return self.home / SETTINGS_FILE

    @property
    def grammar_prompt_path(self) -> Path:
        return self.home / GRAMMAR_PROMPT_FILE

    @property
    def assistant_prompt_path(self) -> Path:
        return self.home / ASSISTANT_PROMPT_FILE

    @property
    def log_path(self) -> Path:
        return self.home / "logs" / "shortcut4ai.log"


def load_config(data_dir: Optional[Path] = None) -> AppConfig:
    """
    Load ``config.json`` from the data directory.

    A missing file is created with defaults. Unknown keys are ignored so an
    older config keeps loading after fields are added or removed. The
    ``AUDIO_DEVICE`` and ``FFMPEG_PATH`` environment variables override the
    file.
    """
    home = Path(data_dir) if data_dir else get_data_dir()
    home.mkdir(parents=True, exist_ok=True)
    config_path = home / CONFIG_FILE

    if config_path.exists():
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {config_path} must contain a JSON object")
        valid_keys = {f.name for f in fields(AppConfig)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        try:
            config = AppConfig(**filtered)
        except TypeError as e:
            raise ValueError(f"Invalid value in configuration file {config_path}: {e}") from e
    else:
        config = AppConfig()
        save_config(config, home)
        logger.info(f"Wrote default configuration to {config_path}")

    config.data_dir = str(home)
    if os.getenv("AUDIO_DEVICE"):
        config.audio_device = os.environ["AUDIO_DEVICE"]
    if os.getenv("FFMPEG_PATH"):
        config.ffmpeg_path = os.environ["FFMPEG_PATH"]
    return config


def save_config(config: AppConfig, data_dir: Optional[Path] = None) -> None:
    home = Path(data_dir) if data_dir else config.home
    data = asdict(config)
    data.pop("data_dir", None)
    (home / CONFIG_FILE).write_text(json.dumps(data, indent=2), encoding="utf-8")


class Settings:
    """
    JSON-backed key-value store for runtime flags and shortcut bindings.

    Shortcuts are stored as ``[modifiers, key]`` pairs keyed by the command's
    setting key, mirroring how the bindings are looked up at rebind time.

    The file may be changed by another process (the CLI while the daemon is
    running); every read and write first picks up such changes, so a write
    never clobbers an edit made elsewhere.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._values: Dict[str, Any] = {}
        self._signature: Optional[Tuple[int, int]] = None
        self.load()

    def _file_signature(self) -> Optional[Tuple[int, int]]:
        try:
            stat = self.path.stat()
        except OSError:
            return None
        return stat.st_mtime_ns, stat.st_size

    def load(self) -> None:
        self._signature = self._file_signature()
        if self._signature is None:
            self._values = {}
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read settings from {self.path}: {e}")
            data = {}
        self._values = data if isinstance(data, dict) else {}

    def refresh(self) -> bool:
        """Reload if the file changed on disk. Returns True when it did."""
        if self._file_signature() == self._signature:
            return False
        self.load()
        logger.info(f"Settings reloaded from {self.path}")
        return True

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._values, indent=2), encoding="utf-8")
        self._signature = self._file_signature()

    def get(self, key: str, default: Any = None) -> Any:
        self.refresh()
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.refresh()
        self._values[key] = value
        self.save()
        logger.debug(f"Setting '{key}' set to: {value}")

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None:
            return default
        return bool(value)

    def set_bool(self, key: str, value: bool) -> None:
        self.set(key, bool(value))

    def toggle(self, key: str, default: bool = False) -> bool:
        """Flip a boolean flag, persist it, and return the new value."""
        value = not self.get_bool(key, default)
        self.set_bool(key, value)
        return value

    def _shortcuts(self) -> Dict[str, Any]:
        shortcuts = self.get(SHORTCUTS_KEY)
        if not isinstance(shortcuts, dict):
            if shortcuts is not None:
                logger.warning(f"Ignoring malformed '{SHORTCUTS_KEY}' in {self.path}")
            return {}
        return dict(shortcuts)

    def get_shortcut(self, setting_key: str) -> Optional[Tuple[List[str], str]]:
        stored = self._shortcuts().get(setting_key)
        if not isinstance(stored, (list, tuple)) or len(stored) != 2:
            return None
        modifiers, key = stored
        if not isinstance(modifiers, (list, tuple)):
            return None
        return list(modifiers), str(key)

    def set_shortcut(self, setting_key: str, modifiers: List[str], key: str) -> None:
        shortcuts = self._shortcuts()
        shortcuts[setting_key] = [list(modifiers), key]
        self.set(SHORTCUTS_KEY, shortcuts)

    def clear_shortcut(self, setting_key: str) -> bool:
        shortcuts = self._shortcuts()
        if setting_key not in shortcuts:
            return False
        del shortcuts[setting_key]
        self.set(SHORTCUTS_KEY, shortcuts)
        return True
