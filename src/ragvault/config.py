"""Application settings and logging setup.

Settings are loaded from (lowest to highest precedence):
1. Built-in defaults
2. The JSON settings file (~/.ragvault/settings.json, or $RAGVAULT_CONFIG)
3. Environment variables, including a .env file in the working directory:
   RAGFLOW_URL, RAGFLOW_API_KEY, RAGFLOW_ASSISTANT_ID

Values that came from the environment are not written back to the file.
"""

import json
import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator
from rich.console import Console
from rich.logging import RichHandler

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".ragvault" / "settings.json"

ENV_OVERRIDES = {
    "RAGFLOW_URL": "ragflow_url",
    "RAGFLOW_API_KEY": "api_key",
    "RAGFLOW_ASSISTANT_ID": "chat_assistant_id",
}


class Settings(BaseModel):
    """User-editable settings."""

    ragflow_url: str = Field(default="http://localhost:9380", description="RAGFlow server URL")
    api_key: str = Field(default="", description="RAGFlow API key")
    chat_assistant_id: str = Field(default="", description="Selected chat assistant")
    chat_assistant_name: str = Field(default="", description="Display name of the selected assistant")
    save_folder_path: str = Field(
        default="RAGFlow Conversations",
        description="Folder inside the vault where conversations are saved"
    )
    auto_save: bool = Field(default=True, description="Save after every answer")
    vault_path: str = Field(default=".", description="Root directory of the notes vault")
    timeout: float = Field(default=60.0, gt=0, description="HTTP timeout in seconds")

    @field_validator("ragflow_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @property
    def resolved_vault_path(self) -> Path:
        return Path(self.vault_path).expanduser().resolve()

    @property
    def masked_api_key(self) -> str:
        """API key safe for display."""
        if not self.api_key:
            return ""
        if len(self.api_key) <= 8:
            return "*" * len(self.api_key)
        return f"{self.api_key[:4]}...{self.api_key[-4:]}"


SettingsListener = Callable[[Settings], None]


class SettingsStore:
    """Loads and persists settings, notifying listeners on change.

    The conversation controller subscribes so that the API client is rebuilt
    whenever the connection settings change.
    """

    def __init__(self, path: str | Path | None = None, use_env: bool = True):
        env_path = os.getenv("RAGVAULT_CONFIG")
        self._path = Path(path or env_path or DEFAULT_CONFIG_PATH).expanduser()
        self._use_env = use_env
        self._env_values: dict[str, str] = {}
        self._listeners: list[SettingsListener] = []
        self._settings: Settings | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def settings(self) -> Settings:
        """Current settings (loaded on first access)."""
        if self._settings is None:
            self._settings = self.load()
        return self._settings

    def load(self) -> Settings:
        """Read settings from file and environment."""
        data: dict[str, Any] = {}
        if self._path.exists():
            try:
                data = json.loads(self._path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as e:
                raise ValueError(f"Settings file {self._path} is not valid JSON: {e}") from e
            if not isinstance(data, dict):
                raise ValueError(f"Settings file {self._path} must contain a JSON object")

        self._env_values = {}
        if self._use_env:
            load_dotenv(find_dotenv(usecwd=True))
            for env_name, field_name in ENV_OVERRIDES.items():
                value = os.getenv(env_name)
                if value:
                    self._env_values[field_name] = value
            data.update(self._env_values)

        known = {k: v for k, v in data.items() if k in Settings.model_fields}
        try:
            self._settings = Settings(**known)
        except ValidationError as e:
            raise ValueError(f"Invalid settings in {self._path}: {e}") from e

        logger.debug("Loaded settings from %s", self._path)
        return self._settings

    def save(self, settings: Settings) -> None:
        """Persist settings and notify listeners."""
        data = settings.model_dump()
        for field_name, env_value in self._env_values.items():
            if data.get(field_name) == env_value:
                data.pop(field_name)

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        self._settings = settings
        logger.debug("Saved settings to %s", self._path)

        for listener in list(self._listeners):
            listener(settings)

    def update(self, **changes: Any) -> Settings:
        """Apply field changes, save and return the new settings."""
        unknown = set(changes) - set(Settings.model_fields)
        if unknown:
            raise KeyError(f"Unknown setting(s): {', '.join(sorted(unknown))}")
        updated = Settings(**{**self.settings.model_dump(), **changes})
        self.save(updated)
        return updated

    def subscribe(self, listener: SettingsListener) -> Callable[[], None]:
        """Register a settings-changed listener. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe


def configure_logging(level: str = "warning", console: Console | None = None) -> None:
    """Send ragvault log records to the terminal through Rich."""
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    root = logging.getLogger("ragvault")
    root.handlers = [handler]
    root.setLevel(level.upper())
    root.propagate = False
