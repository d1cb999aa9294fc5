"""
Configuration: bot settings from YAML, .env and environment.

Loading priority:
  1. Project dir smallbot.yaml
  2. Global ~/.smallbot/config.yml

Secrets (bot token, API keys) normally come from .env / the environment.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Set

import yaml
from dotenv import load_dotenv

from .logger import get_logger

_log = get_logger(__name__)

CONFIG_DIR = Path.home() / ".smallbot"
CONFIG_FILE = CONFIG_DIR / "config.yml"
PROJECT_CONFIG_NAME = "smallbot.yaml"

# Telegram's hard ceiling for one text message.
DEFAULT_MESSAGE_LIMIT = 4096

PROVIDER_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "gemini": "GEMINI_API_KEY",
}


@dataclass
class Config:
    streaming: bool = True
    provider: str = "anthropic"
    model: str = "claude-sonnet-4-5-20250929"
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    temperature: float = 0.0
    max_tokens: int = 4096
    model_timeout: int = 120
    max_turns: int = 25
    throttle_interval: float = 0.5
    min_chars_change: int = 20
    message_limit: int = DEFAULT_MESSAGE_LIMIT
    session_idle_timeout: int = 3600
    timezone: str = "UTC"
    plugins_dir: str = "plugins"
    data_dir: str = ".smallbot"
    work_dir: str = "."
    command_timeout: int = 30
    verbose: bool = False
    bot_token: Optional[str] = None
    allowed_user_ids: Set[int] = field(default_factory=set)
    project_root: Optional[str] = None
    _config_source: str = ""

    @classmethod
    def load(cls, project_dir: str = ".") -> "Config":
        config = cls()
        project_path = Path(project_dir).resolve()

        for env_path in [CONFIG_DIR / ".env", project_path / ".env"]:
            if env_path.exists():
                load_dotenv(env_path, override=False)

        for candidate in [project_path / PROJECT_CONFIG_NAME, CONFIG_FILE]:
            if candidate.exists():
                config._load_yaml(candidate)
                config._config_source = str(candidate)
                break

        config._apply_env()
        config.project_root = str(project_path)
        return config

    def _load_yaml(self, filepath: Path):
        try:
            with open(filepath, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            _log.warning("Failed to parse %s, using defaults: %s", filepath, e)
            return
        if not isinstance(data, dict):
            _log.warning("Ignoring %s: top level is not a mapping", filepath)
            return

        self.streaming = self._coerce_bool(data.get("streaming", True), default=True)
        self.provider = str(data.get("provider", self.provider))
        self.model = str(data.get("model", self.model))
        self.api_key = data.get("api-key", self.api_key)
        self.api_base = data.get("api-base", self.api_base)
        self.temperature = self._coerce_float(
            data.get("temperature", 0.0), default=0.0, min_value=0.0, max_value=2.0
        )
        self.max_tokens = self._coerce_positive_int(
            data.get("max-tokens", 4096), default=4096, min_value=256, max_value=200000
        )
        self.model_timeout = self._coerce_positive_int(
            data.get("model-timeout", 120), default=120, min_value=5, max_value=3600
        )
        self.max_turns = self._coerce_positive_int(
            data.get("max-turns", 25), default=25, min_value=1, max_value=200
        )
        self.throttle_interval = self._coerce_float(
            data.get("throttle-interval", 0.5), default=0.5, min_value=0.0, max_value=30.0
        )
        self.min_chars_change = self._coerce_positive_int(
            data.get("min-chars-change", 20), default=20, min_value=0, max_value=4096
        )
        self.message_limit = self._coerce_positive_int(
            data.get("message-limit", DEFAULT_MESSAGE_LIMIT),
            default=DEFAULT_MESSAGE_LIMIT, min_value=64, max_value=DEFAULT_MESSAGE_LIMIT,
        )
        self.session_idle_timeout = self._coerce_positive_int(
            data.get("session-idle-timeout", 3600), default=3600, min_value=0, max_value=7 * 86400
        )
        self.timezone = str(data.get("timezone", self.timezone))
        self.plugins_dir = str(data.get("plugins-dir", self.plugins_dir))
        self.data_dir = str(data.get("data-dir", self.data_dir))
        self.work_dir = str(data.get("work-dir", self.work_dir))
        self.command_timeout = self._coerce_positive_int(
            data.get("command-timeout", 30), default=30, min_value=1, max_value=600
        )
        self.verbose = self._coerce_bool(data.get("verbose", False), default=False)
        if data.get("bot-token"):
            self.bot_token = str(data["bot-token"])
        if "allowed-user-ids" in data:
            self.allowed_user_ids = self._parse_user_ids(data["allowed-user-ids"])

    def _apply_env(self):
        if os.environ.get("BOT_TOKEN"):
            self.bot_token = os.environ["BOT_TOKEN"]
        if os.environ.get("ALLOWED_USER_IDS"):
            self.allowed_user_ids = self._parse_user_ids(os.environ["ALLOWED_USER_IDS"])
        if os.environ.get("MODEL_PROVIDER"):
            self.provider = os.environ["MODEL_PROVIDER"]
        if os.environ.get("MODEL_ID"):
            self.model = os.environ["MODEL_ID"]
        if os.environ.get("SMALLBOT_VERBOSE"):
            self.verbose = self._coerce_bool(os.environ["SMALLBOT_VERBOSE"], default=self.verbose)

    def resolve_api_key(self) -> Optional[str]:
        if self.api_key:
            return self.api_key
        env_var = PROVIDER_KEY_ENV.get(self.provider)
        return os.environ.get(env_var) if env_var else None

    def get_llm_kwargs(self) -> dict:
        """Return kwargs dict for LLMAdapter constructor; passed directly, no env vars."""
        return {
            "provider": self.provider,
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout": self.model_timeout,
            "api_base": self.api_base,
            "api_key": self.resolve_api_key(),
        }

    def resolve_path(self, value: str) -> Path:
        """Resolve a configured path relative to the project root."""
        path = Path(value).expanduser()
        if path.is_absolute():
            return path
        return Path(self.project_root or ".").resolve() / path

    def summary(self) -> dict:
        return {
            "source": self._config_source or "(defaults)",
            "model": f"{self.provider}/{self.model}",
            "streaming": self.streaming,
            "max_turns": self.max_turns,
            "throttle": f"{self.throttle_interval}s / {self.min_chars_change} chars",
            "message_limit": self.message_limit,
            "allowed_users": len(self.allowed_user_ids),
        }

    @staticmethod
    def _parse_user_ids(value) -> Set[int]:
        if isinstance(value, (list, tuple, set)):
            raw_values = [str(item) for item in value]
        else:
            raw_values = re.split(r"[\s,]+", str(value or ""))
        ids = set()
        for item in raw_values:
            item = item.strip()
            if not item:
                continue
            try:
                ids.add(int(item))
            except ValueError:
                _log.warning("Ignoring non-numeric user id: %r", item)
        return ids

    @staticmethod
    def _coerce_bool(value, default: bool) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            text = value.strip().lower()
            if text in ("1", "true", "yes", "on"):
                return True
            if text in ("0", "false", "no", "off"):
                return False
        if isinstance(value, (int, float)):
            return bool(value)
        return default

    @staticmethod
    def _coerce_positive_int(value, default: int, min_value: int = 1, max_value: int = 100000) -> int:
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            return default
        if parsed < min_value:
            return min_value
        if parsed > max_value:
            return max_value
        return parsed

    @staticmethod
    def _coerce_float(value, default: float, min_value: float = 0.0, max_value: float = 1e9) -> float:
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            return default
        return max(min_value, min(max_value, parsed))
