"""Client configuration stored in config.yaml."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Mapping

import yaml

from .history import DEFAULT_BUDGET
from .image_host import DEFAULT_UPLOAD_URL
from .parser import DEFAULT_PARSE_THRESHOLD
from .transport import DEFAULT_BASE_URL, DEFAULT_READ_TIMEOUT

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant"
DEFAULT_CONFIG_PATH = Path("~/.llm-stream-chat/config.yaml").expanduser()


class ChatModel(Enum):
    """Models offered by the front end."""

    GPT3_TURBO = "gpt-3.5-turbo"
    GPT4O = "gpt-4o"

    @property
    def display_name(self) -> str:
        return {
            ChatModel.GPT3_TURBO: "GPT-3.5",
            ChatModel.GPT4O: "GPT-4o",
        }[self]


# ---------------------------------------------------------------------------
# Config dataclasses
# ---------------------------------------------------------------------------


@dataclass
class ImageHostConfig:
    """Credentials for the image upload collaborator."""

    api_key: str | None = None
    upload_url: str = DEFAULT_UPLOAD_URL

    def to_dict(self) -> dict:
        """Serialize to dict for YAML storage."""
        result: dict = {}
        if self.api_key is not None:
            result["api_key"] = self.api_key
        if self.upload_url != DEFAULT_UPLOAD_URL:
            result["upload_url"] = self.upload_url
        return result

    @classmethod
    def from_dict(cls, data: dict) -> ImageHostConfig:
        """Deserialize from dict."""
        return cls(
            api_key=data.get("api_key"),
            upload_url=data.get("upload_url", DEFAULT_UPLOAD_URL),
        )


@dataclass
class ChatConfig:
    """Provider and client settings."""

    api_key: str | None = None
    base_url: str = DEFAULT_BASE_URL
    model: str = ChatModel.GPT3_TURBO.value
    temperature: float = 0.5
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    stream: bool = True  # False for providers without usable streaming
    history_budget: int = DEFAULT_BUDGET
    parse_threshold: int = DEFAULT_PARSE_THRESHOLD
    read_timeout: float = DEFAULT_READ_TIMEOUT
    image_host: ImageHostConfig = field(default_factory=ImageHostConfig)

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ValueError: If a setting is out of range.
        """
        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError(f"temperature must be within 0..2: {self.temperature}")
        if self.history_budget <= 0:
            raise ValueError(f"history_budget must be positive: {self.history_budget}")
        if self.parse_threshold <= 0:
            raise ValueError(f"parse_threshold must be positive: {self.parse_threshold}")
        if self.read_timeout <= 0:
            raise ValueError(f"read_timeout must be positive: {self.read_timeout}")

    def to_dict(self) -> dict:
        """Serialize to dict for YAML storage."""
        provider: dict = {
            "base_url": self.base_url,
            "model": self.model,
            "temperature": self.temperature,
            "stream": self.stream,
        }
        if self.api_key is not None:
            provider["api_key"] = self.api_key
        return {
            "provider": provider,
            "chat": {
                "system_prompt": self.system_prompt,
                "history_budget": self.history_budget,
                "parse_threshold": self.parse_threshold,
                "read_timeout": self.read_timeout,
            },
            "image_host": self.image_host.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> ChatConfig:
        """Deserialize from dict. Missing keys keep their defaults."""
        provider = data.get("provider") or {}
        chat = data.get("chat") or {}
        defaults = cls()
        return cls(
            api_key=provider.get("api_key"),
            base_url=provider.get("base_url", defaults.base_url),
            model=provider.get("model", defaults.model),
            temperature=float(provider.get("temperature", defaults.temperature)),
            stream=bool(provider.get("stream", defaults.stream)),
            system_prompt=chat.get("system_prompt", defaults.system_prompt),
            history_budget=int(chat.get("history_budget", defaults.history_budget)),
            parse_threshold=int(chat.get("parse_threshold", defaults.parse_threshold)),
            read_timeout=float(chat.get("read_timeout", defaults.read_timeout)),
            image_host=ImageHostConfig.from_dict(data.get("image_host") or {}),
        )


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------

ENV_API_KEY = "OPENAI_API_KEY"
ENV_BASE_URL = "LLM_CHAT_BASE_URL"
ENV_MODEL = "LLM_CHAT_MODEL"
ENV_IMAGE_HOST_KEY = "IMGBB_API_KEY"


def apply_env_overrides(
    config: ChatConfig, environ: Mapping[str, str] | None = None
) -> ChatConfig:
    """Return a copy of ``config`` with environment variables applied.

    Args:
        config: Loaded configuration.
        environ: Environment mapping (defaults to os.environ).
    """
    env = os.environ if environ is None else environ
    updated = replace(config, image_host=replace(config.image_host))
    if env.get(ENV_API_KEY):
        updated.api_key = env[ENV_API_KEY]
    if env.get(ENV_BASE_URL):
        updated.base_url = env[ENV_BASE_URL]
    if env.get(ENV_MODEL):
        updated.model = env[ENV_MODEL]
    if env.get(ENV_IMAGE_HOST_KEY):
        updated.image_host.api_key = env[ENV_IMAGE_HOST_KEY]
    return updated


class ConfigManager:
    """Loads and saves ChatConfig as YAML.

    Saves are atomic (temp file + rename) to prevent corruption.
    """

    def __init__(self, config_path: Path = DEFAULT_CONFIG_PATH) -> None:
        """Initialize with path to config.yaml file."""
        self._config_path = config_path

    @property
    def config_path(self) -> Path:
        """Return the configuration file path."""
        return self._config_path

    def load(self) -> ChatConfig:
        """Load the configuration.

        Returns:
            ChatConfig from the file, or defaults if the file doesn't exist
            or is empty.

        Raises:
            ValueError: If the file is not valid YAML or holds out-of-range values.
        """
        if not self._config_path.exists():
            return ChatConfig()

        with open(self._config_path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {self._config_path}: {e}") from e

        if data is None:
            return ChatConfig()
        if not isinstance(data, dict):
            raise ValueError(f"Config must be a mapping: {self._config_path}")

        config = ChatConfig.from_dict(data)
        config.validate()
        return config

    def save(self, config: ChatConfig) -> None:
        """Save the configuration to the YAML file."""
        self._config_path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(
            dir=self._config_path.parent,
            prefix=".config_",
            suffix=".yaml.tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.safe_dump(config.to_dict(), f, default_flow_style=False)
            os.replace(temp_path, self._config_path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
