"""Configuration loader — reads config.yaml, validates with Pydantic.

The YAML file declares the model catalog, the tool set, the generation step
budget and the moderation service. Secrets may be supplied through the
environment instead of the file (see ``_ENV_OVERRIDES``).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


class ModelConfig(BaseModel):
    """One entry in the model catalog."""

    model_config = ConfigDict(protected_namespaces=())

    id: str                 # id the client sends as modelId
    name: str               # human-readable name reported in stream metadata
    provider_model: str     # model string passed to the provider
    max_tokens: int = 8192


class ModerationConfig(BaseModel):
    """White Circle protect API settings. The gate is off without an api_key."""

    api_key: str | None = None
    region: str = "us"
    url_template: str = "https://{region}.whitecircle.ai/api/protect/check"
    api_version: str = "2025-06-15"
    timeout: float = Field(default=10.0, gt=0)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    @property
    def url(self) -> str:
        return self.url_template.format(region=self.region)


class ReasoningConfig(BaseModel):
    """Extended-thinking token budgets per reasoning effort."""

    low: int = Field(default=2048, ge=1024)
    medium: int = Field(default=8192, ge=1024)

    def budget_for(self, effort: Literal["low", "medium"] | None) -> int | None:
        match effort:
            case "low":
                return self.low
            case "medium":
                return self.medium
            case None:
                return None
            case _:
                raise ValueError(f"Unknown reasoning effort: {effort}")


class AppConfig(BaseModel):
    """Top-level service configuration."""

    models: list[ModelConfig]
    default_model: str
    step_budget: int = Field(default=20, gt=0)

    # Tool modules are imported at load time so their tools register themselves.
    tool_modules: list[str] = []
    tools: list[str] = []

    system_prompt_file: str | None = None
    system_prompt: str = ""

    moderation: ModerationConfig = ModerationConfig()
    reasoning: ReasoningConfig = ReasoningConfig()
    sink_maxsize: int = Field(default=64, gt=0)

    # Auth & CORS
    api_key: str | None = None
    allowed_origins: list[str] = ["*"]

    @model_validator(mode="after")
    def validate_references(self) -> AppConfig:
        from vibechat.tools import list_tools, load_tool_modules

        ids = [m.id for m in self.models]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate model ids: {duplicates}")

        if self.default_model not in ids:
            raise ValueError(
                f"default_model '{self.default_model}' is not in the model catalog. "
                f"Available: {ids}"
            )

        load_tool_modules(self.tool_modules)
        missing = [t for t in self.tools if t not in list_tools()]
        if missing:
            raise ValueError(
                f"Unknown tool(s): {missing}. Available: {sorted(list_tools())}"
            )

        return self

    def public_dump(self) -> dict:
        """Config as a dict with secrets removed."""
        return self.model_dump(
            exclude={"api_key": True, "moderation": {"api_key"}, "system_prompt": True}
        )


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------

# env var → path inside the raw YAML mapping
_ENV_OVERRIDES: dict[str, tuple[str, ...]] = {
    "MODERATION_API_KEY": ("moderation", "api_key"),
    "MODERATION_API_REGION": ("moderation", "region"),
    "VIBECHAT_API_KEY": ("api_key",),
}


def _apply_env_overrides(raw: dict) -> list[str]:
    applied = []
    for env_name, path in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if not value:
            continue
        target = raw
        for key in path[:-1]:
            if not isinstance(target.get(key), dict):
                target[key] = {}
            target = target[key]
        target[path[-1]] = value
        applied.append(env_name)
    return applied


# ---------------------------------------------------------------------------
# Module-level config cache
# ---------------------------------------------------------------------------

_config: AppConfig | None = None
_config_path: str = DEFAULT_CONFIG_PATH


def load_config(path: str | os.PathLike | None = None) -> AppConfig:
    """Read config.yaml from disk, apply env overrides, validate, and cache.

    Without an explicit path, ``VIBECHAT_CONFIG`` or ``config.yaml`` is used.
    A relative ``system_prompt_file`` resolves against the config file's directory.
    """
    global _config, _config_path
    path = str(path or os.environ.get("VIBECHAT_CONFIG", DEFAULT_CONFIG_PATH))
    _config_path = path

    config_file = Path(path)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_file.resolve()}")

    raw = yaml.safe_load(config_file.read_text()) or {}
    applied = _apply_env_overrides(raw)
    if applied:
        logger.info(f"Config env overrides applied: {applied}")

    prompt_file = raw.get("system_prompt_file")
    if prompt_file and not raw.get("system_prompt"):
        prompt_path = Path(prompt_file)
        if not prompt_path.is_absolute():
            prompt_path = config_file.parent / prompt_path
        raw["system_prompt"] = prompt_path.read_text()

    _config = AppConfig(**raw)

    logger.info(
        f"Loaded config: models={len(_config.models)}, "
        f"default_model={_config.default_model}, "
        f"moderation={'enabled' if _config.moderation.enabled else 'disabled'}"
    )
    return _config


def get_config() -> AppConfig:
    """Return cached config. Raises if not yet loaded."""
    if _config is None:
        raise RuntimeError("Config not loaded — call load_config() first")
    return _config


def reload_config() -> AppConfig:
    """Re-read config from disk. Called by /reload endpoint."""
    logger.info(f"Reloading config from {_config_path}")
    return load_config(_config_path)
