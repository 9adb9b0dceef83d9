"""tests/test_config.py

Tests for config loading and validation (vibechat/config.py) and the tool
registry it validates against.
"""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from vibechat import tools as tool_registry
from vibechat.catalog import UnknownModelError, find_model, get_available_models
from vibechat.config import AppConfig, ReasoningConfig, get_config, load_config
from tests.conftest import CONFIG_PATH
from tests.utils import lookup

CATALOG = [
    {"id": "a", "name": "Model A", "provider_model": "provider-a"},
    {"id": "b", "name": "Model B", "provider_model": "provider-b"},
]


def _write(tmp_path: Path, raw: dict) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(raw))
    return path


class TestLoadConfig:
    """load_config and the module-level cache."""

    def test_repository_config_loads(self) -> None:
        config = load_config(CONFIG_PATH)

        assert config is get_config()
        assert config.default_model == "claude-sonnet-4"
        assert find_model(config.models, "claude-sonnet-4").name == "Claude Sonnet 4"
        assert config.step_budget == 20
        assert config.system_prompt.strip()
        assert not config.moderation.enabled

    def test_env_overrides(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MODERATION_API_KEY", "wc-env")
        monkeypatch.setenv("MODERATION_API_REGION", "eu")
        monkeypatch.setenv("VIBECHAT_API_KEY", "svc-env")

        config = load_config(_write(tmp_path, {"models": CATALOG, "default_model": "a"}))

        assert config.moderation.api_key == "wc-env"
        assert config.moderation.enabled
        assert config.moderation.url == "https://eu.whitecircle.ai/api/protect/check"
        assert config.api_key == "svc-env"

    def test_prompt_file_resolves_next_to_config(self, tmp_path: Path) -> None:
        (tmp_path / "prompt.md").write_text("You are terse.")
        path = _write(
            tmp_path,
            {"models": CATALOG, "default_model": "a", "system_prompt_file": "prompt.md"},
        )
        assert load_config(path).system_prompt == "You are terse."

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")


class TestAppConfigValidation:
    """Cross-field checks on AppConfig."""

    def test_default_model_must_be_in_catalog(self) -> None:
        with pytest.raises(ValidationError, match="not in the model catalog"):
            AppConfig(models=CATALOG, default_model="c")

    def test_duplicate_model_ids(self) -> None:
        with pytest.raises(ValidationError, match="Duplicate model ids"):
            AppConfig(models=CATALOG + CATALOG[:1], default_model="a")

    def test_unknown_tool(self) -> None:
        with pytest.raises(ValidationError, match="Unknown tool"):
            AppConfig(models=CATALOG, default_model="a", tools=["nonexistent_tool"])

    def test_registered_tool_resolves(self) -> None:
        tool_registry.register(lookup)
        try:
            config = AppConfig(models=CATALOG, default_model="a", tools=["lookup"])
            assert tool_registry.resolve_tools(config.tools) == [lookup]
        finally:
            tool_registry.unregister("lookup")
        assert "lookup" not in tool_registry.list_tools()

    def test_step_budget_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            AppConfig(models=CATALOG, default_model="a", step_budget=0)

    def test_public_dump_excludes_secrets(self) -> None:
        config = AppConfig(
            models=CATALOG,
            default_model="a",
            api_key="svc",
            system_prompt="secret prompt",
            moderation={"api_key": "wc"},
        )
        dumped = config.public_dump()
        assert "api_key" not in dumped
        assert "system_prompt" not in dumped
        assert "api_key" not in dumped["moderation"]
        assert dumped["moderation"]["region"] == "us"


class TestReasoningConfig:
    def test_budget_for(self) -> None:
        reasoning = ReasoningConfig()
        assert reasoning.budget_for("low") == 2048
        assert reasoning.budget_for("medium") == 8192
        assert reasoning.budget_for(None) is None

    def test_unknown_effort(self) -> None:
        with pytest.raises(ValueError):
            ReasoningConfig().budget_for("high")


class TestModelCatalog:
    """Catalog lookups (vibechat/catalog.py)."""

    @pytest.mark.asyncio
    async def test_available_models_follow_config(self) -> None:
        config = AppConfig(models=CATALOG, default_model="a")
        models = await get_available_models(config)
        assert [m.id for m in models] == ["a", "b"]
        assert find_model(models, "b").name == "Model B"

    def test_unknown_model(self) -> None:
        config = AppConfig(models=CATALOG, default_model="a")
        with pytest.raises(UnknownModelError) as excinfo:
            find_model(config.models, "nope")
        assert str(excinfo.value) == "Model nope not found."
        assert excinfo.value.model_id == "nope"
