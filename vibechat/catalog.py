"""Model catalog — which models a request may select."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vibechat.config import AppConfig, ModelConfig


class UnknownModelError(LookupError):
    """Requested model id is not in the catalog."""

    def __init__(self, model_id: str):
        self.model_id = model_id
        super().__init__(f"Model {model_id} not found.")


async def get_available_models(config: AppConfig) -> list[ModelConfig]:
    """Return the models this deployment serves.

    Async so the request handler can await it alongside the request body.
    """
    return list(config.models)


def find_model(models: list[ModelConfig], model_id: str) -> ModelConfig:
    for model in models:
        if model.id == model_id:
            return model
    raise UnknownModelError(model_id)
