"""Provider-specific request body shaping.

Each transform has the ``BodyTransform`` signature ``(body, model) -> body``
and returns a new dict rather than mutating its input.
"""

from typing import Any


SUPPORTED_MODELS = (
    "iflow-rome-30ba3b",
    "qwen3-coder-plus",
    "qwen3-max",
    "qwen3-vl-plus",
    "qwen3-max-preview",
    "qwen3-32b",
    "qwen3-235b-a22b-thinking-2507",
    "qwen3-235b-a22b-instruct",
    "qwen3-235b",
    "kimi-k2-0905",
    "kimi-k2",
    "glm-4.6",
    "deepseek-v3.2",
    "deepseek-r1",
    "deepseek-v3",
)

THINKING_MODELS = ("glm-4.6", "qwen3-235b-a22b-thinking-2507", "deepseek-r1")

# Model prefixes that only reason when asked via chat_template_kwargs
_TEMPLATE_THINKING_PREFIXES = ("glm-4",)


def is_thinking_model(model: str) -> bool:
    return model.startswith(THINKING_MODELS)


def identity_transform(body: dict[str, Any], model: str) -> dict[str, Any]:
    return dict(body)


def apply_thinking_config(body: dict[str, Any], model: str) -> dict[str, Any]:
    """Enable reasoning output for GLM-4 family models."""
    if model.startswith(_TEMPLATE_THINKING_PREFIXES):
        return {
            **body,
            "chat_template_kwargs": {
                "enable_thinking": True,
                "clear_thinking": False,
            },
        }
    return dict(body)
