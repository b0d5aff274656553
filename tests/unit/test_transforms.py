"""Tests for provider request shaping."""

import pytest

from credpool.transforms import (
    SUPPORTED_MODELS,
    THINKING_MODELS,
    apply_thinking_config,
    identity_transform,
    is_thinking_model,
)


@pytest.mark.unit
class TestThinkingConfig:
    def test_glm_models_enable_thinking(self) -> None:
        body = {"model": "glm-4.6", "messages": []}

        shaped = apply_thinking_config(body, "glm-4.6")

        assert shaped["chat_template_kwargs"] == {
            "enable_thinking": True,
            "clear_thinking": False,
        }
        assert shaped["messages"] == []
        assert "chat_template_kwargs" not in body

    def test_other_models_unchanged(self) -> None:
        body = {"model": "qwen3-max", "messages": []}

        shaped = apply_thinking_config(body, "qwen3-max")

        assert shaped == body
        assert shaped is not body

    def test_identity_copies(self) -> None:
        body = {"a": 1}
        assert identity_transform(body, "any") == body
        assert identity_transform(body, "any") is not body


@pytest.mark.unit
def test_thinking_models_detected_by_prefix() -> None:
    assert is_thinking_model("deepseek-r1")
    assert is_thinking_model("glm-4.6-latest")
    assert not is_thinking_model("qwen3-max")
    assert set(THINKING_MODELS) <= set(SUPPORTED_MODELS)
