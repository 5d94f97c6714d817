"""
Tests for prompt template loading and rendering.
"""

from pathlib import Path

import pytest

from cl_deal_finder.components.prompt_manager import (
    DEFAULT_EVALUATION_PROMPT,
    REQUIRED_PLACEHOLDERS,
    PromptManager,
)


class TestPromptManager:
    def test_default_template_has_placeholders(self):
        manager = PromptManager()
        template = manager.load_template()

        assert template == DEFAULT_EVALUATION_PROMPT
        for placeholder in REQUIRED_PLACEHOLDERS:
            assert placeholder in template
        assert 'A "good deal" requires score >= 70.' in template

    def test_render_leaves_json_braces_alone(self):
        rendered = PromptManager.render(
            DEFAULT_EVALUATION_PROMPT,
            {
                "query": "bike",
                "preferences": "None specified",
                "title": "Trek",
                "price": "$450",
                "description": "No description",
            },
        )

        assert "USER IS SEARCHING FOR: bike" in rendered
        assert '"score": <1-100>' in rendered
        assert '"retailPriceRange": {"low": <cents>, "high": <cents>} or null' in rendered
        assert "{query}" not in rendered

    def test_render_does_not_expand_values(self):
        rendered = PromptManager.render(
            "T={title} D={description}",
            {"title": "{description}", "description": "real"},
        )
        # each placeholder is substituted once, left to right
        assert rendered == "T=real D={description}"

    def test_load_from_prompts_directory(self, tmp_path):
        (tmp_path / "custom.txt").write_text(
            "{query} {preferences} {title} {price} {description}\n"
        )
        manager = PromptManager(str(tmp_path))

        template = manager.load_template("custom.txt")

        assert template == "{query} {preferences} {title} {price} {description}"
        assert manager.load_template("custom.txt") is template

    def test_missing_placeholder_rejected(self, tmp_path):
        (tmp_path / "bad.txt").write_text("{query} {title}")
        manager = PromptManager(str(tmp_path))

        with pytest.raises(RuntimeError, match="placeholders"):
            manager.load_template("bad.txt")

    def test_missing_file_rejected(self, tmp_path):
        with pytest.raises(RuntimeError):
            PromptManager(str(tmp_path)).load_template("nope.txt")

    def test_empty_file_rejected(self, tmp_path):
        (tmp_path / "empty.txt").write_text("   \n")
        with pytest.raises(RuntimeError, match="empty"):
            PromptManager(str(tmp_path)).load_template("empty.txt")

    def test_shipped_prompt_file_matches_default(self):
        manager = PromptManager(str(Path(__file__).resolve().parent.parent / "prompts"))
        assert manager.load_template("deal_evaluation.txt") == DEFAULT_EVALUATION_PROMPT.strip()
