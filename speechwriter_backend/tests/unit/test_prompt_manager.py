import json

import pytest

from speechwriter_backend.services.prompt_manager import PromptManager, get_prompt_manager


def _write_prompts(path, template="Hello $name", temperature=0.3):
    path.write_text(json.dumps({
        "version": "2.0",
        "defaults": {"default_max_tokens": 1234},
        "prompts": {
            "greeting": {
                "description": "Say hello",
                "system": "You greet people.",
                "template": template,
                "temperature": temperature,
            }
        },
    }), encoding="utf-8")


def test_render_prompt(tmp_path):
    prompts_file = tmp_path / "prompts.json"
    _write_prompts(prompts_file)

    manager = PromptManager(str(prompts_file))

    assert manager.render_prompt("greeting", {"name": "Ada"}) == "Hello Ada"
    assert manager.get_system_prompt("greeting") == "You greet people."


def test_missing_variable_raises_value_error(tmp_path):
    prompts_file = tmp_path / "prompts.json"
    _write_prompts(prompts_file)

    with pytest.raises(ValueError, match="name"):
        PromptManager(str(prompts_file)).render_prompt("greeting", {})


def test_unknown_prompt_raises_key_error(tmp_path):
    prompts_file = tmp_path / "prompts.json"
    _write_prompts(prompts_file)

    with pytest.raises(KeyError):
        PromptManager(str(prompts_file)).get_prompt("farewell")


def test_metadata_falls_back_to_defaults(tmp_path):
    prompts_file = tmp_path / "prompts.json"
    _write_prompts(prompts_file)

    metadata = PromptManager(str(prompts_file)).get_prompt_metadata("greeting")

    assert metadata["temperature"] == 0.3
    assert metadata["max_tokens"] == 1234
    assert metadata["version"] == "2.0"


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        PromptManager(str(tmp_path / "absent.json"))


def test_reload_picks_up_changes(tmp_path):
    prompts_file = tmp_path / "prompts.json"
    _write_prompts(prompts_file)
    manager = PromptManager(str(prompts_file))

    _write_prompts(prompts_file, template="Hi $name")
    manager._file_mtime = None

    assert manager.render_prompt("greeting", {"name": "Ada"}) == "Hi Ada"


def test_bundled_prompts_cover_every_stage():
    names = set(get_prompt_manager().list_prompts())

    assert {
        "rhetoric_pass", "persona_pass", "critic1", "critic2", "referee",
        "cliche_rewrite", "cliche_detect", "plagiarism_check", "risk_claims",
    } <= names
