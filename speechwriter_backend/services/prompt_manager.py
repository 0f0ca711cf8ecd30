"""
Prompt Manager Service

Loads and renders the humanization stage prompts from prompts.json.
The file is hot-reloaded when its modification time changes.
"""

import json
from functools import lru_cache
from pathlib import Path
from string import Template
from typing import Any, Dict, List


class PromptManager:
    """
    Centralized manager for generation prompts

    Each prompt entry carries a ``system`` text, a user ``template`` rendered
    with ``string.Template`` ($variable syntax) and generation metadata
    (temperature, max_tokens, model).
    """

    def __init__(self, prompts_file: str = "prompts.json"):
        self.prompts_file = Path(prompts_file)

        self._prompts_cache = None
        self._file_mtime = None

        self.reload()

    def reload(self) -> None:
        """Reload prompts from file"""
        if not self.prompts_file.exists():
            raise FileNotFoundError(f"Prompts file not found: {self.prompts_file}")

        with open(self.prompts_file, 'r', encoding='utf-8') as f:
            self._prompts_cache = json.load(f)

        self._file_mtime = self.prompts_file.stat().st_mtime

    def _check_reload(self) -> None:
        """Reload if the file changed on disk"""
        if self.prompts_file.exists():
            current_mtime = self.prompts_file.stat().st_mtime
            if current_mtime != self._file_mtime:
                self.reload()

    def get_prompt(self, prompt_name: str) -> Dict[str, Any]:
        """
        Get a specific prompt configuration

        Raises:
            KeyError: If prompt not found
        """
        self._check_reload()

        if prompt_name not in self._prompts_cache.get("prompts", {}):
            raise KeyError(f"Prompt not found: {prompt_name}")

        return self._prompts_cache["prompts"][prompt_name].copy()

    def render_prompt(self, prompt_name: str, variables: Dict[str, Any]) -> str:
        """
        Render the user template of a prompt with variable substitution

        Raises:
            ValueError: If a template variable is missing
        """
        prompt_config = self.get_prompt(prompt_name)
        template = Template(prompt_config.get("template", ""))

        try:
            return template.substitute(variables)
        except KeyError as e:
            missing_var = str(e).strip("'")
            raise ValueError(
                f"Missing required variable '{missing_var}' for prompt '{prompt_name}'"
            )

    def get_system_prompt(self, prompt_name: str) -> str:
        return self.get_prompt(prompt_name).get("system", "")

    def get_prompt_metadata(self, prompt_name: str) -> Dict[str, Any]:
        """
        Get prompt metadata (model, temperature, max_tokens) without template
        """
        prompt_config = self.get_prompt(prompt_name)
        defaults = self._prompts_cache.get("defaults", {})

        return {
            "description": prompt_config.get("description", ""),
            "model": prompt_config.get("model", defaults.get("default_model")),
            "temperature": prompt_config.get("temperature", defaults.get("default_temperature", 0.5)),
            "max_tokens": prompt_config.get("max_tokens", defaults.get("default_max_tokens", 2000)),
            "version": self._prompts_cache.get("version", "1.0"),
        }

    def list_prompts(self) -> List[str]:
        self._check_reload()
        return list(self._prompts_cache.get("prompts", {}).keys())


@lru_cache(maxsize=1)
def get_prompt_manager() -> PromptManager:
    """Memoized PromptManager reading prompts.json next to this module"""
    prompts_file = Path(__file__).parent / "prompts.json"
    return PromptManager(prompts_file=str(prompts_file))
