"""Services for the speechwriter humanization pipeline."""

from .edit_merger import Edit, MergeResult, merge_edits
from .phrase_matcher import PhraseMatcher, get_phrase_matcher
from .prompt_manager import PromptManager

__all__ = [
    'Edit',
    'MergeResult',
    'merge_edits',
    'PhraseMatcher',
    'get_phrase_matcher',
    'PromptManager',
]
