"""
Trie-based multi-word phrase detector for clichés.

Phrases are inserted word by word into a trie. A search walks the trie from
every token position and emits every terminal node reached on the way, so a
registered phrase nested inside a longer registered phrase yields two
overlapping matches that both count toward density.
"""

import logging
import re
import string
from dataclasses import dataclass, field, asdict
from functools import lru_cache
from typing import Dict, Iterable, List, Optional

from speechwriter_backend.config import CONTEXT_WINDOW_CHARS

logger = logging.getLogger(__name__)

CLICHE_TABLE: Dict[str, List[str]] = {
    "business": [
        "think outside the box", "low hanging fruit", "move the needle",
        "circle back", "touch base", "game changer", "synergy",
        "paradigm shift", "best practices", "win-win", "actionable insights",
        "core competency", "deliverables", "bandwidth", "deep dive",
        "drill down", "going forward", "take it to the next level",
        "push the envelope", "reinvent the wheel", "boil the ocean",
        "drinking from the fire hose", "eating our own dog food", "quick win",
        "value add", "table stakes", "moving parts", "ballpark figure",
        "pain point", "thought leader",
    ],
    "general": [
        "at the end of the day", "when all is said and done",
        "it goes without saying", "needless to say", "last but not least",
        "for all intents and purposes", "in order to", "each and every",
        "at this point in time", "in today's day and age", "this day and age",
        "few and far between", "tried and true", "safe and sound",
        "first and foremost", "each and every one", "one and only",
        "null and void", "part and parcel", "peace and quiet", "beck and call",
        "trials and tribulations", "ups and downs", "ins and outs",
        "bits and pieces", "odds and ends",
    ],
    "motivational": [
        "follow your dreams", "reach for the stars", "the sky's the limit",
        "anything is possible", "believe in yourself", "never give up",
        "stay positive", "think positive", "live life to the fullest",
        "seize the day", "carpe diem", "make every moment count",
        "life is short", "you only live once", "chase your passion",
        "find your purpose", "be yourself", "stay true to yourself",
        "follow your heart", "trust your gut",
    ],
    "redundant": [
        "end result", "final outcome", "past history", "future plans",
        "personal opinion", "true facts", "close proximity", "exact same",
        "mutual cooperation", "basic fundamentals", "advance planning",
        "brief summary", "careful consideration", "complete monopoly",
        "consensus of opinion", "different varieties", "foreign imports",
        "free gift", "general public", "honest truth", "join together",
        "new innovation", "old adage", "past experience", "sudden impulse",
        "unexpected surprise",
    ],
}

SEVERITY_LOW = "LOW"
SEVERITY_MEDIUM = "MEDIUM"
SEVERITY_HIGH = "HIGH"
SEVERITY_RANK = {SEVERITY_LOW: 1, SEVERITY_MEDIUM: 2, SEVERITY_HIGH: 3}

# Punctuation stripped from token edges before trie lookup
_EDGE_PUNCTUATION = string.punctuation + "“”‘’…"
_TOKEN_RE = re.compile(r"\S+")


@dataclass(frozen=True)
class PhraseEntry:
    phrase: str
    category: str


@dataclass
class ClicheMatch:
    phrase: str
    category: str
    start: int
    end: int
    context: str
    severity: str = SEVERITY_LOW

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class _Token:
    key: str
    start: int
    end: int


@dataclass
class _TrieNode:
    children: Dict[str, "_TrieNode"] = field(default_factory=dict)
    entry: Optional[PhraseEntry] = None


def _tokenize(text: str) -> List[_Token]:
    tokens = []
    for match in _TOKEN_RE.finditer(text):
        raw = match.group(0)
        leading = len(raw) - len(raw.lstrip(_EDGE_PUNCTUATION))
        core = raw.strip(_EDGE_PUNCTUATION)
        start = match.start() + leading
        tokens.append(_Token(key=core.lower(), start=start, end=start + len(core)))
    return tokens


def count_tokens(text: str) -> int:
    return len(text.split())


def cliche_density(match_count: int, token_count: int) -> float:
    """Clichés per 100 tokens"""
    if token_count <= 0:
        return 0.0
    return match_count / token_count * 100


def classify_severity(category: str, density: float) -> str:
    if density > 2 or category == "business":
        return SEVERITY_HIGH
    if density > 1 or category == "redundant":
        return SEVERITY_MEDIUM
    return SEVERITY_LOW


def entries_from_table(table: Dict[str, Iterable[str]]) -> List[PhraseEntry]:
    return [
        PhraseEntry(phrase=phrase, category=category)
        for category, phrases in table.items()
        for phrase in phrases
    ]


class PhraseMatcher:
    """Word-level trie over a category -> phrase table."""

    def __init__(self, entries: Iterable[PhraseEntry], context_chars: int = CONTEXT_WINDOW_CHARS):
        self.context_chars = context_chars
        self._root = _TrieNode()
        self.phrase_count = 0
        for entry in entries:
            self.add(entry)

    def add(self, entry: PhraseEntry) -> None:
        words = entry.phrase.lower().split()
        if not words:
            return
        node = self._root
        for word in words:
            node = node.children.setdefault(word, _TrieNode())
        if node.entry is None:
            self.phrase_count += 1
        node.entry = entry

    def search(self, text: str) -> List[ClicheMatch]:
        """
        Return every registered phrase found in ``text``.

        Offsets refer to the original text, so ``text[m.start:m.end]`` equals
        the phrase up to case. Severity is left at LOW; callers that know the
        density of the whole text assign it with ``classify_severity``.
        """
        tokens = _tokenize(text)
        matches: List[ClicheMatch] = []

        for i in range(len(tokens)):
            node = self._root
            for j in range(i, len(tokens)):
                node = node.children.get(tokens[j].key)
                if node is None:
                    break
                if node.entry is not None:
                    start, end = tokens[i].start, tokens[j].end
                    matches.append(ClicheMatch(
                        phrase=node.entry.phrase,
                        category=node.entry.category,
                        start=start,
                        end=end,
                        context=self._context(text, start, end),
                    ))

        return matches

    def _context(self, text: str, start: int, end: int) -> str:
        return text[max(0, start - self.context_chars):min(len(text), end + self.context_chars)]

    def detect(self, text: str) -> List[ClicheMatch]:
        """Search and assign per-match severity from the text's density."""
        matches = self.search(text)
        density = cliche_density(len(matches), count_tokens(text))
        for match in matches:
            match.severity = classify_severity(match.category, density)
        return matches


@lru_cache(maxsize=1)
def get_phrase_matcher() -> PhraseMatcher:
    """Matcher over the built-in cliché table, built once on first use."""
    matcher = PhraseMatcher(entries_from_table(CLICHE_TABLE))
    logger.info("[CLICHE] Phrase trie built with %s phrases", matcher.phrase_count)
    return matcher
