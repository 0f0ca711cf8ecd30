"""
Resolve overlapping candidate edits into a single text.

Edits are applied from the end of the string toward the beginning, so a
splice at a higher offset never shifts the offsets of edits still to apply.
Among overlapping candidates the higher score wins.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import List, Optional

logger = logging.getLogger(__name__)

PRIORITY_SCORES = {"high": 0.9, "medium": 0.6, "low": 0.3}
REFEREE_EDIT_SCORE = 1.0


@dataclass(frozen=True)
class Edit:
    start: int
    end: int
    replacement: str
    score: float = 0.0
    source: str = "unknown"
    original: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    def overlaps(self, other: "Edit") -> bool:
        # Half-open spans; two insertions at the same offset also collide
        if self.start == other.start and self.end == other.end:
            return True
        return self.start < other.end and other.start < self.end


@dataclass
class MergeConflict:
    edit: Edit
    reason: str
    kept: Optional[Edit] = None

    def to_dict(self) -> dict:
        return {
            "edit": self.edit.to_dict(),
            "reason": self.reason,
            "kept": self.kept.to_dict() if self.kept else None,
        }


@dataclass
class MergeResult:
    merged_text: str
    applied_edits: List[Edit] = field(default_factory=list)
    conflicts: List[MergeConflict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "mergedText": self.merged_text,
            "appliedEdits": [e.to_dict() for e in self.applied_edits],
            "conflicts": [c.to_dict() for c in self.conflicts],
        }


def is_valid_span(edit: Edit, text_length: int) -> bool:
    return 0 <= edit.start <= edit.end <= text_length


def merge_edits(text: str, edits: List[Edit]) -> MergeResult:
    """
    Merge ``edits`` into ``text``.

    Out-of-range or inverted spans go straight to conflicts. The remaining
    edits are visited by descending score (ties by descending start, then
    input order) and an edit overlapping one already kept is discarded.
    Survivors are spliced in start-descending order.
    """
    conflicts: List[MergeConflict] = []
    candidates = []

    for index, edit in enumerate(edits):
        if not is_valid_span(edit, len(text)):
            conflicts.append(MergeConflict(edit=edit, reason="invalid_span"))
            continue
        candidates.append((index, edit))

    candidates.sort(key=lambda item: (-item[1].score, -item[1].start, item[0]))

    kept: List[Edit] = []
    for _, edit in candidates:
        blocker = next((k for k in kept if k.overlaps(edit)), None)
        if blocker is not None:
            conflicts.append(MergeConflict(edit=edit, reason="overlap", kept=blocker))
            continue
        kept.append(edit)

    kept.sort(key=lambda e: (e.start, e.end), reverse=True)

    merged = text
    for edit in kept:
        merged = merged[:edit.start] + edit.replacement + merged[edit.end:]

    if conflicts:
        logger.info("[PIPELINE] Edit merge kept %s edits, %s conflicts", len(kept), len(conflicts))

    return MergeResult(merged_text=merged, applied_edits=kept, conflicts=conflicts)
