"""
Export quality gate.

Decides whether a speech may be exported from its unresolved quality issues,
keeps the single active ExportBlock for a (speech, user) pair in sync with
that decision and owns the issue resolution lifecycle.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional

from speechwriter_backend.errors import ValidationError
from speechwriter_backend.models import ISSUE_SEVERITIES, ISSUE_STATUSES, ISSUE_TYPES
from speechwriter_backend.services.stores import serialize_issue, utcnow

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = tuple(s for s in ISSUE_STATUSES if s != "unresolved")
CAPPED_REASON = "Too many unresolved issues"


def _default_blocking_rules() -> Dict[str, FrozenSet[str]]:
    return {
        "fact_check": frozenset({"high", "critical"}),
        "plagiarism": frozenset({"medium", "high", "critical"}),
        "risk_claim": frozenset({"high", "critical"}),
        "sensitive_topic": frozenset({"critical"}),
        "cliche": frozenset(),
    }


def _default_caps() -> Dict[str, int]:
    return {"low": 20, "medium": 10, "high": 5, "critical": 1}


@dataclass(frozen=True)
class QualityGateConfig:
    blocking_rules: Dict[str, FrozenSet[str]] = field(default_factory=_default_blocking_rules)
    max_unresolved_issues: Dict[str, int] = field(default_factory=_default_caps)

    def blocks(self, issue_type: str, severity: str) -> bool:
        # Unknown issue types never block by rule
        return severity in self.blocking_rules.get(issue_type, frozenset())


@dataclass
class ExportValidation:
    can_export: bool
    blocking_issues: List[dict] = field(default_factory=list)
    warnings: List[dict] = field(default_factory=list)
    total_issues: int = 0
    severity_counts: Dict[str, int] = field(default_factory=dict)
    capped_severities: List[str] = field(default_factory=list)
    export_block_id: Optional[str] = None
    block_reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "canExport": self.can_export,
            "blockingIssues": self.blocking_issues,
            "warnings": self.warnings,
            "totalIssues": self.total_issues,
            "severityCounts": self.severity_counts,
            "cappedSeverities": self.capped_severities,
            "exportBlockId": self.export_block_id,
            "blockReason": self.block_reason,
        }


class QualityGate:
    def __init__(self, store, config: Optional[QualityGateConfig] = None):
        self.store = store
        self.config = config or QualityGateConfig()

    async def validate_export(self, speech_id: str, user_id: str) -> ExportValidation:
        """
        Evaluate the gate and bring the active export block in line with it.
        A persistence failure while maintaining the block propagates.
        """
        issues = await self.store.list_unresolved(speech_id, user_id)

        blocking = [i for i in issues if self.config.blocks(i.issue_type, i.severity)]
        warnings = [i for i in issues if not self.config.blocks(i.issue_type, i.severity)]

        counts = {severity: 0 for severity in ISSUE_SEVERITIES}
        for issue in issues:
            counts[issue.severity] = counts.get(issue.severity, 0) + 1
        capped = [
            severity for severity, count in counts.items()
            if count > self.config.max_unresolved_issues.get(severity, count)
        ]

        can_export = not blocking and not capped
        validation = ExportValidation(
            can_export=can_export,
            blocking_issues=[serialize_issue(i) for i in blocking],
            warnings=[serialize_issue(i) for i in warnings],
            total_issues=len(issues),
            severity_counts=counts,
            capped_severities=capped,
        )

        if can_export:
            block = await self.store.deactivate_active_block(speech_id, user_id)
            if block is not None:
                logger.info("[QUALITY_GATE] Export block %s lifted for speech %s", block.id, speech_id)
            return validation

        reason = blocking[0].description if blocking else CAPPED_REASON
        related = [str(i.id) for i in (blocking or issues)]
        block = await self.store.upsert_active_block(speech_id, user_id, reason, related)
        validation.export_block_id = str(block.id)
        validation.block_reason = reason
        logger.warning(
            "[QUALITY_GATE] Export blocked for speech %s: %s (%s blocking, capped=%s)",
            speech_id, reason, len(blocking), capped,
        )
        return validation

    async def create_issue(self, *, speech_id: str, user_id: str, issue_type: str,
                           severity: str, title: str, description: str, **fields):
        if issue_type not in ISSUE_TYPES:
            raise ValidationError(f"Unknown issue type: {issue_type}")
        if severity not in ISSUE_SEVERITIES:
            raise ValidationError(f"Unknown severity: {severity}")
        return await self.store.create_issue(
            speech_id=speech_id, user_id=user_id, issue_type=issue_type,
            severity=severity, title=title, description=description, **fields,
        )

    async def get_issues(self, speech_id: str, user_id: str, status: Optional[str] = None) -> List[dict]:
        issues = await self.store.list_issues(speech_id, user_id, status=status)
        return [serialize_issue(i) for i in issues]

    @staticmethod
    def _check_resolution(resolution: str) -> None:
        if resolution not in TERMINAL_STATUSES:
            raise ValidationError(
                f"Invalid resolution '{resolution}'. Expected one of {list(TERMINAL_STATUSES)}"
            )

    @staticmethod
    def _apply_resolution(issue, resolution: str, note: Optional[str], resolved_by: Optional[str]) -> None:
        now = utcnow()
        issue.status = resolution
        issue.user_response = note
        issue.resolved_by = resolved_by
        issue.resolved_at = now
        issue.updated_at = now

    async def resolve_issue(self, issue_id: str, resolution: str, note: Optional[str] = None,
                            resolved_by: Optional[str] = None) -> dict:
        """
        Move an unresolved issue to a terminal status. The gate is not
        re-evaluated here; callers query ``validate_export`` afterwards.
        """
        self._check_resolution(resolution)
        issue = await self.store.get_issue(issue_id)
        if issue.status != "unresolved":
            raise ValidationError(f"Quality issue {issue_id} is already {issue.status}")

        self._apply_resolution(issue, resolution, note, resolved_by)
        await self.store.save_resolutions([issue])
        logger.info("[QUALITY_GATE] Issue %s marked %s by %s", issue_id, resolution, resolved_by)
        return {"success": True, "issue": serialize_issue(issue)}

    async def batch_resolve_issues(self, issue_ids: List[str], resolution: str,
                                   note: Optional[str] = None,
                                   resolved_by: Optional[str] = None) -> dict:
        self._check_resolution(resolution)
        issues = await self.store.get_issues(issue_ids)
        found = {str(i.id) for i in issues}

        to_resolve = [i for i in issues if i.status == "unresolved"]
        for issue in to_resolve:
            self._apply_resolution(issue, resolution, note, resolved_by)
        if to_resolve:
            await self.store.save_resolutions(to_resolve)

        return {
            "success": True,
            "resolved": [str(i.id) for i in to_resolve],
            "skipped": [str(i.id) for i in issues if i not in to_resolve],
            "notFound": [i for i in issue_ids if str(i) not in found],
        }
