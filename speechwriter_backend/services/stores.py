"""
Persistence operations for humanization passes, critic feedback, cliché
analysis records, quality issues and export blocks.

These stores are the only code that touches SQLAlchemy. Commit failures are
rolled back and surfaced as ``PersistenceError``; cliché analysis records are
analytics-style writes that return a ``WriteResult`` instead of raising.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from speechwriter_backend.config import PROMPT_VERSION
from speechwriter_backend.errors import PersistenceError
from speechwriter_backend.models import (
    ClicheAnalysisRecord,
    CriticFeedback,
    ExportBlock,
    HumanizationPass,
    QualityIssue,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def parse_uuid(value, field_name: str = "id") -> uuid.UUID:
    """Parse a string to UUID, raising ``ValueError`` with a clear message."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(value)
    except (ValueError, AttributeError, TypeError) as exc:
        raise ValueError(f"Invalid UUID for {field_name}: {value}") from exc


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_issue(issue: QualityIssue) -> dict:
    """Convert an ORM ``QualityIssue`` to a response-compatible dict."""
    return {
        "id": str(issue.id),
        "speech_id": str(issue.speech_id),
        "user_id": issue.user_id,
        "issue_type": issue.issue_type,
        "severity": issue.severity,
        "status": issue.status,
        "title": issue.title,
        "description": issue.description,
        "flagged_text": issue.flagged_text,
        "start_position": issue.start_position,
        "end_position": issue.end_position,
        "suggestions": issue.suggestions or [],
        "metadata": issue.issue_metadata or {},
        "user_response": issue.user_response,
        "resolved_by": issue.resolved_by,
        "resolved_at": _iso(issue.resolved_at),
        "created_at": _iso(issue.created_at),
        "updated_at": _iso(issue.updated_at),
    }


async def _commit(db: AsyncSession, action: str) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("[PERSISTENCE] %s failed: %s", action, exc)
        raise PersistenceError(f"{action} failed: {exc}") from exc


# ---------------------------------------------------------------------------
# Dropped analytics writes
# ---------------------------------------------------------------------------

@dataclass
class WriteResult:
    ok: bool
    record_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class DroppedWriteBuffer:
    """Payloads of analytics writes that failed, kept for reconciliation."""
    max_size: int = 1000
    entries: List[Dict[str, Any]] = field(default_factory=list)

    def add(self, payload: Dict[str, Any]) -> None:
        if len(self.entries) >= self.max_size:
            self.entries.pop(0)
        self.entries.append(payload)

    def drain(self) -> List[Dict[str, Any]]:
        drained, self.entries = self.entries, []
        return drained

    def __len__(self) -> int:
        return len(self.entries)


@lru_cache(maxsize=1)
def get_dropped_write_buffer() -> DroppedWriteBuffer:
    return DroppedWriteBuffer()


# ---------------------------------------------------------------------------
# Humanization passes
# ---------------------------------------------------------------------------

class HumanizationStore:
    def __init__(self, db_session: AsyncSession, dropped_writes: Optional[DroppedWriteBuffer] = None):
        self.db = db_session
        self.dropped_writes = dropped_writes if dropped_writes is not None else get_dropped_write_buffer()

    async def next_pass_order(self, speech_id: str) -> int:
        speech_uuid = parse_uuid(speech_id, "speech_id")
        result = await self.db.execute(
            select(func.max(HumanizationPass.pass_order)).where(HumanizationPass.speech_id == speech_uuid)
        )
        current = result.scalar_one_or_none()
        return (current or 0) + 1

    async def create_pass(self, *, speech_id: str, pass_type: str, input_text: str,
                          output_text: str, pass_order: int, changes: Optional[list] = None,
                          metrics: Optional[dict] = None, processing_time_ms: Optional[int] = None,
                          model_used: Optional[str] = None) -> HumanizationPass:
        record = HumanizationPass(
            id=uuid.uuid4(),
            speech_id=parse_uuid(speech_id, "speech_id"),
            pass_type=pass_type,
            input_text=input_text,
            output_text=output_text,
            pass_order=pass_order,
            changes=changes or [],
            metrics=metrics or {},
            processing_time_ms=processing_time_ms,
            model_used=model_used,
            prompt_version=PROMPT_VERSION,
        )
        self.db.add(record)
        await _commit(self.db, f"Saving {pass_type} pass")
        logger.info("[PERSISTENCE] Humanization pass saved: %s (%s #%s)", record.id, pass_type, pass_order)
        return record

    async def create_critic_feedback(self, *, humanization_pass_id, critic_type: str,
                                     scores: Dict[str, float], suggestions: list,
                                     feedback: str) -> CriticFeedback:
        record = CriticFeedback(
            id=uuid.uuid4(),
            humanization_pass_id=parse_uuid(humanization_pass_id, "humanization_pass_id"),
            critic_type=critic_type,
            specificity_score=scores.get("specificity"),
            freshness_score=scores.get("freshness"),
            performability_score=scores.get("performability"),
            persona_fit_score=scores.get("persona_fit"),
            overall_score=scores.get("overall"),
            suggestions=suggestions,
            feedback=feedback,
            accepted_edits=[],
        )
        self.db.add(record)
        await _commit(self.db, f"Saving {critic_type} feedback")
        logger.info("[PERSISTENCE] Critic feedback saved: %s (%s)", record.id, critic_type)
        return record

    async def set_accepted_edits(self, feedback: CriticFeedback, edits: List[dict]) -> CriticFeedback:
        feedback.accepted_edits = edits
        await _commit(self.db, f"Updating accepted edits for {feedback.critic_type}")
        return feedback

    async def record_cliche_analysis(self, *, speech_id: str, text_sample: str,
                                     detected_cliches: list, density: float,
                                     suggestions: list, overall_score: float) -> WriteResult:
        """Non-fatal write. Failures are buffered for ``flush_dropped_writes``."""
        payload = {
            "speech_id": speech_id,
            "text_sample": text_sample,
            "detected_cliches": detected_cliches,
            "cliche_density": density,
            "replacement_suggestions": suggestions,
            "overall_score": overall_score,
        }
        return await self._write_cliche_payload(payload)

    async def _write_cliche_payload(self, payload: Dict[str, Any]) -> WriteResult:
        try:
            record = ClicheAnalysisRecord(
                id=uuid.uuid4(),
                speech_id=parse_uuid(payload["speech_id"], "speech_id"),
                text_sample=payload["text_sample"],
                detected_cliches=payload["detected_cliches"],
                cliche_density=payload["cliche_density"],
                replacement_suggestions=payload["replacement_suggestions"],
                overall_score=payload["overall_score"],
            )
            self.db.add(record)
            await _commit(self.db, "Saving cliché analysis")
        except (PersistenceError, ValueError) as exc:
            logger.warning("[PERSISTENCE] Cliché analysis write dropped: %s", exc)
            self.dropped_writes.add(payload)
            return WriteResult(ok=False, error=str(exc))
        return WriteResult(ok=True, record_id=str(record.id))

    async def flush_dropped_writes(self) -> Dict[str, int]:
        """Retry buffered analytics writes once; failures go back in the buffer."""
        pending = self.dropped_writes.drain()
        written = 0
        for payload in pending:
            result = await self._write_cliche_payload(payload)
            if result.ok:
                written += 1
        failed = len(pending) - written
        if pending:
            logger.info("[PERSISTENCE] Reconciled %s dropped writes, %s still pending", written, failed)
        return {"attempted": len(pending), "written": written, "failed": failed}


# ---------------------------------------------------------------------------
# Quality issues and export blocks
# ---------------------------------------------------------------------------

class QualityIssueStore:
    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def create_issue(self, *, speech_id: str, user_id: str, issue_type: str,
                           severity: str, title: str, description: str,
                           flagged_text: Optional[str] = None,
                           start_position: Optional[int] = None,
                           end_position: Optional[int] = None,
                           suggestions: Optional[list] = None,
                           metadata: Optional[dict] = None) -> QualityIssue:
        issue = QualityIssue(
            id=uuid.uuid4(),
            speech_id=parse_uuid(speech_id, "speech_id"),
            user_id=user_id,
            issue_type=issue_type,
            severity=severity,
            status="unresolved",
            title=title,
            description=description,
            flagged_text=flagged_text,
            start_position=start_position,
            end_position=end_position,
            suggestions=suggestions or [],
            issue_metadata=metadata or {},
        )
        self.db.add(issue)
        await _commit(self.db, "Creating quality issue")
        await self.db.refresh(issue)
        logger.info("[PERSISTENCE] Quality issue created: %s (%s/%s)", issue.id, issue_type, severity)
        return issue

    async def list_issues(self, speech_id: str, user_id: str,
                          status: Optional[str] = None) -> List[QualityIssue]:
        query = (
            select(QualityIssue)
            .where(QualityIssue.speech_id == parse_uuid(speech_id, "speech_id"))
            .where(QualityIssue.user_id == user_id)
            .order_by(QualityIssue.created_at)
        )
        if status:
            query = query.where(QualityIssue.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_unresolved(self, speech_id: str, user_id: str) -> List[QualityIssue]:
        return await self.list_issues(speech_id, user_id, status="unresolved")

    async def get_issue(self, issue_id: str) -> QualityIssue:
        """Fetch a single issue. Raises ``LookupError`` if not found."""
        result = await self.db.execute(
            select(QualityIssue).where(QualityIssue.id == parse_uuid(issue_id, "issue_id"))
        )
        issue = result.scalar_one_or_none()
        if issue is None:
            raise LookupError(f"Quality issue {issue_id} not found")
        return issue

    async def get_issues(self, issue_ids: List[str]) -> List[QualityIssue]:
        uuids = [parse_uuid(i, "issue_id") for i in issue_ids]
        if not uuids:
            return []
        result = await self.db.execute(select(QualityIssue).where(QualityIssue.id.in_(uuids)))
        return list(result.scalars().all())

    async def save_resolutions(self, issues: List[QualityIssue]) -> None:
        await _commit(self.db, f"Resolving {len(issues)} quality issues")

    async def get_active_block(self, speech_id: str, user_id: str) -> Optional[ExportBlock]:
        result = await self.db.execute(
            select(ExportBlock)
            .where(ExportBlock.speech_id == parse_uuid(speech_id, "speech_id"))
            .where(ExportBlock.user_id == user_id)
            .where(ExportBlock.is_active.is_(True))
        )
        return result.scalars().first()

    async def upsert_active_block(self, speech_id: str, user_id: str, reason: str,
                                  related_issue_ids: List[str]) -> ExportBlock:
        block = await self.get_active_block(speech_id, user_id)
        if block is None:
            block = ExportBlock(
                id=uuid.uuid4(),
                speech_id=parse_uuid(speech_id, "speech_id"),
                user_id=user_id,
                block_type="quality_issues",
                is_active=True,
            )
            self.db.add(block)
        block.block_reason = reason
        block.related_issue_ids = related_issue_ids
        await _commit(self.db, "Saving export block")
        return block

    async def deactivate_active_block(self, speech_id: str, user_id: str) -> Optional[ExportBlock]:
        block = await self.get_active_block(speech_id, user_id)
        if block is None:
            return None
        block.is_active = False
        block.resolved_at = utcnow()
        await _commit(self.db, "Deactivating export block")
        return block
