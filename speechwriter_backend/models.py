"""
SQLAlchemy models for the speechwriter humanization pipeline and quality gate.
"""

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, Text, DateTime,
    ForeignKey, Index, CheckConstraint, UniqueConstraint, text
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.sql import func
import uuid

Base = declarative_base()

PASS_TYPES = ("rhetoric", "persona", "critic1", "critic2", "referee", "cultural")
ISSUE_TYPES = ("fact_check", "plagiarism", "risk_claim", "sensitive_topic", "cliche")
ISSUE_SEVERITIES = ("low", "medium", "high", "critical")
ISSUE_STATUSES = ("unresolved", "resolved", "acknowledged", "false_positive")


def _in_clause(column: str, values) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


class HumanizationPass(Base):
    """Immutable input/output snapshot of one pipeline stage"""
    __tablename__ = "humanization_passes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    speech_id = Column(UUID(as_uuid=True), nullable=False)

    pass_type = Column(Text, nullable=False)
    input_text = Column(Text, nullable=False)
    output_text = Column(Text, nullable=False)
    pass_order = Column(Integer, nullable=False)  # Strictly increasing per speech

    changes = Column(JSONB)
    metrics = Column(JSONB)
    processing_time_ms = Column(Integer)
    model_used = Column(Text)
    prompt_version = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(_in_clause("pass_type", PASS_TYPES), name="valid_pass_type"),
        UniqueConstraint("speech_id", "pass_order", name="uq_humanization_pass_order"),
        Index("idx_humanization_passes_speech", "speech_id", "pass_order"),
    )


class CriticFeedback(Base):
    """Scores and suggestions a critic produced for one humanization pass"""
    __tablename__ = "critic_feedback"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    humanization_pass_id = Column(
        UUID(as_uuid=True),
        ForeignKey("humanization_passes.id", ondelete="CASCADE"),
        nullable=False,
    )
    critic_type = Column(Text, nullable=False)  # 'critic1', 'critic2'

    # Dimension scores, clamped to [0, 10]
    specificity_score = Column(Float)
    freshness_score = Column(Float)
    performability_score = Column(Float)
    persona_fit_score = Column(Float)
    overall_score = Column(Float)

    suggestions = Column(JSONB)
    feedback = Column(Text)
    accepted_edits = Column(JSONB)  # Filled in by the referee stage

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_critic_feedback_pass", "humanization_pass_id"),
    )


class ClicheAnalysisRecord(Base):
    """Aggregated cliché analysis kept for later review"""
    __tablename__ = "cliche_analysis"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    speech_id = Column(UUID(as_uuid=True), nullable=False)
    text_sample = Column(Text, nullable=False)
    detected_cliches = Column(JSONB)
    cliche_density = Column(Float)  # Clichés per 100 tokens
    replacement_suggestions = Column(JSONB)
    overall_score = Column(Float)
    analysis_version = Column(Text, default="1.0")

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_cliche_analysis_speech", "speech_id"),
    )


class QualityIssue(Base):
    """Flag raised against a speech; resolved records are never reopened"""
    __tablename__ = "quality_issues"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    speech_id = Column(UUID(as_uuid=True), nullable=False)
    user_id = Column(Text, nullable=False)

    issue_type = Column(Text, nullable=False)
    severity = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="unresolved")

    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    flagged_text = Column(Text)
    start_position = Column(Integer)
    end_position = Column(Integer)

    suggestions = Column(JSONB)
    issue_metadata = Column("metadata", JSONB)

    user_response = Column(Text)
    resolved_at = Column(DateTime(timezone=True))
    resolved_by = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(_in_clause("issue_type", ISSUE_TYPES), name="valid_issue_type"),
        CheckConstraint(_in_clause("severity", ISSUE_SEVERITIES), name="valid_issue_severity"),
        CheckConstraint(_in_clause("status", ISSUE_STATUSES), name="valid_issue_status"),
        Index("idx_quality_issues_scope", "speech_id", "user_id", "status"),
    )


class ExportBlock(Base):
    """Persisted export denial; at most one active row per speech and user"""
    __tablename__ = "export_blocks"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    speech_id = Column(UUID(as_uuid=True), nullable=False)
    user_id = Column(Text, nullable=False)

    block_type = Column(String(64), nullable=False, default="quality_issues")
    block_reason = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    related_issue_ids = Column(JSONB)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    resolved_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index(
            "uq_export_blocks_active",
            "speech_id",
            "user_id",
            unique=True,
            postgresql_where=text("is_active"),
        ),
    )
