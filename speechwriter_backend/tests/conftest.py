"""
Pytest configuration and shared fixtures for the speechwriter backend tests.

This module provides:
- A scripted generation capability keyed by prompt name
- In-memory humanization and quality-issue stores (no database needed)
- Sample texts
"""

import json
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from speechwriter_backend.errors import PersistenceError
from speechwriter_backend.models import CriticFeedback, ExportBlock, HumanizationPass, QualityIssue
from speechwriter_backend.services.generation_adapter import GenerationAdapter, GenerationResult
from speechwriter_backend.services.prompt_manager import get_prompt_manager
from speechwriter_backend.services.stores import DroppedWriteBuffer, WriteResult


def pytest_configure(config):
    config.addinivalue_line("markers", "pipeline: humanization pipeline tests")
    config.addinivalue_line("markers", "quality_gate: export gate and issue lifecycle tests")


# ============================================================================
# Scripted generation capability
# ============================================================================

class ScriptedCapability:
    """
    Returns canned responses per prompt name. A response may be a dict
    (serialized to JSON), a raw string, or an exception instance to raise.
    """

    def __init__(self, responses: Optional[Dict[str, object]] = None):
        self.responses = dict(responses or {})
        self.calls: List[str] = []
        manager = get_prompt_manager()
        self._names_by_system = {
            manager.get_system_prompt(name): name for name in manager.list_prompts()
        }

    async def generate(self, request):
        name = self._names_by_system.get(request.system_prompt, "unknown")
        self.calls.append(name)
        if name not in self.responses:
            raise RuntimeError(f"No scripted response for {name}")
        response = self.responses[name]
        if isinstance(response, Exception):
            raise response
        text = response if isinstance(response, str) else json.dumps(response)
        return GenerationResult(
            raw_text=text,
            latency_ms=5,
            token_usage={"input_tokens": 10, "output_tokens": 20},
            model="test-model",
        )


@pytest.fixture
def scripted_capability():
    return ScriptedCapability()


@pytest.fixture
def generation_adapter(scripted_capability):
    return GenerationAdapter(scripted_capability, default_model="test-model")


# ============================================================================
# In-memory stores
# ============================================================================

def _now():
    return datetime.now(timezone.utc)


class InMemoryHumanizationStore:
    def __init__(self):
        self.passes: List[HumanizationPass] = []
        self.feedback: List[CriticFeedback] = []
        self.cliche_records: List[dict] = []
        self.dropped_writes = DroppedWriteBuffer()
        self.fail_cliche_writes = False
        self.fail_pass_types = set()

    async def next_pass_order(self, speech_id: str) -> int:
        orders = [p.pass_order for p in self.passes if str(p.speech_id) == str(speech_id)]
        return max(orders, default=0) + 1

    async def create_pass(self, *, speech_id, pass_type, input_text, output_text, pass_order,
                          changes=None, metrics=None, processing_time_ms=None, model_used=None):
        if pass_type in self.fail_pass_types:
            raise PersistenceError(f"Saving {pass_type} pass failed")
        record = HumanizationPass(
            id=uuid.uuid4(),
            speech_id=uuid.UUID(str(speech_id)),
            pass_type=pass_type,
            input_text=input_text,
            output_text=output_text,
            pass_order=pass_order,
            changes=changes or [],
            metrics=metrics or {},
            processing_time_ms=processing_time_ms,
            model_used=model_used,
        )
        self.passes.append(record)
        return record

    async def create_critic_feedback(self, *, humanization_pass_id, critic_type, scores,
                                     suggestions, feedback):
        record = CriticFeedback(
            id=uuid.uuid4(),
            humanization_pass_id=humanization_pass_id,
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
        self.feedback.append(record)
        return record

    async def set_accepted_edits(self, feedback, edits):
        feedback.accepted_edits = edits
        return feedback

    async def record_cliche_analysis(self, **payload) -> WriteResult:
        if self.fail_cliche_writes:
            self.dropped_writes.add(payload)
            return WriteResult(ok=False, error="database unavailable")
        record_id = str(uuid.uuid4())
        self.cliche_records.append({"id": record_id, **payload})
        return WriteResult(ok=True, record_id=record_id)


class InMemoryQualityIssueStore:
    def __init__(self):
        self.issues: Dict[str, QualityIssue] = {}
        self.blocks: List[ExportBlock] = []
        self.fail_block_writes = False

    async def create_issue(self, *, speech_id, user_id, issue_type, severity, title, description,
                           flagged_text=None, start_position=None, end_position=None,
                           suggestions=None, metadata=None):
        issue = QualityIssue(
            id=uuid.uuid4(),
            speech_id=uuid.UUID(str(speech_id)),
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
            created_at=_now(),
            updated_at=_now(),
        )
        self.issues[str(issue.id)] = issue
        return issue

    async def list_issues(self, speech_id, user_id, status=None):
        return [
            i for i in self.issues.values()
            if str(i.speech_id) == str(speech_id) and i.user_id == user_id
            and (status is None or i.status == status)
        ]

    async def list_unresolved(self, speech_id, user_id):
        return await self.list_issues(speech_id, user_id, status="unresolved")

    async def get_issue(self, issue_id):
        issue = self.issues.get(str(issue_id))
        if issue is None:
            raise LookupError(f"Quality issue {issue_id} not found")
        return issue

    async def get_issues(self, issue_ids):
        return [self.issues[str(i)] for i in issue_ids if str(i) in self.issues]

    async def save_resolutions(self, issues):
        return None

    def active_blocks(self, speech_id, user_id):
        return [
            b for b in self.blocks
            if str(b.speech_id) == str(speech_id) and b.user_id == user_id and b.is_active
        ]

    async def get_active_block(self, speech_id, user_id):
        active = self.active_blocks(speech_id, user_id)
        return active[0] if active else None

    async def upsert_active_block(self, speech_id, user_id, reason, related_issue_ids):
        if self.fail_block_writes:
            raise PersistenceError("Saving export block failed")
        block = await self.get_active_block(speech_id, user_id)
        if block is None:
            block = ExportBlock(
                id=uuid.uuid4(),
                speech_id=uuid.UUID(str(speech_id)),
                user_id=user_id,
                block_type="quality_issues",
                is_active=True,
            )
            self.blocks.append(block)
        block.block_reason = reason
        block.related_issue_ids = related_issue_ids
        return block

    async def deactivate_active_block(self, speech_id, user_id):
        block = await self.get_active_block(speech_id, user_id)
        if block is None:
            return None
        block.is_active = False
        block.resolved_at = _now()
        return block


@pytest.fixture
def humanization_store():
    return InMemoryHumanizationStore()


@pytest.fixture
def quality_store():
    return InMemoryQualityIssueStore()


# ============================================================================
# Sample data
# ============================================================================

@pytest.fixture
def speech_id():
    return str(uuid.uuid4())


@pytest.fixture
def cliche_sentence():
    return "We need to think outside the box and move the needle"
