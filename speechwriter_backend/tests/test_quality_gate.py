"""
Tests for the export quality gate and the issue resolution lifecycle.
"""

import uuid

import pytest

from speechwriter_backend.errors import PersistenceError, ValidationError
from speechwriter_backend.services.quality_gate import CAPPED_REASON, QualityGate, QualityGateConfig

pytestmark = [pytest.mark.quality_gate, pytest.mark.asyncio]

USER = "user-1"


@pytest.fixture
def gate(quality_store):
    return QualityGate(quality_store)


async def _issue(gate, speech_id, issue_type, severity, description="Needs attention"):
    return await gate.create_issue(
        speech_id=speech_id, user_id=USER, issue_type=issue_type, severity=severity,
        title=f"{issue_type} issue", description=description,
    )


async def test_blocking_issue_blocks_until_resolved(gate, quality_store, speech_id):
    blocking = await _issue(gate, speech_id, "plagiarism", "medium", "Matches a famous speech")
    await _issue(gate, speech_id, "sensitive_topic", "high")

    first = await gate.validate_export(speech_id, USER)

    assert first.can_export is False
    assert [i["id"] for i in first.blocking_issues] == [str(blocking.id)]
    assert len(first.warnings) == 1
    assert first.block_reason == "Matches a famous speech"
    assert len(quality_store.active_blocks(speech_id, USER)) == 1

    await gate.resolve_issue(str(blocking.id), "resolved", note="Rewrote it", resolved_by=USER)
    second = await gate.validate_export(speech_id, USER)

    assert second.can_export is True
    assert quality_store.active_blocks(speech_id, USER) == []
    assert quality_store.blocks[0].resolved_at is not None
    assert quality_store.blocks[0].is_active is False


async def test_repeated_validation_keeps_one_active_block(gate, quality_store, speech_id):
    await _issue(gate, speech_id, "fact_check", "critical", "Unverified figure")

    first = await gate.validate_export(speech_id, USER)
    second = await gate.validate_export(speech_id, USER)

    assert first.export_block_id == second.export_block_id
    assert len(quality_store.blocks) == 1


async def test_cliches_never_block(gate, speech_id):
    await _issue(gate, speech_id, "cliche", "high")

    validation = await gate.validate_export(speech_id, USER)

    assert validation.can_export is True
    assert validation.blocking_issues == []
    assert validation.severity_counts["high"] == 1


async def test_severity_cap_blocks_without_blocking_rule(gate, quality_store, speech_id):
    await _issue(gate, speech_id, "cliche", "critical")
    await _issue(gate, speech_id, "cliche", "critical")

    validation = await gate.validate_export(speech_id, USER)

    assert validation.can_export is False
    assert validation.capped_severities == ["critical"]
    assert validation.block_reason == CAPPED_REASON
    assert len(quality_store.blocks[0].related_issue_ids) == 2


async def test_custom_caps(quality_store, speech_id):
    gate = QualityGate(quality_store, QualityGateConfig(max_unresolved_issues={"low": 1}))
    await _issue(gate, speech_id, "cliche", "low")

    assert (await gate.validate_export(speech_id, USER)).can_export is True

    await _issue(gate, speech_id, "cliche", "low")

    assert (await gate.validate_export(speech_id, USER)).can_export is False


async def test_unknown_issue_type_never_blocks(gate, quality_store, speech_id):
    await quality_store.create_issue(
        speech_id=speech_id, user_id=USER, issue_type="tone", severity="critical",
        title="Tone", description="Legacy issue type",
    )

    validation = await gate.validate_export(speech_id, USER)

    assert validation.can_export is True
    assert len(validation.warnings) == 1


async def test_issues_of_other_users_are_ignored(gate, speech_id):
    await gate.create_issue(
        speech_id=speech_id, user_id="someone-else", issue_type="plagiarism", severity="high",
        title="Plagiarism", description="Copied",
    )

    assert (await gate.validate_export(speech_id, USER)).can_export is True


async def test_create_issue_rejects_unknown_type_and_severity(gate, speech_id):
    with pytest.raises(ValidationError):
        await _issue(gate, speech_id, "tone", "high")
    with pytest.raises(ValidationError):
        await _issue(gate, speech_id, "cliche", "urgent")


async def test_resolve_rejects_invalid_resolution(gate, speech_id):
    issue = await _issue(gate, speech_id, "cliche", "low")

    with pytest.raises(ValidationError):
        await gate.resolve_issue(str(issue.id), "unresolved")


async def test_resolve_rejects_terminal_issue(gate, speech_id):
    issue = await _issue(gate, speech_id, "cliche", "low")
    await gate.resolve_issue(str(issue.id), "false_positive")

    with pytest.raises(ValidationError):
        await gate.resolve_issue(str(issue.id), "resolved")


async def test_resolve_records_note_and_timestamps(gate, speech_id):
    issue = await _issue(gate, speech_id, "risk_claim", "high")

    response = await gate.resolve_issue(str(issue.id), "acknowledged", note="Source added", resolved_by=USER)

    assert response["success"] is True
    assert response["issue"]["status"] == "acknowledged"
    assert response["issue"]["user_response"] == "Source added"
    assert response["issue"]["resolved_by"] == USER
    assert response["issue"]["resolved_at"] is not None


async def test_resolve_missing_issue_raises_lookup_error(gate):
    with pytest.raises(LookupError):
        await gate.resolve_issue(str(uuid.uuid4()), "resolved")


async def test_batch_resolve_reports_each_outcome(gate, speech_id):
    open_issue = await _issue(gate, speech_id, "plagiarism", "high")
    closed = await _issue(gate, speech_id, "cliche", "low")
    await gate.resolve_issue(str(closed.id), "false_positive")
    missing = str(uuid.uuid4())

    response = await gate.batch_resolve_issues(
        [str(open_issue.id), str(closed.id), missing], "resolved", resolved_by=USER
    )

    assert response["resolved"] == [str(open_issue.id)]
    assert response["skipped"] == [str(closed.id)]
    assert response["notFound"] == [missing]
    assert open_issue.status == "resolved"
    assert closed.status == "false_positive"


async def test_get_issues_filters_by_status(gate, speech_id):
    first = await _issue(gate, speech_id, "cliche", "low")
    await _issue(gate, speech_id, "cliche", "medium")
    await gate.resolve_issue(str(first.id), "resolved")

    assert len(await gate.get_issues(speech_id, USER)) == 2
    unresolved = await gate.get_issues(speech_id, USER, status="unresolved")
    assert [i["severity"] for i in unresolved] == ["medium"]


async def test_block_write_failure_propagates(gate, quality_store, speech_id):
    await _issue(gate, speech_id, "plagiarism", "high")
    quality_store.fail_block_writes = True

    with pytest.raises(PersistenceError):
        await gate.validate_export(speech_id, USER)
