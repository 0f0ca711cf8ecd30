"""
Multi-stage humanization pipeline.

Rhetoric pass -> Persona pass -> (Critic 1 || Critic 2) -> Referee. Every step
is tracked in a serializable trace. The first failing step halts the run and
the text of the last successful step is returned as a partial success.
"""

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from speechwriter_backend.config import DEFAULT_TIME_BUDGET_SECONDS
from speechwriter_backend.errors import GenerationError, PersistenceError, StageFailure, ValidationError
from speechwriter_backend.services.cliche_analyzer import analyze_cliches
from speechwriter_backend.services.edit_merger import (
    PRIORITY_SCORES,
    REFEREE_EDIT_SCORE,
    Edit,
    merge_edits,
)
from speechwriter_backend.services.stage_outputs import (
    CriticOutput,
    PersonaPassOutput,
    RefereeOutput,
    RhetoricPassOutput,
)
from speechwriter_backend.services.text_metrics import StyleProfile, stylometry

logger = logging.getLogger(__name__)


class StepName(str, Enum):
    RHETORIC = "rhetoric"
    PERSONA = "persona"
    CRITIC_A = "critic1"
    CRITIC_B = "critic2"
    REFEREE = "referee"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PipelineStep:
    name: StepName
    status: StepStatus = StepStatus.PENDING
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    error: Optional[str] = None
    pass_id: Optional[str] = None

    def start(self) -> None:
        self.status = StepStatus.RUNNING
        self.started_at = _now()

    def complete(self) -> None:
        self.status = StepStatus.COMPLETED
        self.finished_at = _now()

    def fail(self, error: str) -> None:
        self.status = StepStatus.FAILED
        self.finished_at = _now()
        self.error = error

    def skip(self) -> None:
        self.status = StepStatus.SKIPPED

    def to_dict(self) -> dict:
        return {
            "step": self.name.value,
            "status": self.status.value,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "error": self.error,
            "passId": self.pass_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PipelineStep":
        return cls(
            name=StepName(data["step"]),
            status=StepStatus(data["status"]),
            started_at=data.get("startedAt"),
            finished_at=data.get("finishedAt"),
            error=data.get("error"),
            pass_id=data.get("passId"),
        )


class PipelineRequest(BaseModel):
    speech_id: str
    input_text: str
    run_pass_a: bool = True
    run_pass_b: bool = True
    run_critics: bool = True
    run_referee: bool = True
    time_budget_seconds: int = DEFAULT_TIME_BUDGET_SECONDS
    speech_context: Optional[str] = None
    persona: Optional[Dict[str, Any]] = None
    target_profile: Optional[Dict[str, Any]] = None


@dataclass
class PipelineResult:
    success: bool
    partial_success: bool
    final_text: str
    pipeline_trace: List[PipelineStep]
    per_stage_results: Dict[str, Any] = field(default_factory=dict)
    metrics: Dict[str, Any] = field(default_factory=dict)
    errors: List[dict] = field(default_factory=list)
    recommendation: str = ""

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "partialSuccess": self.partial_success,
            "finalText": self.final_text,
            "pipelineTrace": [s.to_dict() for s in self.pipeline_trace],
            "perStageResults": self.per_stage_results,
            "metrics": self.metrics,
            "errors": self.errors,
            "recommendation": self.recommendation,
        }


def validate_request(request: PipelineRequest) -> None:
    """Reject malformed input before any stage runs."""
    try:
        uuid.UUID(str(request.speech_id))
    except ValueError:
        raise ValidationError(f"Invalid speech id: {request.speech_id}")
    if not request.input_text or not request.input_text.strip():
        raise ValidationError("Input text must not be empty")
    if request.time_budget_seconds <= 0:
        raise ValidationError("Time budget must be a positive number of seconds")
    if request.target_profile is not None:
        try:
            profile = StyleProfile.from_dict(request.target_profile)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid target profile: {request.target_profile}")
        if profile.avg_sentence_length <= 0:
            raise ValidationError("Target average sentence length must be positive")


def critic_edits(critic_type: str, output: CriticOutput) -> List[Edit]:
    """Critic suggestions with a usable span become scored edits."""
    edits = []
    for suggestion in output.suggestions:
        if suggestion.start_char is None or suggestion.end_char is None or suggestion.suggestion is None:
            continue
        edits.append(Edit(
            start=suggestion.start_char,
            end=suggestion.end_char,
            replacement=suggestion.suggestion,
            score=PRIORITY_SCORES.get(suggestion.priority, PRIORITY_SCORES["low"]),
            source=critic_type,
            original=suggestion.original,
        ))
    return edits


def referee_edits(output: RefereeOutput) -> List[Edit]:
    return [
        Edit(
            start=e.start_char,
            end=e.end_char,
            replacement=e.replacement,
            score=REFEREE_EDIT_SCORE,
            source="referee",
            original=e.original,
        )
        for e in output.edits_applied
        if e.start_char is not None and e.end_char is not None
    ]


def format_persona(persona: Optional[Dict[str, Any]]) -> str:
    if not persona:
        return "No specific persona"
    lines = []
    for key, value in persona.items():
        if isinstance(value, dict):
            value = ", ".join(f"{k}: {v}" for k, v in value.items())
        lines.append(f"{key}: {value}")
    return "\n".join(lines)


def summarize_critic(output: CriticOutput) -> str:
    scores = output.scores
    suggestions = [s.model_dump(by_alias=True) for s in output.suggestions]
    return (
        f"Overall Score: {scores.overall_or_mean():.1f}/10\n"
        f"Scores: Specificity: {scores.specificity}, Freshness: {scores.freshness}, "
        f"Performability: {scores.performability}, Persona-Fit: {scores.persona_fit}\n"
        f"Feedback: {output.feedback}\n"
        f"Suggestions: {json.dumps(suggestions, indent=2)}"
    )


def generate_recommendation(trace: List[PipelineStep], overall_improvement: Optional[float]) -> str:
    completed = {s.name for s in trace if s.status == StepStatus.COMPLETED}

    if not completed:
        return "No improvements were applied. Please check your input and try again."
    if completed == {StepName.RHETORIC}:
        return ("Rhetoric and specificity improvements applied. "
                "Consider running persona harmonization for better style alignment.")
    if completed == {StepName.RHETORIC, StepName.PERSONA}:
        return ("Content enhanced with rhetoric and persona alignment. "
                "Consider running the full critic review for maximum quality.")
    if len(completed) >= 3:
        quality = overall_improvement or 1.0
        if quality > 1.2:
            return "Excellent! Your speech has been significantly improved across all dimensions."
        if quality > 1.1:
            return "Good improvements made. Your speech is more engaging and better aligned with your persona."
        return "Some improvements applied. Consider revising your persona or providing more specific feedback."
    return "Humanization process completed with mixed results."


class PassOrchestrator:
    def __init__(self, generation_adapter, store):
        self.generation_adapter = generation_adapter
        self.store = store

    async def run(self, request: PipelineRequest) -> PipelineResult:
        validate_request(request)
        started = time.perf_counter()

        steps = {name: PipelineStep(name=name) for name in StepName}
        enabled = {
            StepName.RHETORIC: request.run_pass_a,
            StepName.PERSONA: request.run_pass_b,
            StepName.CRITIC_A: request.run_critics,
            StepName.CRITIC_B: request.run_critics,
            StepName.REFEREE: request.run_critics and request.run_referee,
        }
        for name, is_enabled in enabled.items():
            if not is_enabled:
                steps[name].skip()

        run = _PipelineRun(self, request, steps)
        logger.info("[PIPELINE] Starting humanization for speech %s (%s chars)",
                    request.speech_id, len(request.input_text))
        try:
            await run.execute()
        except StageFailure as failure:
            logger.error("[PIPELINE] %s; halting with text from last successful step", failure)
            run.errors.append({"stage": failure.stage, "error": str(failure.cause)})

        trace = list(steps.values())
        halted = bool(run.errors)
        improvement = run.per_stage.get("referee", {}).get("qualityMetrics", {}).get("overallImprovement")

        metrics = {
            "totalProcessingTimeMs": int((time.perf_counter() - started) * 1000),
            "stepsCompleted": sum(1 for s in trace if s.status == StepStatus.COMPLETED),
            "totalSteps": sum(1 for s in trace if s.status != StepStatus.SKIPPED),
            "textLengthChange": len(run.current_text) - len(request.input_text),
            "stageMetrics": {name: data.get("metrics") for name, data in run.per_stage.items()},
        }
        logger.info("[PIPELINE] Finished speech %s: %s/%s steps completed",
                    request.speech_id, metrics["stepsCompleted"], metrics["totalSteps"])

        return PipelineResult(
            success=not halted,
            partial_success=halted,
            final_text=run.current_text,
            pipeline_trace=trace,
            per_stage_results=run.per_stage,
            metrics=metrics,
            errors=run.errors,
            recommendation=generate_recommendation(trace, improvement),
        )


class _PipelineRun:
    """Mutable state of a single pipeline invocation."""

    def __init__(self, orchestrator: PassOrchestrator, request: PipelineRequest,
                 steps: Dict[StepName, PipelineStep]):
        self.adapter = orchestrator.generation_adapter
        self.store = orchestrator.store
        self.request = request
        self.steps = steps
        self.current_text = request.input_text
        self.per_stage: Dict[str, Any] = {}
        self.errors: List[dict] = []
        self.next_order: Optional[int] = None
        self.profile = StyleProfile.from_dict(request.target_profile)
        self.context = request.speech_context or "Not provided"
        self.persona = format_persona(request.persona)

    def _active(self, name: StepName) -> bool:
        return self.steps[name].status != StepStatus.SKIPPED

    async def _save_pass(self, step: PipelineStep, input_text: str, output_text: str,
                         changes: list, metrics: dict, latency_ms: int, model: Optional[str]):
        if self.next_order is None:
            self.next_order = await self.store.next_pass_order(self.request.speech_id)
        record = await self.store.create_pass(
            speech_id=self.request.speech_id,
            pass_type=step.name.value,
            input_text=input_text,
            output_text=output_text,
            pass_order=self.next_order,
            changes=changes,
            metrics=metrics,
            processing_time_ms=latency_ms,
            model_used=model,
        )
        self.next_order += 1
        step.pass_id = str(record.id)
        return record

    async def _guard(self, step: PipelineStep, coro):
        try:
            return await coro
        except (GenerationError, PersistenceError) as exc:
            failure = StageFailure(step.name.value, exc)
            step.fail(str(exc))
            raise failure from exc

    async def execute(self) -> None:
        if self._active(StepName.RHETORIC):
            await self._guard(self.steps[StepName.RHETORIC], self._rhetoric())
        if self._active(StepName.PERSONA):
            await self._guard(self.steps[StepName.PERSONA], self._persona())
        if self._active(StepName.CRITIC_A):
            await self._critics_and_referee()

    async def _rhetoric(self) -> None:
        step = self.steps[StepName.RHETORIC]
        step.start()
        before = analyze_cliches(self.current_text)
        output, result = await self.adapter.generate_structured(
            "rhetoric_pass",
            {
                "speech_context": self.context,
                "input_text": self.current_text,
                "cliche_density": f"{before.density:.2f}",
                "cliche_summary": ", ".join(m.phrase for m in before.matches) or "none",
            },
            RhetoricPassOutput,
        )
        after = analyze_cliches(output.enhanced_text)
        metrics = {
            "clicheDensityBefore": before.density,
            "clicheDensityAfter": after.density,
            "clicheImprovement": before.density - after.density,
            "rhetoricalDevicesAdded": len(output.rhetorical_devices),
            "specificityUpgrades": len(output.specificity_upgrades),
            "quotableLines": len(output.quotable_lines),
            "changesCount": len(output.changes),
        }
        await self._save_pass(step, self.current_text, output.enhanced_text, output.changes,
                              metrics, result.latency_ms, result.model)
        self.current_text = output.enhanced_text
        self.per_stage["rhetoric"] = {
            "passId": step.pass_id,
            "enhancedText": output.enhanced_text,
            "changes": output.changes,
            "quotableLines": output.quotable_lines,
            "metrics": metrics,
        }
        step.complete()

    async def _persona(self) -> None:
        step = self.steps[StepName.PERSONA]
        step.start()
        before = stylometry(self.current_text, self.profile)
        output, result = await self.adapter.generate_structured(
            "persona_pass",
            {
                "speech_context": self.context,
                "persona": self.persona,
                "input_text": self.current_text,
                "avg_sentence_length": f"{before.avg_sentence_length:.1f}",
                "target_sentence_length": f"{self.profile.avg_sentence_length:.1f}",
                "punctuation_density": f"{before.punctuation_density:.3f}",
            },
            PersonaPassOutput,
        )
        after = stylometry(output.harmonized_text, self.profile)
        metrics = {
            "stylometryBefore": before.to_dict(),
            "stylometryAfter": after.to_dict(),
            "improvement": before.distance - after.distance,
            "changesCount": len(output.changes),
        }
        await self._save_pass(step, self.current_text, output.harmonized_text, output.changes,
                              metrics, result.latency_ms, result.model)
        self.current_text = output.harmonized_text
        self.per_stage["persona"] = {
            "passId": step.pass_id,
            "harmonizedText": output.harmonized_text,
            "changes": output.changes,
            "personaAlignment": output.persona_alignment,
            "metrics": metrics,
        }
        step.complete()

    async def _critique(self, name: StepName):
        self.steps[name].start()
        return await self.adapter.generate_structured(
            name.value,
            {"speech_context": self.context, "persona": self.persona, "input_text": self.current_text},
            CriticOutput,
        )

    async def _critics_and_referee(self) -> None:
        critic_names = [StepName.CRITIC_A, StepName.CRITIC_B]
        outcomes = await asyncio.gather(
            *(self._critique(name) for name in critic_names), return_exceptions=True
        )

        # One session per run, so the critic records are written one at a time
        first_failure = None
        feedback = {}
        critic_outputs = {}
        for name, outcome in zip(critic_names, outcomes):
            if isinstance(outcome, Exception):
                if not isinstance(outcome, GenerationError):
                    raise outcome
                self.steps[name].fail(str(outcome))
                first_failure = first_failure or StageFailure(name.value, outcome)
                continue
            output, result = outcome
            try:
                feedback[name] = await self._guard(self.steps[name], self._save_critic(name, output, result))
            except StageFailure as failure:
                first_failure = first_failure or failure
                continue
            critic_outputs[name] = output
            self.steps[name].complete()
        if first_failure:
            raise first_failure

        candidate_edits = []
        for name in critic_names:
            candidate_edits.extend(critic_edits(name.value, critic_outputs[name]))

        referee_output = None
        if self._active(StepName.REFEREE):
            referee_output = await self._guard(
                self.steps[StepName.REFEREE],
                self._referee(critic_outputs, candidate_edits, feedback),
            )

        if referee_output is None or not referee_output.final_text:
            edits = candidate_edits + (referee_edits(referee_output) if referee_output else [])
            if edits:
                merged = merge_edits(self.current_text, edits)
                self.current_text = merged.merged_text
                self.per_stage["merge"] = merged.to_dict()

    async def _save_critic(self, name: StepName, output: CriticOutput, result):
        step = self.steps[name]
        scores = output.scores
        metrics = {
            "specificity": scores.specificity,
            "freshness": scores.freshness,
            "performability": scores.performability,
            "personaFit": scores.persona_fit,
            "overall": scores.overall_or_mean(),
        }
        record = await self._save_pass(step, self.current_text, self.current_text, [],
                                       metrics, result.latency_ms, result.model)
        suggestions = [s.model_dump(by_alias=True) for s in output.suggestions]
        critic_record = await self.store.create_critic_feedback(
            humanization_pass_id=record.id,
            critic_type=name.value,
            scores={
                "specificity": scores.specificity,
                "freshness": scores.freshness,
                "performability": scores.performability,
                "persona_fit": scores.persona_fit,
                "overall": scores.overall_or_mean(),
            },
            suggestions=suggestions,
            feedback=output.feedback,
        )
        self.per_stage[name.value] = {
            "passId": step.pass_id,
            "feedbackId": str(critic_record.id),
            "scores": metrics,
            "feedback": output.feedback,
            "suggestions": suggestions,
            "strengths": output.strengths,
            "weaknesses": output.weaknesses,
            "metrics": metrics,
        }
        return critic_record

    async def _referee(self, critic_outputs, candidate_edits, feedback) -> RefereeOutput:
        step = self.steps[StepName.REFEREE]
        step.start()
        output, result = await self.adapter.generate_structured(
            "referee",
            {
                "speech_context": self.context,
                "time_budget_seconds": self.request.time_budget_seconds,
                "critic1_summary": summarize_critic(critic_outputs[StepName.CRITIC_A]),
                "critic2_summary": summarize_critic(critic_outputs[StepName.CRITIC_B]),
                "input_text": self.current_text,
            },
            RefereeOutput,
        )
        output_text = output.final_text or self.current_text
        metrics = {
            "editsConsidered": len(candidate_edits),
            "editsApplied": len(output.edits_applied),
            "editsRejected": len(output.edits_rejected),
            "conflictsResolved": len(output.conflict_resolutions),
            "timeBudgetSeconds": self.request.time_budget_seconds,
            "timeUsed": output.time_used,
        }
        applied = [e.model_dump(by_alias=True) for e in output.edits_applied]
        await self._save_pass(step, self.current_text, output_text, applied,
                              metrics, result.latency_ms, result.model)

        for name, record in feedback.items():
            accepted = [e for e in applied if e.get("source") == name.value]
            if accepted:
                await self.store.set_accepted_edits(record, accepted)

        if output.final_text:
            self.current_text = output.final_text
        self.per_stage["referee"] = {
            "passId": step.pass_id,
            "finalText": output_text,
            "editsApplied": applied,
            "editsRejected": output.edits_rejected,
            "conflictResolutions": output.conflict_resolutions,
            "synthesizedImprovements": output.synthesized_improvements,
            "qualityMetrics": output.quality_metrics,
            "metrics": metrics,
        }
        step.complete()
        return output
