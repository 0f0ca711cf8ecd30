"""
Typed shapes of the structured results returned by each generation call.

Every model is validated at the boundary; a missing required field raises
pydantic's ValidationError, which the adapter turns into GenerationError.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class StageModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RhetoricPassOutput(StageModel):
    enhanced_text: str = Field(alias="enhancedText", min_length=1)
    changes: List[Dict[str, Any]] = Field(default_factory=list)
    rhetorical_devices: List[Any] = Field(default_factory=list, alias="rhetoricalDevices")
    cliche_reductions: List[Any] = Field(default_factory=list, alias="clicheReductions")
    quotable_lines: List[Any] = Field(default_factory=list, alias="quotableLines")
    specificity_upgrades: List[Any] = Field(default_factory=list, alias="specificityUpgrades")


class PersonaPassOutput(StageModel):
    harmonized_text: str = Field(alias="harmonizedText", min_length=1)
    changes: List[Dict[str, Any]] = Field(default_factory=list)
    stylometry_adjustments: Dict[str, Any] = Field(default_factory=dict, alias="stylometryAdjustments")
    persona_alignment: Dict[str, Any] = Field(default_factory=dict, alias="personaAlignment")


class CriticScores(StageModel):
    specificity: float = 0.0
    freshness: float = 0.0
    performability: float = 0.0
    persona_fit: float = Field(default=0.0, alias="personaFit")
    overall: Optional[float] = None

    @field_validator("specificity", "freshness", "performability", "persona_fit", "overall")
    @classmethod
    def clamp_score(cls, value):
        if value is None:
            return value
        return _clamp(float(value), 0.0, 10.0)

    def overall_or_mean(self) -> float:
        if self.overall is not None:
            return self.overall
        return (self.specificity + self.freshness + self.performability + self.persona_fit) / 4


class CriticSuggestion(StageModel):
    type: Optional[str] = None
    issue: Optional[str] = None
    original: Optional[str] = None
    suggestion: Optional[str] = None
    impact: Optional[str] = None
    priority: str = "medium"
    start_char: Optional[int] = Field(default=None, alias="startChar")
    end_char: Optional[int] = Field(default=None, alias="endChar")

    @field_validator("priority", mode="before")
    @classmethod
    def normalize_priority(cls, value):
        return str(value or "medium").strip().lower()


class CriticOutput(StageModel):
    scores: CriticScores
    feedback: str = ""
    suggestions: List[CriticSuggestion] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    overall_recommendation: str = Field(default="", alias="overallRecommendation")


class RefereeEdit(StageModel):
    source: str = "referee"
    original: Optional[str] = None
    replacement: str = ""
    rationale: Optional[str] = None
    start_char: Optional[int] = Field(default=None, alias="startChar")
    end_char: Optional[int] = Field(default=None, alias="endChar")


class RefereeOutput(StageModel):
    final_text: Optional[str] = Field(default=None, alias="finalText")
    edits_applied: List[RefereeEdit] = Field(default_factory=list, alias="editsApplied")
    edits_rejected: List[Dict[str, Any]] = Field(default_factory=list, alias="editsRejected")
    conflict_resolutions: List[Dict[str, Any]] = Field(default_factory=list, alias="conflictResolutions")
    synthesized_improvements: List[Dict[str, Any]] = Field(default_factory=list, alias="synthesizedImprovements")
    time_used: Optional[float] = Field(default=None, alias="timeUsed")
    quality_metrics: Dict[str, Any] = Field(default_factory=dict, alias="qualityMetrics")


class ClicheRewriteOutput(StageModel):
    alternatives: List[str] = Field(min_length=1)
    reasoning: str = ""


class ContextualCliche(StageModel):
    phrase: str = Field(min_length=1)
    category: str = "general"
    start: Optional[int] = None
    end: Optional[int] = None

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, value):
        return str(value or "general").strip().lower()


class ContextualClicheOutput(StageModel):
    cliches: List[ContextualCliche] = Field(default_factory=list)


class PlagiarismMatch(StageModel):
    text: str = ""
    source: Optional[str] = None
    similarity: float = 0.0
    start_char: Optional[int] = Field(default=None, alias="startChar")
    end_char: Optional[int] = Field(default=None, alias="endChar")

    @field_validator("similarity")
    @classmethod
    def clamp_similarity(cls, value):
        return _clamp(float(value), 0.0, 1.0)


class PlagiarismOutput(StageModel):
    max_similarity: float = Field(default=0.0, alias="maxSimilarity")
    matches: List[PlagiarismMatch] = Field(default_factory=list)

    @field_validator("max_similarity")
    @classmethod
    def clamp_similarity(cls, value):
        return _clamp(float(value), 0.0, 1.0)


class DetectedClaim(StageModel):
    text: str
    start: Optional[int] = None
    end: Optional[int] = None
    risk_type: str = Field(default="unsubstantiated", alias="riskType")
    explanation: str = ""
    suggested_revision: Optional[str] = Field(default=None, alias="suggestedRevision")

    @field_validator("risk_type", mode="before")
    @classmethod
    def normalize_risk_type(cls, value):
        return str(value or "unsubstantiated").strip().lower()


class ClaimDetectionOutput(StageModel):
    claims: List[DetectedClaim] = Field(default_factory=list)
