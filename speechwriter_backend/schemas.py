"""Shared Pydantic request/response models used across multiple routers."""
from pydantic import BaseModel, Field
from typing import Dict, List, Any, Optional

from speechwriter_backend.config import DEFAULT_TIME_BUDGET_SECONDS


class HumanizeRequest(BaseModel):
    input_text: str
    run_pass_a: bool = True
    run_pass_b: bool = True
    run_critics: bool = True
    run_referee: bool = True
    time_budget_seconds: int = DEFAULT_TIME_BUDGET_SECONDS
    speech_context: Optional[str] = None
    persona: Optional[Dict[str, Any]] = None
    target_profile: Optional[Dict[str, Any]] = None

class TextAnalysisRequest(BaseModel):
    text: str
    speech_id: Optional[str] = None
    include_suggestions: bool = False
    use_claim_detector: bool = True
    use_contextual_detector: bool = True
    target_profile: Optional[Dict[str, Any]] = None

class ScanRequest(BaseModel):
    text: str
    speech_id: Optional[str] = None
    user_id: Optional[str] = None
    include_suggestions: bool = False
    record_analysis: bool = False
    record_issues: bool = False
    target_profile: Optional[Dict[str, Any]] = None

class CreateQualityIssueRequest(BaseModel):
    speech_id: str
    user_id: str
    issue_type: str
    severity: str
    title: str
    description: str
    flagged_text: Optional[str] = None
    start_position: Optional[int] = None
    end_position: Optional[int] = None
    suggestions: List[Any] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

class ResolveQualityIssueRequest(BaseModel):
    resolution: str  # "resolved", "acknowledged", "false_positive"
    note: Optional[str] = None
    resolved_by: Optional[str] = None

class BatchResolveRequest(BaseModel):
    issue_ids: List[str]
    resolution: str
    note: Optional[str] = None
    resolved_by: Optional[str] = None

class QualityIssuesResponse(BaseModel):
    issues: List[Dict[str, Any]]
    count: int
