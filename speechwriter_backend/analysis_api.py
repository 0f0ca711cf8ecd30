"""
API endpoints for speech text analysis.

Provides endpoints for:
- Cliché detection with density, score and optional rewrite suggestions
- Risk assessment (claims and sensitive topics)
- Stylometry against a target profile
- Aggregate content scan
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from speechwriter_backend.dependencies import (
    get_humanization_store,
    get_optional_generation_adapter,
    get_quality_gate,
)
from speechwriter_backend.errors import PersistenceError, ValidationError
from speechwriter_backend.schemas import ScanRequest, TextAnalysisRequest
from speechwriter_backend.services.cliche_analyzer import (
    analyze_cliches,
    analyze_cliches_with_context,
    generate_rewrite_suggestions,
)
from speechwriter_backend.services.content_scan import ContentScanner
from speechwriter_backend.services.generation_adapter import GenerationAdapter
from speechwriter_backend.services.quality_gate import QualityGate
from speechwriter_backend.services.risk_classifier import RiskClassifier
from speechwriter_backend.services.stores import HumanizationStore
from speechwriter_backend.services.text_metrics import StyleProfile, stylometry

# Configure logger
logger = logging.getLogger(__name__)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

router = APIRouter(prefix="/api/analysis", tags=["analysis"])


def _require_text(text: str) -> None:
    if not text or not text.strip():
        raise HTTPException(status_code=400, detail="Text must not be empty")


@router.post("/cliches")
async def detect_cliches(
    request: TextAnalysisRequest,
    adapter: Optional[GenerationAdapter] = Depends(get_optional_generation_adapter),
):
    """Cliché matches, density, score and (optionally) rewrite suggestions."""
    _require_text(request.text)
    logger.info(f"[CLICHE] Analyzing {len(request.text)} chars")

    try:
        if adapter is not None and request.use_contextual_detector:
            report = await analyze_cliches_with_context(request.text, adapter)
        else:
            report = analyze_cliches(request.text)
        if request.include_suggestions and adapter is not None and report.matches:
            report.suggestions = await generate_rewrite_suggestions(report.matches, adapter)
        return report.to_dict()

    except Exception as e:
        logger.error(f"Cliché analysis failed: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Cliché analysis failed: {str(e)}")


@router.post("/risk")
async def assess_risk(
    request: TextAnalysisRequest,
    adapter: Optional[GenerationAdapter] = Depends(get_optional_generation_adapter),
):
    """Risk level, flagged claims and sensitive topics."""
    _require_text(request.text)

    try:
        classifier = RiskClassifier(adapter if request.use_claim_detector else None)
        report = await classifier.assess(request.text)
        return report.to_dict()

    except Exception as e:
        logger.error(f"Risk assessment failed: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Risk assessment failed: {str(e)}")


@router.post("/stylometry")
async def analyze_stylometry(request: TextAnalysisRequest):
    """Sentence statistics and distance to the target profile."""
    _require_text(request.text)

    try:
        report = stylometry(request.text, StyleProfile.from_dict(request.target_profile))
        return report.to_dict()

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/scan")
async def scan_content(
    request: ScanRequest,
    adapter: Optional[GenerationAdapter] = Depends(get_optional_generation_adapter),
    store: HumanizationStore = Depends(get_humanization_store),
    gate: QualityGate = Depends(get_quality_gate),
):
    """Run every analyzer concurrently and combine them into a graded report."""
    _require_text(request.text)
    logger.info(f"=== Content scan for speech {request.speech_id or '(none)'} ===")

    try:
        scanner = ContentScanner(adapter, humanization_store=store, quality_gate=gate)
        report = await scanner.scan(
            request.text,
            speech_id=request.speech_id,
            user_id=request.user_id,
            target=StyleProfile.from_dict(request.target_profile),
            include_suggestions=request.include_suggestions,
            record_analysis=request.record_analysis,
            record_issues=request.record_issues,
        )
        return report.to_dict()

    except (ValidationError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    except PersistenceError as e:
        logger.error(f"Recording scan issues failed: {str(e)}")
        raise HTTPException(status_code=503, detail=str(e))

    except Exception as e:
        logger.error(f"Content scan failed: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Content scan failed: {str(e)}")
