"""
API endpoints for quality issues and export validation.

Provides endpoints for:
- Validating whether a speech may be exported
- Listing and creating quality issues
- Resolving issues one at a time or in batch
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from speechwriter_backend.dependencies import get_quality_gate
from speechwriter_backend.errors import PersistenceError, ValidationError
from speechwriter_backend.schemas import (
    BatchResolveRequest,
    CreateQualityIssueRequest,
    QualityIssuesResponse,
    ResolveQualityIssueRequest,
)
from speechwriter_backend.services.quality_gate import QualityGate
from speechwriter_backend.services.stores import serialize_issue

# Configure logger
logger = logging.getLogger(__name__)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

router = APIRouter(tags=["quality-gate"])


@router.get("/api/speeches/{speech_id}/export/validate")
async def validate_export(
    speech_id: str,
    user_id: str,
    gate: QualityGate = Depends(get_quality_gate),
):
    """Decide whether the speech may be exported and sync its export block."""
    logger.info(f"=== Validating export for speech {speech_id} (user {user_id}) ===")

    try:
        validation = await gate.validate_export(speech_id, user_id)
        return validation.to_dict()

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    except PersistenceError as e:
        logger.error(f"Export block maintenance failed: {str(e)}")
        raise HTTPException(status_code=503, detail=str(e))

    except Exception as e:
        logger.error(f"Export validation failed: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Export validation failed: {str(e)}")


@router.get("/api/speeches/{speech_id}/quality-issues", response_model=QualityIssuesResponse)
async def list_quality_issues(
    speech_id: str,
    user_id: str,
    status: Optional[str] = None,
    gate: QualityGate = Depends(get_quality_gate),
):
    try:
        issues = await gate.get_issues(speech_id, user_id, status=status)
        return QualityIssuesResponse(issues=issues, count=len(issues))

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    except Exception as e:
        logger.error(f"Failed to fetch quality issues: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch quality issues: {str(e)}")


@router.post("/api/quality-issues")
async def create_quality_issue(
    request: CreateQualityIssueRequest,
    gate: QualityGate = Depends(get_quality_gate),
):
    try:
        issue = await gate.create_issue(**request.model_dump())
        return serialize_issue(issue)

    except (ValidationError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))

    except Exception as e:
        logger.error(f"Failed to create quality issue: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to create quality issue: {str(e)}")


@router.post("/api/quality-issues/resolve-batch")
async def batch_resolve_quality_issues(
    request: BatchResolveRequest,
    gate: QualityGate = Depends(get_quality_gate),
):
    try:
        return await gate.batch_resolve_issues(
            request.issue_ids, request.resolution, request.note, request.resolved_by
        )

    except (ValidationError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))

    except Exception as e:
        logger.error(f"Batch resolve failed: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Batch resolve failed: {str(e)}")


@router.post("/api/quality-issues/{issue_id}/resolve")
async def resolve_quality_issue(
    issue_id: str,
    request: ResolveQualityIssueRequest,
    gate: QualityGate = Depends(get_quality_gate),
):
    """Mark an issue resolved; re-query export validation afterwards."""
    try:
        return await gate.resolve_issue(issue_id, request.resolution, request.note, request.resolved_by)

    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))

    except (ValidationError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))

    except Exception as e:
        logger.error(f"Failed to resolve quality issue: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to resolve quality issue: {str(e)}")
