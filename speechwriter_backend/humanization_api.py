"""
API endpoints for the humanization pipeline.

Provides endpoints for:
- Running the rhetoric / persona / critics / referee pipeline on a speech
- Health check
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from speechwriter_backend.dependencies import get_generation_adapter, get_humanization_store
from speechwriter_backend.errors import PersistenceError, ValidationError
from speechwriter_backend.schemas import HumanizeRequest
from speechwriter_backend.services.generation_adapter import GenerationAdapter
from speechwriter_backend.services.pass_orchestrator import PassOrchestrator, PipelineRequest
from speechwriter_backend.services.stores import HumanizationStore

# Configure logger
logger = logging.getLogger(__name__)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

router = APIRouter(tags=["humanization"])


@router.get("/api/humanization/health", tags=["health"])
async def health_check():
    """Health check endpoint for the humanization API."""
    return {
        "status": "healthy",
        "service": "humanization_api",
        "timestamp": datetime.now().isoformat(),
    }


@router.post("/api/speeches/{speech_id}/humanize")
async def humanize_speech(
    speech_id: str,
    request: HumanizeRequest,
    adapter: GenerationAdapter = Depends(get_generation_adapter),
    store: HumanizationStore = Depends(get_humanization_store),
):
    """
    Run the humanization pipeline on a speech.

    Returns 200 when every enabled stage completed and 206 when the run
    halted partway; the body always carries the trace and best-effort text.
    """
    logger.info(f"=== Humanizing speech {speech_id} ===")

    try:
        pipeline_request = PipelineRequest(speech_id=speech_id, **request.model_dump())
        result = await PassOrchestrator(adapter, store).run(pipeline_request)

        if result.partial_success:
            logger.warning(f"[PIPELINE] Partial success for speech {speech_id}: {result.errors}")
            return JSONResponse(status_code=206, content=result.to_dict())

        logger.info(f"✅ Humanization completed for speech {speech_id}")
        return result.to_dict()

    except ValidationError as e:
        logger.error(f"Invalid humanization request: {str(e)}")
        raise HTTPException(status_code=400, detail=str(e))

    except PersistenceError as e:
        logger.error(f"Persistence unavailable: {str(e)}")
        raise HTTPException(status_code=503, detail=str(e))

    except HTTPException:
        raise

    except Exception as e:
        logger.error(f"Humanization failed: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Humanization failed: {str(e)}")
