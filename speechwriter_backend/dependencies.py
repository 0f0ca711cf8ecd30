"""FastAPI dependency providers for the generation adapter, stores and quality gate."""

import logging
from functools import lru_cache

from fastapi import Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from speechwriter_backend.db_session import get_async_session
from speechwriter_backend.services.generation_adapter import GenerationAdapter, build_generation_adapter
from speechwriter_backend.services.quality_gate import QualityGate
from speechwriter_backend.services.stores import HumanizationStore, QualityIssueStore

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _cached_generation_adapter() -> GenerationAdapter:
    return build_generation_adapter()


def get_generation_adapter() -> GenerationAdapter:
    try:
        return _cached_generation_adapter()
    except ValueError as e:
        logger.error("[GENERATION] Generation capability not configured: %s", e)
        raise HTTPException(status_code=503, detail=f"Generation capability not configured: {e}")


def get_humanization_store(db: AsyncSession = Depends(get_async_session)) -> HumanizationStore:
    return HumanizationStore(db)


def get_quality_gate(db: AsyncSession = Depends(get_async_session)) -> QualityGate:
    return QualityGate(QualityIssueStore(db))


def get_optional_generation_adapter():
    """Adapter when configured, otherwise ``None`` so deterministic analyzers still run."""
    try:
        return _cached_generation_adapter()
    except ValueError as e:
        logger.warning("[GENERATION] Running without generation capability: %s", e)
        return None
