"""Id endpoints — rent, commit, release, and inspect per counter key."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException

from idgen.application.use_cases.allocator_registry import AllocatorRegistry
from idgen.application.use_cases.buffered_allocator import BufferedIdAllocator
from idgen.config import Settings
from idgen.domain.errors import (
    IdGeneratorError,
    OverlapError,
    RangeError,
    StateError,
    StoreError,
)
from idgen.infrastructure.api.dependencies import get_registry, get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ids", tags=["ids"])

# Most specific first; all are IdGeneratorError subclasses.
_STATUS_BY_ERROR: list[tuple[type[IdGeneratorError], int]] = [
    (RangeError, 404),
    (StateError, 409),
    (StoreError, 503),
    (OverlapError, 500),
]


def _to_http(e: IdGeneratorError) -> HTTPException:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(e, error_type):
            if status >= 500:
                logger.error("Allocator failure: %s", e)
            return HTTPException(status_code=status, detail=str(e))
    logger.exception("Unexpected allocator error")
    return HTTPException(status_code=500, detail=str(e))


async def _allocator(key: str, registry: AllocatorRegistry) -> BufferedIdAllocator:
    try:
        return await registry.get(key)
    except IdGeneratorError as e:
        raise _to_http(e)


@router.post("/{key}/rent")
async def rent_id(
    key: str,
    registry: AllocatorRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings),
):
    """Rent the next free id for *key*."""
    allocator = await _allocator(key, registry)
    try:
        value = await asyncio.wait_for(allocator.rent(), timeout=settings.rent_timeout_seconds)
    except asyncio.TimeoutError:
        raise HTTPException(status_code=503, detail="Timed out waiting for a free id")
    except IdGeneratorError as e:
        raise _to_http(e)
    return {"key": key, "id": value}


@router.post("/{key}/commit/{value}")
async def commit_id(
    key: str,
    value: int,
    registry: AllocatorRegistry = Depends(get_registry),
):
    """Mark a rented id as used."""
    allocator = await _allocator(key, registry)
    try:
        await allocator.commit(value)
    except IdGeneratorError as e:
        raise _to_http(e)
    return {"status": "ok", "key": key, "id": value, "state": "committed"}


@router.post("/{key}/release/{value}")
async def release_id(
    key: str,
    value: int,
    registry: AllocatorRegistry = Depends(get_registry),
):
    """Return a rented id unused."""
    allocator = await _allocator(key, registry)
    try:
        await allocator.release(value)
    except IdGeneratorError as e:
        raise _to_http(e)
    return {"status": "ok", "key": key, "id": value, "state": "free"}


@router.get("/{key}")
async def get_allocator_stats(
    key: str,
    registry: AllocatorRegistry = Depends(get_registry),
):
    """Current block and slot counts for *key*. Never creates an allocator."""
    allocator = registry.peek(key)
    if allocator is None:
        raise HTTPException(status_code=404, detail=f"No allocator running for {key!r}")
    stats = await allocator.snapshot()
    return asdict(stats)
