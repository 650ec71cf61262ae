"""Health check endpoint."""

from fastapi import APIRouter, Depends

from idgen.application.use_cases.allocator_registry import AllocatorRegistry
from idgen.domain.errors import StoreError
from idgen.infrastructure.api.dependencies import get_registry

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(registry: AllocatorRegistry = Depends(get_registry)):
    """Check API and counter store connectivity."""
    try:
        await registry.store.ping()
        store_status = "connected"
    except StoreError as e:
        store_status = f"error: {e}"

    return {
        "status": "ok" if store_status == "connected" else "degraded",
        "store": store_status,
        "allocators": registry.keys(),
    }
