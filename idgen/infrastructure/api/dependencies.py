"""FastAPI dependency injection — wires the counter store into use cases."""

from __future__ import annotations

from fastapi import Request

from idgen.application.use_cases.allocator_registry import AllocatorRegistry
from idgen.config import Settings


def get_registry(request: Request) -> AllocatorRegistry:
    return request.app.state.registry


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
