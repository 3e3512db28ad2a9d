"""System router — service info / health."""
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def health_check() -> Dict[str, Any]:
    """Health check endpoint listing the public routes."""
    return {
        "status": "online",
        "message": "Roblox Audio Analysis API",
        "endpoints": {
            "analyze": "/api/analyze/:assetId",
            "cache": "/api/cache",
            "health": "/",
        },
    }
