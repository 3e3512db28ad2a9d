"""Analysis router — fetch, sample and memoize audio assets."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Union

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from backend.services.audio.cache import AnalysisCache
from backend.services.audio.fetcher import AssetFetcher
from backend.services.audio.sampler import AudioSampler
from backend.services.audio.types import AudioPipelineError

logger = logging.getLogger("audio_analysis.routers.analysis")
router = APIRouter()


# ── Pydantic models ───────────────────────────────────────────────────────────


class AnalyzeResponse(BaseModel):
    success: bool = True
    cached: bool
    data: Dict[str, Any]


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class CacheStatus(BaseModel):
    cached_songs: int
    asset_ids: List[str]


# ── Dependencies (overridable in tests) ───────────────────────────────────────


def get_cache(request: Request) -> AnalysisCache:
    return request.app.state.cache


def get_fetcher(request: Request) -> AssetFetcher:
    return request.app.state.fetcher


def get_sampler(request: Request) -> AudioSampler:
    return request.app.state.sampler


def _error_response(exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(error=str(exc)).model_dump(),
    )


# ── Endpoints ─────────────────────────────────────────────────────────────────


@router.get(
    "/analyze/{asset_id}",
    response_model=AnalyzeResponse,
    responses={500: {"model": ErrorResponse}},
)
async def analyze_asset(
    asset_id: str,
    cache: AnalysisCache = Depends(get_cache),
    fetcher: AssetFetcher = Depends(get_fetcher),
    sampler: AudioSampler = Depends(get_sampler),
) -> Union[AnalyzeResponse, JSONResponse]:
    """Return the loudness time series for ``asset_id``.

    Served from the cache when present; otherwise the asset is downloaded,
    sampled, cached and its scratch file removed. Identical concurrent
    requests for an uncached id each run the full pipeline.
    """
    logger.info("Analyzing asset ID: %s", asset_id)

    hit = cache.get(asset_id)
    if hit is not None:
        logger.info("Cache hit for %s", asset_id)
        return AnalyzeResponse(cached=True, data=hit.to_dict())

    try:
        async with fetcher.fetched(asset_id) as audio_path:
            logger.info("Processing audio file %s", audio_path)
            result = await sampler.analyze(str(audio_path), asset_id=asset_id)
    except AudioPipelineError as exc:
        logger.error("Analysis of %s failed: %s", asset_id, exc)
        return _error_response(exc)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected error analyzing %s: %s", asset_id, exc)
        return _error_response(exc)

    cache.put(asset_id, result)
    logger.info("Stored data for %s (%d samples)", asset_id, result.samples)
    return AnalyzeResponse(cached=False, data=result.to_dict())


@router.get("/cache", response_model=CacheStatus)
async def cache_status(cache: AnalysisCache = Depends(get_cache)) -> CacheStatus:
    """List the asset ids currently memoized."""
    return CacheStatus(cached_songs=len(cache), asset_ids=cache.asset_ids())
