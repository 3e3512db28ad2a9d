"""Roblox Audio Analysis API — FastAPI application entry point.

All routers are mounted here. No dead-code routers allowed — if a router
module exists, it must be mounted in this file.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.routers import analysis, system
from backend.services.audio.cache import AnalysisCache
from backend.services.audio.fetcher import AssetFetcher
from backend.services.audio.sampler import AudioSampler
from backend.services.shared.config import Config, get_config
from backend.services.shared.logging import setup_logging_from_config

logger = logging.getLogger("audio_analysis.main")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("Audio analysis API ready")
    yield
    logger.info("Shutting down, cleaning up scratch files")
    removed = app.state.fetcher.sweep()
    logger.info("Removed %d scratch file(s)", removed)


def build_fetcher(config: Config) -> AssetFetcher:
    timeout = config.get("remote.timeout")
    return AssetFetcher(
        scratch_dir=str(config.get_path("paths.scratch_dir")),
        url_template=config.get("remote.url_template"),
        suffix=config.get("paths.scratch_suffix", ".mp3"),
        timeout=float(timeout) if timeout is not None else None,
        chunk_size=int(config.get("remote.chunk_size", 8192)),
    )


def build_sampler(config: Config) -> AudioSampler:
    return AudioSampler(
        interval=float(config.get("sampler.interval", 0.1)),
        batch_size=int(config.get("sampler.batch_size", 10)),
        ffmpeg=config.get("sampler.ffmpeg", "ffmpeg"),
        ffprobe=config.get("sampler.ffprobe", "ffprobe"),
        progress_every=int(config.get("sampler.progress_every", 50)),
    )


def create_app(config: Optional[Config] = None) -> FastAPI:
    """Build the application with its own cache, fetcher and sampler."""
    config = config or get_config()
    setup_logging_from_config(config)

    app = FastAPI(
        title="Roblox Audio Analysis API",
        version="1.0.0",
        description="Windowed loudness time series for Roblox audio assets.",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.cache = AnalysisCache()
    app.state.fetcher = build_fetcher(config)
    app.state.sampler = build_sampler(config)

    # ── CORS ──────────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(system.router,   tags=["System"])
    app.include_router(analysis.router, prefix="/api", tags=["Analysis"])
    return app


app = create_app()


def run() -> None:
    """Serve ``app`` with uvicorn on the configured host and port."""
    import uvicorn

    config = app.state.config
    uvicorn.run(
        app,
        host=config.get("server.host", "0.0.0.0"),
        port=config.port(),
    )


if __name__ == "__main__":
    run()
