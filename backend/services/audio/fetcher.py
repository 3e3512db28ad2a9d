"""AssetFetcher — download a remote audio asset into the scratch directory."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import requests

from backend.services.audio.types import AudioPipelineError

logger = logging.getLogger("audio_analysis.audio.fetcher")

DEFAULT_URL_TEMPLATE = "https://assetdelivery.roblox.com/v1/asset/?id={asset_id}"


class FetchError(AudioPipelineError):
    """Raised when an asset cannot be downloaded to local storage."""


class AssetFetcher:
    """Streams remote assets to ``<scratch_dir>/<asset_id><suffix>``.

    The scratch path is deterministic per asset id, so two concurrent
    requests for the same uncached asset write to the same file.

    Usage::

        fetcher = AssetFetcher(scratch_dir="temp")
        async with fetcher.fetched("123") as path:
            ...  # path is removed on exit, whatever happens inside

    Network I/O is in ``_open_stream()`` for easy mocking in tests.
    """

    def __init__(
        self,
        scratch_dir: str = "temp",
        url_template: str = DEFAULT_URL_TEMPLATE,
        suffix: str = ".mp3",
        timeout: Optional[float] = None,
        chunk_size: int = 8192,
    ):
        self.scratch_dir = Path(scratch_dir)
        self.url_template = url_template
        self.suffix = suffix
        self.timeout = timeout
        self.chunk_size = chunk_size

    # ── public ────────────────────────────────────────────────────────────────

    def url_for(self, asset_id: str) -> str:
        return self.url_template.format(asset_id=asset_id)

    def path_for(self, asset_id: str) -> Path:
        return self.scratch_dir / f"{asset_id}{self.suffix}"

    async def fetch(self, asset_id: str) -> Path:
        """Download the asset and return the local path.

        The caller owns the returned file. Prefer ``fetched()``, which
        deletes it on every exit path.

        Raises:
            FetchError: On connection failure, non-2xx status or write error.
        """
        return await asyncio.to_thread(self._download, asset_id)

    @asynccontextmanager
    async def fetched(self, asset_id: str) -> AsyncIterator[Path]:
        path = await self.fetch(asset_id)
        try:
            yield path
        finally:
            self.discard(path)

    def discard(self, path: Path) -> None:
        """Remove a scratch file if it still exists."""
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except (OSError, ValueError) as exc:
            logger.warning("Could not remove scratch file %s: %s", path, exc)

    def sweep(self) -> int:
        """Best-effort removal of every file in the scratch directory.

        Returns:
            Number of files removed.
        """
        if not self.scratch_dir.is_dir():
            return 0
        removed = 0
        for entry in self.scratch_dir.iterdir():
            if not entry.is_file():
                continue
            try:
                entry.unlink()
                removed += 1
            except OSError as exc:
                logger.warning("Sweep could not remove %s: %s", entry, exc)
        return removed

    # ── internal ──────────────────────────────────────────────────────────────

    def _download(self, asset_id: str) -> Path:
        url = self.url_for(asset_id)
        dest = self.path_for(asset_id)
        logger.info("Downloading asset %s from %s", asset_id, url)
        try:
            self.scratch_dir.mkdir(parents=True, exist_ok=True)
            with self._open_stream(url) as resp:
                resp.raise_for_status()
                with open(dest, "wb") as f:
                    for chunk in resp.iter_content(chunk_size=self.chunk_size):
                        if chunk:
                            f.write(chunk)
        except (requests.RequestException, OSError, ValueError) as exc:
            self.discard(dest)
            raise FetchError(f"Failed to download audio: {exc}") from exc
        return dest

    def _open_stream(self, url: str) -> requests.Response:
        """Issue the streaming GET. Separated so it can be mocked."""
        return requests.get(url, stream=True, timeout=self.timeout)
