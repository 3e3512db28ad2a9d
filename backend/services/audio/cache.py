"""In-memory analysis cache keyed by asset id.

Lives for the life of the process: no eviction, no TTL, no locking.
Concurrent puts for the same key simply overwrite each other.
"""
from __future__ import annotations

from typing import Dict, Iterator, List, Optional

from backend.services.audio.types import AnalysisResult


class AnalysisCache:
    """Dict-backed store of finished AnalysisResults."""

    def __init__(self) -> None:
        self._entries: Dict[str, AnalysisResult] = {}

    def get(self, asset_id: str) -> Optional[AnalysisResult]:
        return self._entries.get(str(asset_id))

    def put(self, asset_id: str, result: AnalysisResult) -> None:
        self._entries[str(asset_id)] = result

    def asset_ids(self) -> List[str]:
        """Cached ids in insertion order."""
        return list(self._entries)

    def __contains__(self, asset_id: object) -> bool:
        return str(asset_id) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)
