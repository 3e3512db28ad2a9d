"""Data types for the audio sampling pipeline."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


class AudioPipelineError(Exception):
    """Base exception for failures that abort an analysis request."""


@dataclass(frozen=True)
class Sample:
    """Loudness estimate for one fixed-width window.

    ``bass``/``mid``/``high`` are ``amplitude`` scaled by random jitter, not
    a real frequency decomposition.
    """
    time: float                # window start, seconds (2 dp)
    amplitude: float           # linear RMS, 0.0-1.0
    bass: float
    mid: float
    high: float
    peak: float                # linear peak, 0.0-1.0

    @classmethod
    def silent(cls, time: float) -> "Sample":
        return cls(time=round(time, 2), amplitude=0, bass=0, mid=0, high=0, peak=0)

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class WindowMeasurement:
    """Outcome of running the loudness tool over one window.

    Exactly one of ``output`` (the tool's combined stdout/stderr) or
    ``error`` is set.
    """
    index: int
    time: float
    output: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class AnalysisResult:
    """Ordered time series for one asset. Immutable once built."""
    asset_id: str
    duration: float
    interval: float
    samples: int
    data: List[Sample] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """JSON shape served by the API (``assetId`` is camel-cased)."""
        return {
            "assetId": self.asset_id,
            "duration": self.duration,
            "interval": self.interval,
            "samples": self.samples,
            "data": [s.to_dict() for s in self.data],
        }
