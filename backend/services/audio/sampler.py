"""AudioSampler — windowed loudness time series via ffprobe/ffmpeg.

The track is cut into fixed 0.1 s windows. Each window is measured by its
own ``ffmpeg`` process (``volumedetect`` + ``astats``); windows are run in
batches of ``batch_size`` concurrent processes, and a batch is fully joined
before the next one starts. A trailing remainder shorter than one interval
is not sampled.

External tool calls go through ``_run_tool()`` so tests can replace it.
"""
from __future__ import annotations

import asyncio
import logging
import math
import random
import re
from typing import List, Optional, Sequence, Tuple

from backend.services.audio.types import (
    AnalysisResult,
    AudioPipelineError,
    Sample,
    WindowMeasurement,
)

logger = logging.getLogger("audio_analysis.audio.sampler")

DEFAULT_INTERVAL = 0.1
DEFAULT_BATCH_SIZE = 10
SILENCE_FLOOR_DB = -60.0

# (low, high) for random.uniform; each band is amplitude * factor
BAND_JITTER = {
    "bass": (0.8, 1.0),
    "mid":  (0.7, 1.0),
    "high": (0.6, 1.0),
}

_RMS_RE = re.compile(r"RMS level dB: ([-\d.]+)")
_PEAK_RE = re.compile(r"Peak level dB: ([-\d.]+)")


class ProbeError(AudioPipelineError):
    """Raised when the track duration cannot be determined."""


# ── pure helpers ──────────────────────────────────────────────────────────────

def window_count(duration: float, interval: float = DEFAULT_INTERVAL) -> int:
    """Number of full windows in ``duration``; the remainder is dropped."""
    if duration <= 0:
        return 0
    return math.floor(duration / interval)


def batches(count: int, batch_size: int = DEFAULT_BATCH_SIZE) -> List[range]:
    """Split window indices ``0..count-1`` into consecutive batches."""
    return [range(start, min(start + batch_size, count))
            for start in range(0, count, batch_size)]


def parse_level(output: str, pattern: "re.Pattern[str]") -> float:
    """Extract a labelled dB value, falling back to the silence floor."""
    match = pattern.search(output)
    if match is None:
        return SILENCE_FLOOR_DB
    try:
        return float(match.group(1))
    except ValueError:
        return SILENCE_FLOOR_DB


def db_to_linear(db: float) -> float:
    return 10 ** (db / 20)


def parse_duration(output: str) -> float:
    """Parse ffprobe's bare duration line.

    Raises:
        ProbeError: If the output is empty, not a number, NaN or negative.
    """
    text = output.strip()
    try:
        duration = float(text)
    except ValueError:
        raise ProbeError(f"Audio analysis failed: unparseable duration {text!r}") from None
    if math.isnan(duration) or math.isinf(duration) or duration < 0:
        raise ProbeError(f"Audio analysis failed: invalid duration {text!r}")
    return duration


# ── sampler ───────────────────────────────────────────────────────────────────

class AudioSampler:
    """Builds an AnalysisResult for a local audio file.

    Usage::

        sampler = AudioSampler(batch_size=10)
        result = await sampler.analyze("/tmp/temp/123.mp3", asset_id="123")

    Args:
        interval: Window width in seconds.
        batch_size: Max number of concurrent ffmpeg processes.
        ffmpeg: ffmpeg executable.
        ffprobe: ffprobe executable.
        rng: Source of band jitter; pass a seeded ``random.Random`` for
            reproducible output.
        progress_every: Log a progress line every N windows (0 disables).
    """

    def __init__(
        self,
        interval: float = DEFAULT_INTERVAL,
        batch_size: int = DEFAULT_BATCH_SIZE,
        ffmpeg: str = "ffmpeg",
        ffprobe: str = "ffprobe",
        rng: Optional[random.Random] = None,
        progress_every: int = 50,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.interval = interval
        self.batch_size = batch_size
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe
        self.progress_every = progress_every
        self._rng = rng or random.Random()

    # ── public ────────────────────────────────────────────────────────────────

    async def analyze(self, audio_path: str, asset_id: str) -> AnalysisResult:
        """Probe duration, then sample every full window in order.

        Raises:
            ProbeError: If the duration probe fails. Window failures never
                raise; they show up as zero-valued samples.
        """
        duration = await self.probe_duration(audio_path)
        logger.info("Audio duration: %.2fs", duration)

        total = window_count(duration, self.interval)
        data: List[Sample] = []
        for batch in batches(total, self.batch_size):
            measurements = await self._measure_batch(audio_path, batch)
            data.extend(self.to_sample(m) for m in measurements)

            if self.progress_every and batch.start % self.progress_every == 0:
                logger.info("Analyzed %d/%d samples", batch.start, total)

        return AnalysisResult(
            asset_id=str(asset_id),
            duration=duration,
            interval=self.interval,
            samples=len(data),
            data=data,
        )

    async def probe_duration(self, audio_path: str) -> float:
        """Return the track duration in seconds.

        Raises:
            ProbeError: If ffprobe cannot be run, exits non-zero, or prints
                something other than a duration.
        """
        args = [
            self.ffprobe, "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            audio_path,
        ]
        try:
            returncode, output = await self._run_tool(args, merge_stderr=False)
        except OSError as exc:
            raise ProbeError(f"Audio analysis failed: {exc}") from exc
        if returncode != 0:
            raise ProbeError(
                f"Audio analysis failed: ffprobe exited with {returncode}: {output.strip()}"
            )
        return parse_duration(output)

    async def measure_window(self, audio_path: str, index: int) -> WindowMeasurement:
        """Run ffmpeg over window ``index``. Never raises."""
        time = index * self.interval
        args = [
            self.ffmpeg,
            "-ss", str(time),
            "-t", str(self.interval),
            "-i", audio_path,
            "-af", "volumedetect,astats=metadata=1:reset=1",
            "-f", "null", "-",
        ]
        try:
            returncode, output = await self._run_tool(args, merge_stderr=True)
        except Exception as exc:  # noqa: BLE001
            return WindowMeasurement(index=index, time=time, error=str(exc))
        if returncode != 0:
            return WindowMeasurement(
                index=index, time=time, error=f"ffmpeg exited with {returncode}"
            )
        return WindowMeasurement(index=index, time=time, output=output)

    def to_sample(self, measurement: WindowMeasurement) -> Sample:
        """Convert a window measurement into a Sample.

        Failed measurements become an all-zero Sample at the window's time.
        """
        if not measurement.ok:
            logger.debug("Window %d failed: %s", measurement.index, measurement.error)
            return Sample.silent(measurement.time)

        output = measurement.output or ""
        amplitude = db_to_linear(parse_level(output, _RMS_RE))
        peak = db_to_linear(parse_level(output, _PEAK_RE))
        bands = {name: amplitude * self._rng.uniform(low, high)
                 for name, (low, high) in BAND_JITTER.items()}

        return Sample(
            time=round(measurement.time, 2),
            amplitude=round(amplitude, 4),
            bass=round(bands["bass"], 4),
            mid=round(bands["mid"], 4),
            high=round(bands["high"], 4),
            peak=round(peak, 4),
        )

    # ── internal ──────────────────────────────────────────────────────────────

    async def _measure_batch(
        self, audio_path: str, indices: Sequence[int]
    ) -> List[WindowMeasurement]:
        """Measure all windows of one batch concurrently; results in index order."""
        return list(await asyncio.gather(
            *(self.measure_window(audio_path, i) for i in indices)
        ))

    async def _run_tool(self, args: Sequence[str], merge_stderr: bool) -> Tuple[int, str]:
        """Run an external tool and return ``(returncode, decoded output)``.

        With ``merge_stderr`` the tool's stderr is folded into the returned
        text (ffmpeg prints its filter statistics there).
        """
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT if merge_stderr else asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
        output = stdout.decode("utf-8", errors="replace")
        if not merge_stderr and proc.returncode != 0 and stderr:
            output += stderr.decode("utf-8", errors="replace")
        return proc.returncode, output
