"""Shared test fixtures for the audio analysis service."""
import asyncio
import random
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator, List, Optional, Sequence, Tuple

import pytest
import requests
import yaml

from backend.services.audio.sampler import AudioSampler


@pytest.fixture(scope="session")
def project_root() -> Path:
    return Path(__file__).parent.parent.parent


@pytest.fixture
def tmp_dir() -> Generator[Path, None, None]:
    d = Path(tempfile.mkdtemp())
    yield d
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def sample_settings(tmp_dir: Path) -> Path:
    """Write a minimal settings.yaml to a temp dir and return its path."""
    settings = {
        "server": {"host": "127.0.0.1", "port": 3000},
        "remote": {
            "url_template": "https://assets.example.test/v1/asset/?id={asset_id}",
            "timeout": None,
            "chunk_size": 4096,
        },
        "paths": {"scratch_dir": str(tmp_dir / "temp"), "scratch_suffix": ".mp3"},
        "sampler": {
            "interval": 0.1,
            "batch_size": 10,
            "ffmpeg": "ffmpeg",
            "ffprobe": "ffprobe",
            "progress_every": 50,
        },
        "logging": {"level": "DEBUG", "file": str(tmp_dir / "test.log")},
    }
    cfg_path = tmp_dir / "settings.yaml"
    cfg_path.write_text(yaml.dump(settings))
    return cfg_path


# ─────────────────────────────────────────────────────────────────────────────
# Fake media tools
# ─────────────────────────────────────────────────────────────────────────────


def astats_output(rms_db: Optional[float] = -20.0, peak_db: Optional[float] = -10.0) -> str:
    """Mimic the tail of ``ffmpeg -af volumedetect,astats`` output."""
    lines = [
        "[Parsed_astats_1 @ 0x55d0c8] Channel: 1",
        "[Parsed_astats_1 @ 0x55d0c8] DC offset: 0.000012",
    ]
    if peak_db is not None:
        lines.append(f"[Parsed_astats_1 @ 0x55d0c8] Peak level dB: {peak_db}")
    if rms_db is not None:
        lines.append(f"[Parsed_astats_1 @ 0x55d0c8] RMS level dB: {rms_db}")
    lines.append("[Parsed_volumedetect_0 @ 0x55d0c7] n_samples: 8820")
    return "\n".join(lines) + "\n"


class FakeToolSampler(AudioSampler):
    """AudioSampler whose ``_run_tool`` answers from canned outputs.

    Args:
        duration_output: What ffprobe prints.
        probe_returncode: ffprobe exit code.
        window_output: Callable ``(time) -> (returncode, output)`` for ffmpeg;
            may raise to simulate a spawn failure.
    """

    def __init__(
        self,
        duration_output: str = "30.0\n",
        probe_returncode: int = 0,
        window_output: Optional[Callable[[float], Tuple[int, str]]] = None,
        **kwargs,
    ):
        kwargs.setdefault("rng", random.Random(1234))
        super().__init__(**kwargs)
        self.duration_output = duration_output
        self.probe_returncode = probe_returncode
        self.window_output = window_output or (lambda t: (0, astats_output()))
        self.calls: List[Sequence[str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _run_tool(self, args: Sequence[str], merge_stderr: bool) -> Tuple[int, str]:
        self.calls.append(list(args))
        if args[0] == self.ffprobe:
            return self.probe_returncode, self.duration_output

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            time = float(args[args.index("-ss") + 1])
            return self.window_output(time)
        finally:
            self.in_flight -= 1


@pytest.fixture
def make_sampler():
    """Factory for FakeToolSampler instances."""
    return FakeToolSampler


@pytest.fixture
def astats():
    """Factory for fake ffmpeg loudness output."""
    return astats_output


# ─────────────────────────────────────────────────────────────────────────────
# Fake remote responses
# ─────────────────────────────────────────────────────────────────────────────


class FakeResponse:
    """Minimal stand-in for a streaming ``requests.Response``."""

    def __init__(self, status_code: int = 200, chunks: Sequence[bytes] = (b"ID3", b"\x00" * 64)):
        self.status_code = status_code
        self._chunks = list(chunks)
        self.closed = False

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")

    def iter_content(self, chunk_size: int = 1):
        yield from self._chunks

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True
        return False


@pytest.fixture
def make_response():
    """Factory for FakeResponse instances."""
    return FakeResponse
