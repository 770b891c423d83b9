import asyncio
import json
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

import pytest

from callsynth.models.transcript import ChannelSide, Clip, SpeakerRole
from callsynth.services.call_audio import CallAudioPipeline
from callsynth.services.text_to_speech import SpeechSynthesizer, VoiceProfile
from callsynth.services.transcoder import MediaToolError, Transcoder

VOICES = {
    SpeakerRole.AGENT: VoiceProfile(name="agent", language_code="en-US"),
    SpeakerRole.CUSTOMER: VoiceProfile(name="customer", language_code="en-GB"),
}


class FakeSynthesizer(SpeechSynthesizer):
    """Writes "<voice>:<text>" as the clip body."""

    def __init__(self, fail_at: Set[int] = frozenset(), delays: Optional[Dict[int, float]] = None):
        self.fail_at = set(fail_at)
        self.delays = delays or {}
        self.calls: List[Tuple[int, str, str]] = []
        self.completed: List[int] = []

    async def synthesize(self, text: str, voice: VoiceProfile, output_path: Path) -> Path:
        index = Clip.from_path(Path(output_path)).index
        self.calls.append((index, text, voice.name))
        await asyncio.sleep(self.delays.get(index, 0))
        if index in self.fail_at:
            raise RuntimeError(f"provider rejected utterance {index}")
        Path(output_path).write_bytes(f"{voice.name}:{text}".encode())
        self.completed.append(index)
        return Path(output_path)


class FakeTranscoder(Transcoder):
    """Wraps clip bodies so every stage is visible in the final output."""

    def __init__(self, fail_stereo_at: Set[int] = frozenset(), fail_concat: bool = False,
                 skip_concat_output: bool = False):
        self.fail_stereo_at = set(fail_stereo_at)
        self.fail_concat = fail_concat
        self.skip_concat_output = skip_concat_output
        self.stereo_calls: List[int] = []
        self.pan_calls: List[Tuple[int, ChannelSide]] = []
        self.concat_calls: List[List[str]] = []

    async def to_stereo(self, input_path: Path, output_path: Path) -> Path:
        index = Clip.from_path(input_path).index
        self.stereo_calls.append(index)
        if index in self.fail_stereo_at:
            raise MediaToolError("ffmpeg exited with status 1", returncode=1, stderr="Invalid data found")
        output_path.write_bytes(b"stereo[" + input_path.read_bytes() + b"]")
        return output_path

    async def pan(self, input_path: Path, output_path: Path, side: ChannelSide) -> Path:
        self.pan_calls.append((Clip.from_path(input_path).index, side))
        output_path.write_bytes(side.value.encode() + b":" + input_path.read_bytes())
        return output_path

    async def concat_stream_copy(self, input_paths: Sequence[Path], output_path: Path,
                                 manifest_path: Path) -> Path:
        self.concat_calls.append([p.name for p in input_paths])
        manifest_path.write_text("\n".join(f"file '{p}'" for p in input_paths))
        if self.fail_concat:
            raise MediaToolError("ffmpeg exited with status 1", returncode=1, stderr="concat failed")
        if not self.skip_concat_output:
            output_path.write_bytes(b"|".join(p.read_bytes() for p in input_paths))
        return output_path

    async def probe_duration(self, path: Path) -> float:
        return 12.5


@pytest.fixture
def write_transcript(tmp_path):
    """Write a ticket JSON file from (message, speaker_is_customer) pairs."""

    def _write(turns, name: str = "ticket_001.json") -> Path:
        tickets = tmp_path / "tickets"
        tickets.mkdir(exist_ok=True)
        path = tickets / name
        path.write_text(json.dumps([
            {"message": message, "speaker_is_customer": is_customer} for message, is_customer in turns
        ]), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_pipeline(tmp_path):
    def _make(synthesizer=None, transcoder=None, concurrency: int = 4) -> CallAudioPipeline:
        return CallAudioPipeline(
            synthesizer or FakeSynthesizer(),
            transcoder or FakeTranscoder(),
            voices=VOICES,
            work_root=tmp_path / "audio_processing",
            output_dir=tmp_path / "call_stream",
            audio_format="mp3",
            concurrency=concurrency,
        )

    return _make
