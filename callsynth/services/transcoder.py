"""Audio transcoding capability used by the call-audio pipeline."""

import asyncio
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence

from loguru import logger
from pydub import AudioSegment
from pydub.utils import which

from callsynth.core.config import settings
from callsynth.models.transcript import ChannelSide


class MediaToolError(Exception):
    """An external media tool failed."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class Transcoder(ABC):
    """Contract for the audio operations the call pipeline relies on."""

    @abstractmethod
    async def to_stereo(self, input_path: Path, output_path: Path) -> Path:
        """Duplicate a mono clip across two channels."""

    @abstractmethod
    async def pan(self, input_path: Path, output_path: Path, side: ChannelSide) -> Path:
        """Isolate a stereo clip's content on one channel."""

    @abstractmethod
    async def concat_stream_copy(self, input_paths: Sequence[Path], output_path: Path,
                                 manifest_path: Path) -> Path:
        """Join clips in the given order without re-encoding."""

    @abstractmethod
    async def probe_duration(self, path: Path) -> float:
        """Duration of an audio file in seconds."""


def pan_segment(audio: AudioSegment, side: ChannelSide) -> AudioSegment:
    """Keep the first channel on one side and silence the other.

    Equivalent to ffmpeg's ``pan=stereo|c0=FL`` (left) and
    ``pan=stereo|c1=FL`` (right).
    """
    source = audio.split_to_mono()[0]
    silence = AudioSegment(
        data=b"\x00" * len(source.raw_data),
        sample_width=source.sample_width,
        frame_rate=source.frame_rate,
        channels=1,
    )
    if side == ChannelSide.LEFT:
        return AudioSegment.from_mono_audiosegments(source, silence)
    return AudioSegment.from_mono_audiosegments(silence, source)


def write_concat_manifest(input_paths: Sequence[Path], manifest_path: Path) -> Path:
    """Write an ffmpeg concat demuxer list, one absolute path per line."""
    lines = []
    for path in input_paths:
        escaped = str(Path(path).resolve()).replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    manifest_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return manifest_path


class FFmpegTranscoder(Transcoder):
    """Transcoder backed by ffmpeg, through pydub for channel work and
    directly for stream-copy concatenation and duration probing."""

    def __init__(self, ffmpeg_binary: Optional[str] = None, ffprobe_binary: Optional[str] = None):
        self.ffmpeg_binary = ffmpeg_binary or _resolve_tool(settings.ffmpeg_path, "ffmpeg", "avconv")
        self.ffprobe_binary = ffprobe_binary or _resolve_tool(settings.ffprobe_path, "ffprobe", "avprobe")
        AudioSegment.converter = self.ffmpeg_binary
        AudioSegment.ffprobe = self.ffprobe_binary

    async def to_stereo(self, input_path: Path, output_path: Path) -> Path:
        def _convert():
            audio = AudioSegment.from_file(str(input_path))
            audio.set_channels(2).export(str(output_path), format=_format_of(output_path))

        await self._in_thread(_convert, input_path)
        return output_path

    async def pan(self, input_path: Path, output_path: Path, side: ChannelSide) -> Path:
        def _pan():
            audio = AudioSegment.from_file(str(input_path))
            pan_segment(audio, side).export(str(output_path), format=_format_of(output_path))

        await self._in_thread(_pan, input_path)
        return output_path

    async def concat_stream_copy(self, input_paths: Sequence[Path], output_path: Path,
                                 manifest_path: Path) -> Path:
        write_concat_manifest(input_paths, manifest_path)
        logger.debug(f"Created concat list: {manifest_path}")
        await self._run([
            "-f", "concat",
            "-safe", "0",
            "-i", str(manifest_path),
            "-c", "copy",
            str(output_path),
        ])
        return output_path

    async def probe_duration(self, path: Path) -> float:
        output = await self._exec([
            self.ffprobe_binary,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(path),
        ])
        try:
            return float(output.strip())
        except ValueError as e:
            raise MediaToolError(f"Unable to retrieve audio duration for {path}", stderr=output) from e

    def command(self, args: List[str]) -> List[str]:
        return [self.ffmpeg_binary, "-y", "-hide_banner", "-loglevel", "error", *args]

    async def _in_thread(self, func, input_path: Path) -> None:
        try:
            await asyncio.to_thread(func)
        except Exception as e:
            # pydub raises CouldntDecodeError / CouldntEncodeError carrying ffmpeg stderr
            raise MediaToolError(f"Failed to process {input_path}", stderr=str(e)) from e

    async def _run(self, args: List[str]) -> None:
        await self._exec(self.command(args))

    async def _exec(self, cmd: List[str]) -> str:
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise MediaToolError(f"Could not start {cmd[0]}: {e}") from e

        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            error_msg = stderr.decode(errors="replace") if stderr else ""
            logger.error(f"{Path(cmd[0]).name} failed ({proc.returncode}): {error_msg}")
            raise MediaToolError(
                f"{Path(cmd[0]).name} exited with status {proc.returncode}",
                returncode=proc.returncode,
                stderr=error_msg,
            )
        return stdout.decode(errors="replace") if stdout else ""


def _format_of(path: Path) -> str:
    return Path(path).suffix.lstrip(".") or "mp3"


def _resolve_tool(override: Optional[str], name: str, fallback: str) -> str:
    if override and os.path.exists(override):
        return override
    return which(name) or which(fallback) or name
