"""Conversion of a ticket transcript into a two-channel call recording.

A run moves through five stages, each consuming the files written by the
previous one inside a run-scoped working directory:

    extract -> synthesize -> normalize (mono to stereo)
            -> map channels (agent left, customer right) -> concatenate

Any failure aborts the run and leaves the working directory untouched for
inspection. Only the final rename writes to the output directory.
"""

import asyncio
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Union

from loguru import logger

from callsynth.core.config import settings
from callsynth.core.errors import (
    ConcatenationError,
    InvariantViolation,
    SynthesisError,
    TranscodeError,
)
from callsynth.models.transcript import Clip, ClipStage, RunState, SpeakerRole, Transcript
from callsynth.services.text_to_speech import SpeechSynthesizer, VoiceProfile, voice_profiles
from callsynth.services.transcoder import MediaToolError, Transcoder
from callsynth.services.transcript_reader import read_transcript

CONCAT_MANIFEST = "concat_list.txt"


class PipelineRun:
    """State owned by a single transcript conversion."""

    def __init__(self, transcript_path: Path, work_root: Path, output_dir: Path,
                 audio_format: str = "mp3", run_id: Optional[str] = None):
        self.run_id = run_id or uuid.uuid4().hex
        self.transcript_path = Path(transcript_path)
        self.work_dir = Path(work_root) / self.run_id
        self.output_dir = Path(output_dir)
        self.audio_format = audio_format
        self.state = RunState.START
        self.failure: Optional[str] = None
        self.transcript: Optional[Transcript] = None
        self.log = logger.bind(run_id=self.run_id, transcript=self.transcript_path.name)

    @property
    def base_name(self) -> str:
        return self.transcript_path.stem

    @property
    def final_output_path(self) -> Path:
        return self.output_dir / f"{self.base_name}.{self.audio_format}"

    @property
    def temp_output_path(self) -> Path:
        return self.work_dir / f"final_output.{self.audio_format}"

    @property
    def manifest_path(self) -> Path:
        return self.work_dir / CONCAT_MANIFEST

    @property
    def utterance_count(self) -> int:
        return len(self.transcript) if self.transcript is not None else 0

    def advance(self, state: RunState) -> None:
        self.log.debug(f"{self.state.value} -> {state.value}")
        self.state = state

    def fail(self, error: Exception) -> None:
        self.failure = str(error)
        self.state = RunState.FAILED
        self.log.error(f"Run failed: {self.failure}")

    def clips(self, stage: ClipStage) -> List[Clip]:
        """Clips of one stage currently in the working directory, in index order."""
        found = []
        for path in self.work_dir.glob(f"*_{stage.value}.{self.audio_format}"):
            clip = Clip.from_path(path)
            if clip is not None and clip.stage == stage:
                found.append(clip)
        return sort_clips(found)


def sort_clips(clips: List[Clip]) -> List[Clip]:
    """Order clips by utterance index numerically, so 10 follows 9."""
    return sorted(clips, key=lambda clip: clip.index)


class CallAudioPipeline:
    """Builds one stereo call recording per transcript."""

    def __init__(self, synthesizer: SpeechSynthesizer, transcoder: Transcoder,
                 voices: Optional[Dict[SpeakerRole, VoiceProfile]] = None,
                 work_root: Union[str, Path] = None, output_dir: Union[str, Path] = None,
                 audio_format: str = None, concurrency: int = None):
        self.synthesizer = synthesizer
        self.transcoder = transcoder
        self.voices = voices or voice_profiles()
        self.work_root = Path(work_root or settings.audio_work_dir)
        self.output_dir = Path(output_dir or settings.call_output_dir)
        self.audio_format = audio_format or settings.audio_format
        self.concurrency = max(1, concurrency or settings.synthesis_concurrency)

    def new_run(self, transcript_path: Union[str, Path]) -> PipelineRun:
        return PipelineRun(transcript_path, self.work_root, self.output_dir, self.audio_format)

    async def convert(self, transcript_path: Union[str, Path]) -> Path:
        """Convert a ticket transcript to a call recording.

        Returns:
            Path: The final audio file, named after the transcript

        Raises:
            CallAudioError: Any stage failure; the run is marked failed
        """
        return await self.execute(self.new_run(transcript_path))

    async def execute(self, run: PipelineRun) -> Path:
        run.log.info(f"Starting audio conversion for {run.transcript_path}")
        try:
            await self.extract(run)
            await self.synthesize(run)
            await self.normalize(run)
            await self.map_channels(run)
            output = await self.concatenate(run)
        except Exception as e:
            run.fail(e)
            raise
        run.log.info(f"Audio processing completed successfully. Final file: {output}")
        return output

    async def extract(self, run: PipelineRun) -> Transcript:
        run.transcript = await asyncio.to_thread(read_transcript, run.transcript_path)
        run.work_dir.mkdir(parents=True, exist_ok=True)
        run.advance(RunState.EXTRACTED)
        return run.transcript

    async def synthesize(self, run: PipelineRun) -> List[Clip]:
        """Render every utterance to a raw clip, several at a time.

        The first failure cancels the remaining renders and aborts the run.
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _render(utterance) -> Clip:
            clip = Clip.for_utterance(utterance, run.work_dir, self.audio_format)
            voice = self.voices[utterance.role]
            async with semaphore:
                run.log.info(f"Processing message {utterance.index} ({utterance.role.value})")
                try:
                    await self.synthesizer.synthesize(utterance.message, voice, clip.path)
                except Exception as e:
                    raise SynthesisError(
                        f"speech synthesis failed with voice {voice.name}",
                        index=utterance.index, detail=str(e),
                    ) from e
            if not clip.path.exists() or clip.path.stat().st_size == 0:
                raise SynthesisError("synthesizer produced no audio", index=utterance.index)
            run.log.debug(f"Audio segment saved: {clip.path}")
            return clip

        tasks = [asyncio.ensure_future(_render(u)) for u in run.transcript.utterances]
        try:
            clips = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        run.log.info(f"All {len(clips)} messages processed and audio files generated")
        run.advance(RunState.SYNTHESIZED)
        return list(clips)

    async def normalize(self, run: PipelineRun) -> List[Clip]:
        """Upmix every raw clip to stereo, deleting each raw file once converted."""
        raw_clips = run.clips(ClipStage.RAW)
        if not raw_clips:
            run.log.warning("No raw clips found, nothing to convert to stereo")

        converted = []
        for clip in raw_clips:
            target = clip.advance(ClipStage.STEREO)
            try:
                await self.transcoder.to_stereo(clip.path, target.path)
            except MediaToolError as e:
                raise TranscodeError(
                    f"stereo conversion failed for {clip.path.name}",
                    index=clip.index, detail=e.stderr or str(e), stage="normalize",
                ) from e
            clip.path.unlink()
            converted.append(target)

        run.log.info(f"Converted {len(converted)} clips to stereo")
        run.advance(RunState.NORMALIZED)
        return converted

    async def map_channels(self, run: PipelineRun) -> List[Clip]:
        """Pan agent clips to the left channel and customer clips to the right."""
        stereo_clips = run.clips(ClipStage.STEREO)
        if not stereo_clips:
            run.log.warning("No stereo clips found, nothing to remap")

        mapped = []
        for clip in stereo_clips:
            target = clip.advance(ClipStage.MAPPED)
            try:
                await self.transcoder.pan(clip.path, target.path, clip.channel)
            except MediaToolError as e:
                raise TranscodeError(
                    f"channel remap to {clip.channel.value} failed for {clip.path.name}",
                    index=clip.index, detail=e.stderr or str(e), stage="map_channels",
                ) from e
            clip.path.unlink()
            mapped.append(target)

        run.log.info(f"Remapped {len(mapped)} clips with agent on left and customer on right")
        run.advance(RunState.MAPPED)
        return mapped

    async def concatenate(self, run: PipelineRun) -> Path:
        """Join mapped clips in utterance order and move the result into place."""
        mapped = run.clips(ClipStage.MAPPED)
        if not mapped:
            raise ConcatenationError("no mapped audio clips to concatenate")
        if len(mapped) != run.utterance_count:
            raise InvariantViolation(
                f"found {len(mapped)} mapped clips for {run.utterance_count} utterances"
            )

        temp_output = run.temp_output_path
        try:
            await self.transcoder.concat_stream_copy(
                [clip.path for clip in mapped], temp_output, run.manifest_path
            )
        except MediaToolError as e:
            raise ConcatenationError("stream-copy concatenation failed", detail=e.stderr or str(e)) from e

        if not temp_output.exists() or temp_output.stat().st_size == 0:
            raise ConcatenationError(f"temporary output missing or empty: {temp_output}")

        run.output_dir.mkdir(parents=True, exist_ok=True)
        final_output = run.final_output_path
        try:
            temp_output.replace(final_output)
        except OSError as e:
            raise ConcatenationError(f"could not move output to {final_output}", detail=str(e)) from e
        run.log.info(f"Final output file moved to: {final_output}")

        run.manifest_path.unlink(missing_ok=True)
        for clip in mapped:
            clip.path.unlink(missing_ok=True)
        _remove_if_empty(run.work_dir)

        run.advance(RunState.CONCATENATED)
        return final_output


def _remove_if_empty(directory: Path) -> None:
    try:
        directory.rmdir()
    except OSError:
        logger.debug(f"Working directory kept: {directory}")

