import re
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class SpeakerRole(str, Enum):
    AGENT = "agent"
    CUSTOMER = "customer"


class ChannelSide(str, Enum):
    LEFT = "left"
    RIGHT = "right"


class ClipStage(str, Enum):
    RAW = "raw"
    STEREO = "stereo"
    MAPPED = "mapped"


class RunState(str, Enum):
    START = "start"
    EXTRACTED = "extracted"
    SYNTHESIZED = "synthesized"
    NORMALIZED = "normalized"
    MAPPED = "mapped"
    CONCATENATED = "concatenated"
    FAILED = "failed"


# Agent audio sits on the left channel, customer audio on the right.
ROLE_CHANNELS = {
    SpeakerRole.AGENT: ChannelSide.LEFT,
    SpeakerRole.CUSTOMER: ChannelSide.RIGHT,
}

CLIP_NAME_PATTERN = re.compile(
    r"^message_(?P<index>\d+)_(?P<role>agent|customer)_(?P<stage>raw|stereo|mapped)\.(?P<ext>\w+)$"
)


class Utterance(BaseModel):
    """One turn of dialogue read from a transcript."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0, description="Position in the source transcript")
    message: str = Field(..., description="Spoken text")
    speaker_is_customer: bool = Field(..., description="True when the customer speaks")

    @property
    def role(self) -> SpeakerRole:
        return SpeakerRole.CUSTOMER if self.speaker_is_customer else SpeakerRole.AGENT


class Transcript(BaseModel):
    """Ordered, immutable sequence of utterances loaded from a ticket file."""

    model_config = ConfigDict(frozen=True)

    source: Path
    utterances: Tuple[Utterance, ...] = ()

    @property
    def base_name(self) -> str:
        return self.source.stem

    def __len__(self) -> int:
        return len(self.utterances)


class Clip(BaseModel):
    """Audio artifact for one utterance at one pipeline stage.

    The file name carries index, role and stage so a clip can be recovered
    from the working directory without auxiliary metadata.
    """

    model_config = ConfigDict(frozen=True)

    index: int
    role: SpeakerRole
    stage: ClipStage
    path: Path

    @staticmethod
    def filename(index: int, role: SpeakerRole, stage: ClipStage, audio_format: str = "mp3") -> str:
        return f"message_{index}_{role.value}_{stage.value}.{audio_format}"

    @classmethod
    def for_utterance(cls, utterance: Utterance, work_dir: Path, audio_format: str = "mp3") -> "Clip":
        name = cls.filename(utterance.index, utterance.role, ClipStage.RAW, audio_format)
        return cls(index=utterance.index, role=utterance.role, stage=ClipStage.RAW, path=work_dir / name)

    @classmethod
    def from_path(cls, path: Path) -> Optional["Clip"]:
        """Parse a clip descriptor from its file name, None if it is not a clip."""
        match = CLIP_NAME_PATTERN.match(path.name)
        if not match:
            return None
        return cls(
            index=int(match.group("index")),
            role=SpeakerRole(match.group("role")),
            stage=ClipStage(match.group("stage")),
            path=path,
        )

    @property
    def channel(self) -> ChannelSide:
        return ROLE_CHANNELS[self.role]

    def advance(self, stage: ClipStage) -> "Clip":
        """Descriptor for the same utterance at the next stage, beside this file."""
        name = self.filename(self.index, self.role, stage, self.path.suffix.lstrip("."))
        return Clip(index=self.index, role=self.role, stage=stage, path=self.path.with_name(name))
