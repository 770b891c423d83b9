"""Error taxonomy for the call-audio pipeline and its collaborators."""

from typing import Optional


class CallAudioError(Exception):
    """Base class for call-audio pipeline failures.

    Carries the stage that failed, the utterance index when the failure is
    tied to one clip, and the underlying tool or provider message.
    """

    stage = "pipeline"

    def __init__(self, message: str, *, index: Optional[int] = None,
                 detail: Optional[str] = None, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.index = index
        self.detail = detail
        if stage is not None:
            self.stage = stage

    def __str__(self) -> str:
        parts = [f"[{self.stage}]"]
        if self.index is not None:
            parts.append(f"utterance {self.index}:")
        parts.append(self.message)
        text = " ".join(parts)
        if self.detail:
            text = f"{text} ({self.detail.strip()})"
        return text


class TranscriptReadError(CallAudioError):
    stage = "extract"


class SynthesisError(CallAudioError):
    stage = "synthesize"


class TranscodeError(CallAudioError):
    stage = "transcode"


class ConcatenationError(CallAudioError):
    stage = "concatenate"


class InvariantViolation(CallAudioError):
    stage = "concatenate"


class EvaluationApiError(Exception):
    """Raised when the evaluation platform rejects or fails a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
