"""Loading ticket transcripts from disk."""

import json
from pathlib import Path
from typing import List, Union

from loguru import logger
from pydantic import ValidationError

from callsynth.core.errors import TranscriptReadError
from callsynth.models.transcript import Transcript, Utterance


def read_transcript(path: Union[str, Path]) -> Transcript:
    """Parse a ticket JSON file into an ordered transcript.

    The file must hold a list of objects each carrying ``message`` and
    ``speaker_is_customer``. Message text is not validated.

    Args:
        path: Path to the ticket JSON file

    Returns:
        Transcript: Utterances in file order

    Raises:
        TranscriptReadError: File missing, unreadable or malformed
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise TranscriptReadError(f"cannot read transcript {path}", detail=str(e)) from e

    try:
        items = json.loads(raw)
    except json.JSONDecodeError as e:
        raise TranscriptReadError(f"transcript {path} is not valid JSON", detail=str(e)) from e

    if not isinstance(items, list):
        raise TranscriptReadError(f"transcript {path} must be a list of messages")

    utterances = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise TranscriptReadError(f"transcript {path} item is not an object", index=index)
        try:
            utterances.append(Utterance(
                index=index,
                message=item.get("message"),
                speaker_is_customer=item.get("speaker_is_customer"),
            ))
        except ValidationError as e:
            raise TranscriptReadError(f"transcript {path} item is malformed", index=index, detail=str(e)) from e

    logger.debug(f"Read {len(utterances)} utterances from {path}")
    return Transcript(source=path, utterances=tuple(utterances))


def list_transcripts(directory: Union[str, Path]) -> List[Path]:
    """Return the ticket JSON files of a directory in name order."""
    directory = Path(directory)
    if not directory.is_dir():
        logger.error(f"Directory not found: {directory}")
        return []
    tickets = sorted(p for p in directory.iterdir() if p.suffix == ".json" and p.is_file())
    logger.info(f"Found {len(tickets)} tickets in {directory}")
    return tickets
