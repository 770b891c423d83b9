"""Imported-contact records for the evaluation platform."""

import random
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Union

from loguru import logger

from callsynth.models.contact import Agent, Contact, ContactData, ContactMetadata, ContactResponse
from callsynth.models.transcript import Transcript
from callsynth.services.transcript_reader import read_transcript

CONTACT_LEAD_TIME = timedelta(minutes=60)
CHAT_RESPONSE_SPACING = timedelta(minutes=3)
CALL_RESPONSE_SPACING = timedelta(seconds=30)
CUSTOMER_TELEPHONE_NUMBER = "01753 877212"


def pick_agent(agents: List[Agent]) -> Agent:
    if not agents:
        raise ValueError("No agents available to assign the contact to")
    return random.choice(agents)


def _timestamp(moment: datetime) -> str:
    return moment.isoformat(timespec="seconds")


def _contact_date(now: Optional[datetime]) -> datetime:
    now = now or datetime.now(timezone.utc).astimezone()
    return now - CONTACT_LEAD_TIME


def build_chat_contact(transcript_path: Union[str, Path], agent: Agent,
                       now: Optional[datetime] = None) -> Contact:
    """Chat contact whose responses are the ticket's messages, three minutes apart.

    Args:
        transcript_path: Ticket JSON file
        agent: Agent the contact is assigned to
        now: Reference time; the contact is dated one hour earlier

    Returns:
        Contact: Payload ready to send
    """
    transcript = read_transcript(transcript_path)
    contact_date = _contact_date(now)

    responses = []
    for utterance in transcript.utterances:
        created_at = contact_date + CHAT_RESPONSE_SPACING * utterance.index
        responses.append(ContactResponse(
            message=utterance.message,
            speaker_is_customer=utterance.speaker_is_customer,
            message_created_at=_timestamp(created_at),
            speaker_email=None if utterance.speaker_is_customer else agent.email,
        ))

    agent_responses = sum(1 for r in responses if not r.speaker_is_customer)
    logger.info(f"Built chat contact from {transcript.base_name} for {agent.email}")

    return Contact(data=ContactData(
        reference=str(uuid.uuid4()),
        agent_id=agent.agent_id,
        agent_email=agent.email,
        contact_date=_timestamp(contact_date),
        channel="Chat",
        assigned_at=_timestamp(contact_date),
        solved_at=_timestamp(contact_date),
        responses=responses,
        metadata=ContactMetadata(
            Filename=transcript.base_name,
            AgentResponses=agent_responses,
            Contact="Ticket",
        ),
    ))


def build_call_contact(agent: Agent, audio_path: Union[str, Path], audio_file_path: str,
                       handling_time: float, transcript: Optional[Transcript] = None,
                       now: Optional[datetime] = None) -> Contact:
    """Telephony contact pointing at an uploaded call recording.

    When a transcript is given its utterances become the responses, thirty
    seconds apart, with the speaker taken from each utterance's role flag.
    """
    contact_date = _contact_date(now)

    responses = []
    if transcript is not None:
        for utterance in transcript.utterances:
            created_at = contact_date + CALL_RESPONSE_SPACING * (utterance.index + 1)
            responses.append(ContactResponse(
                response_id=str(utterance.index + 1),
                message=utterance.message,
                speaker_is_customer=utterance.speaker_is_customer,
                speaker_email=None if utterance.speaker_is_customer else agent.email,
                channel="Telephony",
                message_created_at=_timestamp(created_at),
            ))

    logger.info(f"Handling time: {handling_time:.1f} seconds. {len(responses)} responses.")

    return Contact(data=ContactData(
        reference=str(uuid.uuid4()),
        agent_id=agent.agent_id,
        agent_email=agent.email,
        contact_date=_timestamp(contact_date),
        channel="Telephony",
        assigned_at=_timestamp(contact_date),
        solved_at=_timestamp(contact_date),
        responses=responses,
        handling_time=handling_time,
        customer_telephone_number=CUSTOMER_TELEPHONE_NUMBER,
        audio_file_path=audio_file_path,
        metadata=ContactMetadata(Filename=Path(audio_path).stem, Contact="Call"),
    ))
