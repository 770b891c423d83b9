import argparse
import asyncio
import json
import random
import sys
from pathlib import Path
from typing import List, Optional

from callsynth.core.config import settings
from callsynth.core.errors import CallAudioError, EvaluationApiError
from callsynth.core.logger import logger, setup_logging
from callsynth.services.call_audio import CallAudioPipeline
from callsynth.services.contact_templates import build_call_contact, build_chat_contact, pick_agent
from callsynth.services.evaluation_client import EvaluagentClient, record_reference
from callsynth.services.text_to_speech import create_synthesizer
from callsynth.services.transcoder import FFmpegTranscoder, MediaToolError
from callsynth.services.transcript_reader import list_transcripts, read_transcript


def build_pipeline() -> CallAudioPipeline:
    return CallAudioPipeline(create_synthesizer(), FFmpegTranscoder())


async def convert_tickets(tickets_dir: str) -> int:
    """Convert every ticket to call audio, stopping at the first failure."""
    tickets = list_transcripts(tickets_dir)
    if not tickets:
        logger.error(f"No tickets found in {tickets_dir}")
        return 1

    pipeline = build_pipeline()
    for ticket in tickets:
        logger.info(f"Processing ticket: {ticket}")
        try:
            output = await pipeline.convert(ticket)
        except CallAudioError as e:
            logger.error(f"Failed to process {ticket}: {e}")
            return 1
        logger.info(f"Generated audio: {output}")
    return 0


async def send_chats(tickets_dir: str, count: int) -> int:
    client = EvaluagentClient()
    agents = await client.get_agents()
    if not agents:
        logger.error("No active agents with an email address to assign contacts to")
        return 1
    tickets = list_transcripts(tickets_dir)
    if not tickets:
        logger.error(f"No tickets found in {tickets_dir}")
        return 1

    for _ in range(count):
        contact = build_chat_contact(random.choice(tickets), pick_agent(agents))
        await client.send_contact(contact)
        record_reference(settings.reference_log_path, contact.data.reference)
    return 0


async def send_calls(tickets_dir: str, count: int) -> int:
    client = EvaluagentClient()
    agents = await client.get_agents()
    if not agents:
        logger.error("No active agents with an email address to assign contacts to")
        return 1
    tickets = list_transcripts(tickets_dir)
    if not tickets:
        logger.error(f"No tickets found in {tickets_dir}")
        return 1

    pipeline = build_pipeline()
    for _ in range(count):
        ticket = random.choice(tickets)
        logger.info(f"Target ticket set as {ticket}")
        audio_path = await pipeline.convert(ticket)
        handling_time = await pipeline.transcoder.probe_duration(audio_path)
        storage_path = await client.upload_audio(audio_path)
        contact = build_call_contact(
            pick_agent(agents), audio_path, storage_path, handling_time,
            transcript=read_transcript(ticket),
        )
        await client.send_contact(contact)
        record_reference(settings.reference_log_path, contact.data.reference)
    return 0


async def fetch_evaluations(hours: int, output: str) -> int:
    body = await EvaluagentClient().fetch_recent_evaluations(hours=hours)
    Path(output).write_text(json.dumps(body, indent=2), encoding="utf-8")
    logger.info(f"Wrote {len(body.get('data') or [])} evaluations to {output}")
    return 0


async def run(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Synthetic contact generator for evaluagent")
    parser.add_argument("--tickets", default=settings.tickets_dir, help="Directory of ticket JSON files")
    parser.add_argument("--log-level", default=None, help="Console log level")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("audio", help="Convert every ticket to call audio")
    chat = sub.add_parser("chat", help="Send chat contacts built from random tickets")
    chat.add_argument("--count", type=int, default=1)
    call = sub.add_parser("call", help="Send call contacts with synthesized audio")
    call.add_argument("--count", type=int, default=1)
    evaluations = sub.add_parser("evaluations", help="Fetch recently published evaluations")
    evaluations.add_argument("--hours", type=int, default=24)
    evaluations.add_argument("--output", default="evaluations.json", help="File to write the response to")
    args = parser.parse_args(argv)

    setup_logging(level=args.log_level)

    try:
        if args.command == "audio":
            return await convert_tickets(args.tickets)
        if args.command == "chat":
            return await send_chats(args.tickets, args.count)
        if args.command == "evaluations":
            return await fetch_evaluations(args.hours, args.output)
        return await send_calls(args.tickets, args.count)
    except (CallAudioError, EvaluationApiError, MediaToolError) as e:
        logger.error(f"Error in main: {e}")
        return 1


def main() -> None:
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
