import asyncio
import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

import httpx
from google.cloud import texttospeech
from loguru import logger
from pydantic import BaseModel

from callsynth.core.config import Settings, settings as default_settings
from callsynth.models.transcript import SpeakerRole


class VoiceProfile(BaseModel):
    """Fixed voice used for every utterance of one speaker role."""

    name: str
    language_code: str
    voice_id: Optional[str] = None


class SpeechSynthesizer(ABC):
    """Contract for rendering text to a single-channel audio file."""

    @abstractmethod
    async def synthesize(self, text: str, voice: VoiceProfile, output_path: Path) -> Path:
        """Render text with the given voice and write it to output_path."""


class GoogleSpeechSynthesizer(SpeechSynthesizer):
    """Google Cloud Text-to-Speech, MP3 output."""

    def __init__(self, client=None):
        self.client = client or texttospeech.TextToSpeechClient()
        logger.info("Google TTS client initialized successfully")

    async def synthesize(self, text: str, voice: VoiceProfile, output_path: Path) -> Path:
        synthesis_input = texttospeech.SynthesisInput(text=text)
        voice_params = texttospeech.VoiceSelectionParams(language_code=voice.language_code)
        if voice.voice_id:
            voice_params.name = voice.voice_id
        audio_config = texttospeech.AudioConfig(
            audio_encoding=texttospeech.AudioEncoding.MP3
        )

        response = await asyncio.to_thread(
            self.client.synthesize_speech,
            input=synthesis_input,
            voice=voice_params,
            audio_config=audio_config
        )

        Path(output_path).write_bytes(response.audio_content)
        return Path(output_path)


class ElevenLabsSynthesizer(SpeechSynthesizer):
    """ElevenLabs text-to-speech over HTTP, MP3 output."""

    base_url = "https://api.elevenlabs.io/v1"

    def __init__(self, api_key: str, model_id: str = "eleven_multilingual_v2",
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        if not api_key:
            raise RuntimeError("ELEVENLABS_API_KEY not configured")
        self.api_key = api_key
        self.model_id = model_id
        self.transport = transport

    async def synthesize(self, text: str, voice: VoiceProfile, output_path: Path) -> Path:
        if not voice.voice_id:
            raise RuntimeError(f"Voice profile {voice.name} has no ElevenLabs voice id")

        url = f"{self.base_url}/text-to-speech/{voice.voice_id}"
        headers = {
            "xi-api-key": self.api_key,
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
        }
        payload = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": {"stability": 0.4, "similarity_boost": 0.8},
        }

        async with httpx.AsyncClient(timeout=30.0, transport=self.transport) as client:
            resp = await client.post(url, headers=headers, content=json.dumps(payload))
            if resp.status_code != 200:
                raise RuntimeError(f"ElevenLabs error: {resp.status_code} {resp.text[:120]}")

        Path(output_path).write_bytes(resp.content)
        return Path(output_path)


def voice_profiles(config: Settings = None) -> Dict[SpeakerRole, VoiceProfile]:
    """Voice per speaker role. The role decides the voice, never the turn position.

    Raises:
        ValueError: if both roles would be rendered with the same voice
    """
    config = config or default_settings
    if config.tts_provider.lower() == "elevenlabs":
        agent_voice, customer_voice = config.elevenlabs_agent_voice_id, config.elevenlabs_customer_voice_id
    else:
        agent_voice, customer_voice = config.google_agent_voice_name, config.google_customer_voice_name

    voices = {
        SpeakerRole.AGENT: VoiceProfile(
            name="agent", language_code=config.agent_voice_language, voice_id=agent_voice
        ),
        SpeakerRole.CUSTOMER: VoiceProfile(
            name="customer", language_code=config.customer_voice_language, voice_id=customer_voice
        ),
    }

    agent, customer = voices[SpeakerRole.AGENT], voices[SpeakerRole.CUSTOMER]
    if (agent.language_code, agent.voice_id) == (customer.language_code, customer.voice_id):
        raise ValueError(
            f"Agent and customer share the voice {agent.language_code}/{agent.voice_id}; "
            "set distinct voice languages or voice names"
        )
    return voices


def create_synthesizer(config: Settings = None) -> SpeechSynthesizer:
    """Build the synthesizer selected by TTS_PROVIDER."""
    config = config or default_settings
    provider = config.tts_provider.lower()

    if provider == "google":
        creds_path = config.google_credentials_path or config.google_application_credentials
        if creds_path and os.path.exists(creds_path):
            os.environ.setdefault("GOOGLE_APPLICATION_CREDENTIALS", creds_path)
        synthesizer = GoogleSpeechSynthesizer()
    elif provider == "elevenlabs":
        synthesizer = ElevenLabsSynthesizer(config.elevenlabs_api_key, config.elevenlabs_model_id)
    else:
        raise ValueError(f"Unknown TTS_PROVIDER: {provider!r}. Valid options: google, elevenlabs")

    logger.info(f"TTS provider: {provider} -> {type(synthesizer).__name__}")
    return synthesizer
