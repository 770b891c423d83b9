import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest

from callsynth.core.config import Settings
from callsynth.models.transcript import SpeakerRole
from callsynth.services.text_to_speech import (
    ElevenLabsSynthesizer,
    GoogleSpeechSynthesizer,
    VoiceProfile,
    create_synthesizer,
    voice_profiles,
)


def test_voice_profiles_are_fixed_per_role():
    config = Settings(tts_provider="google", agent_voice_language="en-US", customer_voice_language="en-GB")

    voices = voice_profiles(config)

    assert voices[SpeakerRole.AGENT].language_code == "en-US"
    assert voices[SpeakerRole.CUSTOMER].language_code == "en-GB"
    assert voices[SpeakerRole.AGENT].voice_id is None


def test_elevenlabs_profiles_carry_distinct_voice_ids():
    config = Settings(
        tts_provider="elevenlabs",
        elevenlabs_agent_voice_id="agent-voice",
        elevenlabs_customer_voice_id="customer-voice",
    )

    voices = voice_profiles(config)

    assert voices[SpeakerRole.AGENT].voice_id == "agent-voice"
    assert voices[SpeakerRole.CUSTOMER].voice_id == "customer-voice"


def test_google_profiles_carry_configured_voice_names():
    config = Settings(
        tts_provider="google",
        agent_voice_language="en-GB",
        customer_voice_language="en-GB",
        google_agent_voice_name="en-GB-Neural2-B",
        google_customer_voice_name="en-GB-Neural2-C",
    )

    voices = voice_profiles(config)

    assert voices[SpeakerRole.AGENT].voice_id == "en-GB-Neural2-B"
    assert voices[SpeakerRole.CUSTOMER].voice_id == "en-GB-Neural2-C"


def test_identical_role_voices_are_rejected():
    config = Settings(tts_provider="google", agent_voice_language="en-US", customer_voice_language="en-US")

    with pytest.raises(ValueError, match="share the voice"):
        voice_profiles(config)


def test_unknown_provider_is_rejected():
    with pytest.raises(ValueError, match="Unknown TTS_PROVIDER"):
        create_synthesizer(Settings(tts_provider="festival"))


def test_elevenlabs_writes_response_audio(tmp_path):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers["xi-api-key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=b"ID3mp3-bytes")

    synthesizer = ElevenLabsSynthesizer("secret", transport=httpx.MockTransport(handler))
    voice = VoiceProfile(name="customer", language_code="en-GB", voice_id="voice-123")
    output = tmp_path / "message_0_customer_raw.mp3"

    asyncio.run(synthesizer.synthesize("Where is my order?", voice, output))

    assert output.read_bytes() == b"ID3mp3-bytes"
    assert seen["url"].endswith("/text-to-speech/voice-123")
    assert seen["key"] == "secret"
    assert seen["body"]["text"] == "Where is my order?"


def test_elevenlabs_error_status_raises(tmp_path):
    transport = httpx.MockTransport(lambda request: httpx.Response(401, text="invalid api key"))
    synthesizer = ElevenLabsSynthesizer("bad", transport=transport)
    voice = VoiceProfile(name="agent", language_code="en-US", voice_id="v")
    output = tmp_path / "out.mp3"

    with pytest.raises(RuntimeError, match="401"):
        asyncio.run(synthesizer.synthesize("Hello", voice, output))
    assert not output.exists()


def test_elevenlabs_requires_api_key():
    with pytest.raises(RuntimeError, match="ELEVENLABS_API_KEY"):
        ElevenLabsSynthesizer("")


def test_google_synthesizer_uses_voice_language(tmp_path):
    requests = []

    class FakeClient:
        def synthesize_speech(self, input, voice, audio_config):
            requests.append((input.text, voice.language_code))
            return SimpleNamespace(audio_content=b"mp3-audio")

    synthesizer = GoogleSpeechSynthesizer(client=FakeClient())
    output = tmp_path / "message_1_agent_raw.mp3"

    asyncio.run(synthesizer.synthesize("Thanks for waiting", VoiceProfile(name="agent", language_code="en-US"), output))

    assert requests == [("Thanks for waiting", "en-US")]
    assert output.read_bytes() == b"mp3-audio"
