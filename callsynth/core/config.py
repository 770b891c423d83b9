from typing import Optional
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    # Speech synthesis: "google" or "elevenlabs"
    tts_provider: str = "google"
    google_credentials_path: Optional[str] = None
    google_application_credentials: Optional[str] = None
    agent_voice_language: str = "en-US"
    customer_voice_language: str = "en-GB"
    google_agent_voice_name: Optional[str] = None
    google_customer_voice_name: Optional[str] = None

    # ElevenLabs
    elevenlabs_api_key: Optional[str] = None
    elevenlabs_model_id: str = "eleven_multilingual_v2"
    elevenlabs_agent_voice_id: str = "21m00Tcm4TlvDq8ikWAM"
    elevenlabs_customer_voice_id: str = "zT03pEAEi0VHKciJODfn"

    # Optional: ffmpeg/ffprobe overrides for Windows
    ffmpeg_path: Optional[str] = None
    ffprobe_path: Optional[str] = None

    # Call audio
    audio_work_dir: str = "audio_processing"
    call_output_dir: str = "data/call_stream"
    tickets_dir: str = "data/test_convos_tickets"
    audio_format: str = "mp3"
    synthesis_concurrency: int = 4

    # Evaluation platform
    evaluagent_api_url: str = "https://api.evaluagent.com/v1"
    evaluagent_api_key: Optional[str] = None
    reference_log_path: str = "contact-reference-log.json"


settings = Settings()
