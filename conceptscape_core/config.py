"""Configuration for the Conceptscape pipeline and proxy service."""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service settings
    service_name: str = "conceptscape"
    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = 3001
    debug: bool = False
    log_level: str = "INFO"
    log_format: Literal["json", "pretty"] = "pretty"
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"]
    )

    # Deepgram settings
    deepgram_api_key: str = Field(default="", description="Deepgram API key")
    deepgram_model: str = "nova-2"
    deepgram_language: str = "en-US"
    deepgram_smart_format: bool = True
    deepgram_interim_results: bool = True
    deepgram_vad_events: bool = True
    deepgram_utterance_end_ms: int = 1500  # Less twitchy than 1000
    deepgram_endpointing: int = 300

    # Audio capture
    capture_blocksize: int = 4096
    capture_device: Optional[str] = None

    # Gemini settings
    gemini_api_key: str = Field(default="", description="Google Gemini API key")
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_content_model: str = "gemini-2.0-flash"
    gemini_image_models: List[str] = Field(
        default_factory=lambda: [
            "gemini-2.5-flash-image",
            "gemini-2.0-flash-exp-image-generation",
        ]
    )
    gemini_timeout: float = 60.0

    # World Labs (Marble) conversion provider
    worldlabs_api_key: str = Field(default="", description="World Labs API key")
    worldlabs_base_url: str = "https://api.worldlabs.ai"
    conversion_poll_interval: float = 5.0
    conversion_max_attempts: int = 120  # 10 minutes at 5s
    conversion_max_transport_failures: int = 5
    conversion_request_timeout: float = 60.0
    max_upload_bytes: int = 10 * 1024 * 1024

    # Client-side gateway
    conversion_proxy_url: str = "http://localhost:3001/api/convert"
    conversion_proxy_timeout: float = 660.0

    # Scene catalog
    catalog_path: Optional[str] = None
    local_asset_namespace: str = "/scenes/"
    local_asset_base_url: str = "http://localhost:5173"
    min_cache_asset_bytes: int = 100
    demo_asset_url: str = "https://sparkjs.dev/assets/splats/butterfly.spz"

    # ElevenLabs narration
    elevenlabs_api_key: str = Field(default="", description="ElevenLabs API key")
    elevenlabs_voice_id: str = "21m00Tcm4TlvDq8ikWAM"  # Rachel - calm, friendly
    elevenlabs_model: str = "eleven_monolingual_v1"
    narration_enabled: bool = False
    narration_words_per_second: float = 2.5

    # Background pipeline jobs
    pipeline_job_ttl: float = 3600.0  # seconds a finished job stays queryable
    pipeline_max_jobs: int = 1000


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
