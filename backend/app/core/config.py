from functools import lru_cache
import json
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_list_value(value: str) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        raw = value.strip()
        if raw == "":
            return []
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, list):
                return [str(item).strip() for item in parsed if str(item).strip()]
        except ValueError:
            pass
        return [item.strip() for item in raw.split(",") if item.strip()]
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="forbid",
        validate_by_name=True,
        populate_by_name=True,
    )
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: str = ""
    supabase_jwt_secret: str = ""
    supabase_jwt_audience: str = "authenticated"
    database_url: str = ""
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("ENVIRONMENT", "APP_ENV"),
    )

    docs_enabled: bool = Field(default=True)
    openapi_enabled: bool = Field(default=True)
    expose_error_details: bool = False

    # --- Room scan: feature + provider ---
    enable_room_scan: bool = Field(
        default=True,
        validation_alias=AliasChoices("ENABLE_ROOM_SCAN", "INVENTORY_ROOM_SCAN_ENABLED"),
    )
    room_scan_provider: str = "gemini"
    gemini_api_key: str = ""
    gemini_api_base: str = "https://generativelanguage.googleapis.com/v1beta"
    room_scan_model_override: str = ""
    room_scan_fallback_models_raw: str = Field(
        default="gemini-2.0-flash,gemini-1.5-flash",
        validation_alias=AliasChoices("ROOM_SCAN_FALLBACK_MODELS"),
    )
    room_scan_timeout_seconds: float = 60.0
    room_scan_temperature: float = 0.2
    room_scan_max_output_tokens: int = 1200

    # --- Room scan: retry/backoff ---
    room_scan_max_attempts: int = 4
    room_scan_backoff_base_ms: int = 500
    room_scan_backoff_max_ms: int = 8000
    room_scan_backoff_jitter_ms: int = 150

    # --- Room scan: usage caps ---
    room_scan_max_scans_per_user_per_day: int = 6
    room_scan_max_scans_per_property_per_day: int = 20
    room_scan_disable_daily_caps: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "ROOM_SCAN_DISABLE_DAILY_CAPS",
            "INVENTORY_ROOM_SCAN_DISABLE_DAILY_CAPS",
        ),
    )

    # --- Room scan: uploads + preprocessing ---
    room_scan_max_images: int = 10
    room_scan_max_image_mb: int = 8
    room_scan_target_width: int = 1024
    room_scan_jpeg_quality: int = 72
    room_scan_session_ttl_days: int = 7

    room_scan_duplicate_matching_enabled: bool = True

    # --- Room scan: optional archival ---
    room_scan_store_images: bool = Field(
        default=False,
        validation_alias=AliasChoices("ROOM_SCAN_STORE_IMAGES", "INVENTORY_ROOM_SCAN_STORE_IMAGES"),
    )
    room_scan_storage_bucket: str = "room-scans"
    room_scan_storage_prefix: str = "inventory-room-scan"

    cors_allow_origins: list[str] = Field(default_factory=list)
    cors_allow_methods: list[str] = Field(default_factory=lambda: [
        "GET",
        "POST",
        "OPTIONS",
    ])
    cors_allow_headers: list[str] = Field(default_factory=lambda: [
        "Authorization",
        "Content-Type",
        "Accept",
    ])

    @field_validator(
        "cors_allow_origins",
        "cors_allow_methods",
        "cors_allow_headers",
        mode="before",
    )
    @classmethod
    def _split_csv(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            if value.strip() == "":
                return []
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @property
    def room_scan_fallback_models(self) -> list[str]:
        return _parse_list_value(self.room_scan_fallback_models_raw)

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() in {"production", "prod"}

@lru_cache

def get_settings() -> Settings:
    return Settings()
