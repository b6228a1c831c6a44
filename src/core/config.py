from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
import os


class Settings(BaseSettings):
    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = Field(
        None,
        description="Path to the Firebase service account key JSON file. "
        "Application default credentials are used when unset.",
    )

    # Expo push service
    EXPO_PUSH_URL: str = Field(
        "https://exp.host/--/api/v2/push/send",
        description="Expo push send endpoint",
    )
    EXPO_ACCESS_TOKEN: Optional[str] = Field(
        None, description="Optional Expo access token, sent as a bearer token"
    )
    EXPO_PUSH_CHUNK_SIZE: int = Field(
        100, gt=0, description="Maximum number of recipients per push request"
    )
    EXPO_PUSH_TIMEOUT_SECONDS: float = Field(
        10.0, gt=0, description="Timeout for a single push request"
    )
    EXPO_PUSH_MAX_CONCURRENT_CHUNKS: int = Field(
        4, gt=0, description="How many chunks may be in flight at once"
    )

    PARTICIPANTS_BACKFILL_ENABLED: bool = Field(
        False, description="Enables the one-shot participants counter backfill endpoint"
    )

    LOG_LEVEL: str = Field("INFO", description="Root logging level")

    # The .env file is looked up in the project root.
    model_config = SettingsConfigDict(
        env_file=os.path.join(
            os.path.dirname(
                os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
            ),
            ".env",
        ),
        extra="ignore",
    )


# Instantiate the settings
settings = Settings()
