from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    bot_token: str = Field(validation_alias="BOT_TOKEN")
    openai_api_key: str = Field(validation_alias="OPENAI_API_KEY")

    openai_chat_model: str = Field(default="gpt-4o-mini", validation_alias="OPENAI_CHAT_MODEL")
    openai_image_model: str = Field(default="gpt-image-1", validation_alias="OPENAI_IMAGE_MODEL")
    openai_image_size: str = Field(default="1024x1024", validation_alias="OPENAI_IMAGE_SIZE")
    # Hard timeout for OpenAI requests (seconds)
    openai_timeout_s: int = Field(default=60, validation_alias="OPENAI_TIMEOUT_S")
    chat_max_output_tokens: int = Field(default=700, validation_alias="CHAT_MAX_OUTPUT_TOKENS")
    # How many trailing transcript messages are sent to the model
    transcript_window: int = Field(default=15, validation_alias="TRANSCRIPT_WINDOW")

    db_path: str = Field(default="data/dietcoach.sqlite3", validation_alias="DB_PATH")
    database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

    timezone: str = Field(default="Asia/Kolkata", validation_alias="TIMEZONE")
    # Single-profile bot: when set, only this chat is served
    owner_chat_id: int | None = Field(default=None, validation_alias="OWNER_CHAT_ID")

    reminder_tick_s: int = Field(default=30, validation_alias="REMINDER_TICK_S")
    reminder_window_min: int = Field(default=15, validation_alias="REMINDER_WINDOW_MIN")
    water_intake_gap_min: int = Field(default=90, validation_alias="WATER_INTAKE_GAP_MIN")
    water_reminder_cooldown_min: int = Field(default=60, validation_alias="WATER_REMINDER_COOLDOWN_MIN")

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")


settings = Settings()
