# ltn/core/config.py
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables (.env file).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    LOG_LEVEL: str = "INFO"

    # Half-width (metres) of the box searched around a clicked point
    CLOSEST_ROAD_SEARCH_RADIUS_M: float = 50.0

    # Fallback when neither maxspeed nor the highway type gives a speed
    DEFAULT_SPEED_MPH: int = 30

    # Highway types that the main-road penalty applies to
    MAIN_ROAD_HIGHWAY_TYPES: List[str] = [
        "motorway",
        "motorway_link",
        "trunk",
        "trunk_link",
        "primary",
        "primary_link",
        "secondary",
        "secondary_link",
        "tertiary",
        "tertiary_link",
    ]

    # barrier=* values that don't turn into existing modal filters
    IGNORED_BARRIER_KINDS: List[str] = ["gate"]


settings = Settings()
