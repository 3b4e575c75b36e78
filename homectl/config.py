"""
HomeCtl - Configuration
"""
from typing import Dict, List

from pydantic import Field
from pydantic_settings import BaseSettings


DEFAULT_AREA_LABELS = {
    "mainhall": "main hall",
    "bedroom1": "bedroom 1",
    "bedroom2": "bedroom 2",
    "kitchen": "kitchen",
}


def _default_devices() -> Dict[str, Dict[str, List[str]]]:
    return {
        "mainhall": {
            "light": ["mainhall-light-1", "mainhall-light-2"],
            "fan": ["mainhall-fan-1"],
            "ac": ["mainhall-ac-1"],
        },
        "bedroom1": {
            "light": ["bedroom1-light-1"],
            "fan": ["bedroom1-fan-1"],
            "ac": ["bedroom1-ac-1"],
        },
        "bedroom2": {
            "light": ["bedroom2-light-1"],
            "fan": ["bedroom2-fan-1"],
            "ac": ["bedroom2-ac-1"],
        },
        "kitchen": {
            "light": ["kitchen-light-1"],
            "fan": [],
            "ac": [],
        },
    }


class HomeSettings(BaseSettings):
    """HomeCtl Configuration."""

    # ---- Server ----
    APP_NAME: str = "HomeCtl"
    APP_VERSION: str = "1.0.0"
    HOST: str = "0.0.0.0"
    PORT: int = 8100

    # ---- Paths ----
    DATA_DIR: str = "./homectl_data"
    LOGS_DIR: str = "./homectl_data/logs"
    LOG_LEVEL: str = "INFO"

    # ---- Storage ----
    STORAGE_BACKEND: str = "json"  # json, sql (durable) or memory
    DATABASE_URL: str = "sqlite+aiosqlite:///./homectl_data/homectl.db"
    DATABASE_ECHO: bool = False

    # ---- House Layout ----
    AREAS: List[str] = Field(default_factory=lambda: ["mainhall", "bedroom1", "bedroom2", "kitchen"])
    AREA_LABELS: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_AREA_LABELS))
    DOORS: List[str] = Field(default_factory=lambda: ["mainhall", "bedroom1", "bedroom2", "kitchen"])
    DEVICES: Dict[str, Dict[str, List[str]]] = Field(default_factory=_default_devices)

    # ---- Door Audit ----
    DOOR_EVENT_LOG_SIZE: int = 200

    # ---- Remote Device-State API ----
    REMOTE_API_BASE: str = ""  # empty = local-only mode
    REMOTE_TIMEOUT: float = 5.0

    # ---- Assistant ----
    CONVERSATION_HISTORY_SIZE: int = 50

    class Config:
        env_file = ".env"
        env_prefix = "HOMECTL_"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = HomeSettings()
