from __future__ import annotations

import os
from pathlib import Path

APP_VERSION = "1.4.0"

_PACKAGE_DIR = Path(__file__).resolve().parent


class Settings:
    PROJECT_NAME: str = "Camunda Form Generator"
    API_V1_PREFIX: str = "/api/v1"

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    ALLOWED_ORIGINS: list[str] = [
        o.strip()
        for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:5173").split(",")
        if o.strip()
    ]

    # Directory holding START_NODE.form and TASK_NODE.form
    FORM_TEMPLATE_DIR: str = os.getenv("FORM_TEMPLATE_DIR", str(_PACKAGE_DIR / "templates"))
    FORM_SCHEMA_VERSION: int = int(os.getenv("FORM_SCHEMA_VERSION", "4"))

    GENERATE_RATE_LIMIT: str = os.getenv("GENERATE_RATE_LIMIT", "30/minute")


settings = Settings()
