"""Runtime settings read from the environment and an optional .env file."""

import os
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel


def _env(*names: str, default: str = "") -> str:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


def _env_bool(name: str) -> bool:
    return os.getenv(name, "false").lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    dataverse_url: str = ""
    token: str = ""
    prefix: str = ""
    schema_file_path: str = ""
    title: str = "Dataverse OData API"
    timeout: float = 30
    verbose: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            dataverse_url=_env("DATAVERSE_URL", "dataverse_url"),
            token=_env("DATAVERSE_TOKEN"),
            prefix=_env("PUBLISHER_PREFIX", "prefix"),
            schema_file_path=_env("SCHEMA_FILE_PATH"),
            title=_env("API_TITLE", default="Dataverse OData API"),
            timeout=float(_env("DATAVERSE_TIMEOUT", default="30")),
            verbose=_env_bool("DATAVERSE_OPENAPI_VERBOSE"),
        )


@lru_cache
def get_settings() -> Settings:
    load_dotenv()
    return Settings.from_env()
