"""
Runtime settings for the backend, CLI and MCP server.

Values come from `ERD_*` environment variables or a local `.env` file.
Geometry used by layout and routing stays as module constants in those
modules; only deployment knobs live here.
"""

import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    host: str = "127.0.0.1"
    port: int = 8765
    log_level: str = "INFO"
    log_json: bool = False
    edge_color: str = "#888888"
    diagrams_dir: str = Field(default_factory=lambda: os.path.expanduser("~/diagrams"))
    route_workers: int = Field(default=1, ge=1, description="Threads used to route edges in parallel.")
    max_history: int = 100

    model_config = SettingsConfigDict(
        env_prefix="ERD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def api_base(self) -> str:
        return f"http://{self.host}:{self.port}/api"


settings = Settings()
