import os
from functools import lru_cache
from typing import Any, List

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    """Service configuration, read from the environment (and a local .env)."""

    model_name: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model used by the agent node.",
    )
    temperature: float = 0.7
    max_output_tokens: int = 4096
    max_retries: int = 3

    trim_max_messages: int = Field(
        default=10,
        description="How many trailing messages the agent sees per turn.",
    )

    convex_url: str = Field(
        default="",
        description="Convex deployment URL, e.g. https://happy-otter-123.convex.cloud",
    )
    store_backend: str = Field(
        default="convex",
        description="Chat persistence backend. Options: 'convex' or 'memory'.",
    )

    clerk_issuer_id: str = Field(
        default="",
        description="Clerk frontend API URL; must match the 'iss' claim.",
    )
    clerk_audience: str = Field(
        default="convex",
        description="Expected 'aud' claim of the Clerk JWT template.",
    )

    wxflows_endpoint: str = ""
    wxflows_apikey: str = ""

    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    host: str = "0.0.0.0"
    port: int = 8887

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from upper-cased environment variables."""
        values: dict[str, Any] = {}
        for name in cls.model_fields.keys():
            env_val = os.environ.get(name.upper())
            if env_val is None:
                continue
            if name == "cors_origins":
                values[name] = [o.strip() for o in env_val.split(",") if o.strip()]
            else:
                values[name] = env_val
        return cls(**values)


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
