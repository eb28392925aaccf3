"""Application configuration loaded from environment variables."""

import os
from typing import Optional
from pydantic import BaseModel, Field


DEFAULT_CACHE_DIR = os.path.join(os.path.expanduser("~"), ".remindersync")


class AppConfig(BaseModel):
    """Runtime settings for the sync engine and its collaborators."""
    supabase_url: Optional[str] = Field(None, description="Supabase project URL")
    supabase_key: Optional[str] = Field(None, description="Supabase anon (public) key")
    cache_dir: str = Field(default=DEFAULT_CACHE_DIR, description="Directory for on-device snapshots")
    reconcile_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Seconds between reconciliation passes"
    )
    llm_provider: str = Field(default="anthropic", description="anthropic or openai")
    llm_model: str = Field(default="claude-sonnet-4-20250514", description="Chat model name")

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Build config from the current process environment."""
        return cls(
            supabase_url=os.environ.get("SUPABASE_URL"),
            supabase_key=os.environ.get("SUPABASE_ANON_KEY") or os.environ.get("SUPABASE_KEY"),
            cache_dir=os.environ.get("REMINDERSYNC_CACHE_DIR", DEFAULT_CACHE_DIR),
            reconcile_interval_seconds=float(os.environ.get("RECONCILE_INTERVAL_SECONDS", "30")),
            llm_provider=os.environ.get("LLM_PROVIDER", "anthropic").lower(),
            llm_model=os.environ.get("LLM_MODEL", "claude-sonnet-4-20250514"),
        )
