from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CareerGraphSettings(BaseSettings):
    """Unified configuration for the career graph.

    Environment variables are prefixed with CAREER_GRAPH_.
    """

    model_config = SettingsConfigDict(env_prefix="CAREER_GRAPH_", extra="ignore")

    # --- Core ---
    log_level: str = Field(default="INFO", description="Python logging level")

    # --- Storage ---
    db_path: str = Field(default="~/.career_graph/graph.db")
    require_edge_endpoints: bool = Field(
        default=False, description="Reject edges whose source/target node is missing"
    )

    # --- Matching ---
    match_count: int = Field(default=3, ge=1)
    search_timeout_s: float | None = Field(
        default=None, description="Deadline for fuzzy label scans (seconds)"
    )


settings = CareerGraphSettings()
