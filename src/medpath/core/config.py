"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class GraphConfig(BaseSettings):
    """Graph store defaults."""

    model_config = {"env_prefix": "MEDPATH_GRAPH_"}

    default_hospital_beds: int = 20
    weight_scale: float = 10.0


class RoutingConfig(BaseSettings):
    """Shortest-path cache configuration."""

    model_config = {"env_prefix": "MEDPATH_ROUTING_"}

    cache_enabled: bool = True
    max_cached_sources: int = 256


class ReferralConfig(BaseSettings):
    """Referral workflow policy."""

    model_config = {"env_prefix": "MEDPATH_REFERRAL_"}

    revalidate_on_approve: bool = True


class AuditConfig(BaseSettings):
    """Audit logging configuration."""

    model_config = {"env_prefix": "MEDPATH_AUDIT_"}

    enabled: bool = True
    log_dir: str = "data/audit"


class DBConfig(BaseSettings):
    """Database configuration. Leave ``database_url`` unset for in-memory stores."""

    model_config = {"env_prefix": "MEDPATH_DB_"}

    database_url: str | None = None
    echo: bool = False
    pool_size: int = 5


class Settings(BaseSettings):
    """Root application settings."""

    model_config = {"env_prefix": "MEDPATH_"}

    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    graph: GraphConfig = Field(default_factory=GraphConfig)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    referral: ReferralConfig = Field(default_factory=ReferralConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    db: DBConfig = Field(default_factory=DBConfig)
