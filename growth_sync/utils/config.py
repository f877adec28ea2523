"""
Configuration Management

Loads configuration from YAML files with environment variable resolution.
"""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field


class FrozenModel(BaseModel):
    """Configuration sections are immutable once loaded."""
    model_config = ConfigDict(frozen=True)


class RateLimitConfig(FrozenModel):
    """Pauses (seconds) and retry limits applied to every vendor call."""
    pause_between_pages: float = 2.0
    pause_between_accounts: float = 3.0
    pause_between_items: float = 0.6
    pause_after_enrichment: float = 1.5
    pause_after_429: float = 5.0
    pause_every_n_inserts: int = 10
    pause_insert_batch: float = 1.0
    max_retries: int = 2

    @classmethod
    def no_wait(cls, **overrides: Any) -> "RateLimitConfig":
        """Zero-pause variant for tests and dry runs."""
        values = {
            "pause_between_pages": 0.0,
            "pause_between_accounts": 0.0,
            "pause_between_items": 0.0,
            "pause_after_enrichment": 0.0,
            "pause_after_429": 0.0,
            "pause_insert_batch": 0.0,
        }
        values.update(overrides)
        return cls(**values)


class PaginationConfig(FrozenModel):
    """Page sizes and hard page ceilings per job."""
    page_size: int = 10
    max_pages_profile_views: int = 10
    max_pages_connections: int = 10
    max_pages_search: int = 10
    chat_page_size: int = 100
    max_pages_chats: int = 10
    max_pages_messages: int = 10


class UnipileConfig(FrozenModel):
    """Unipile LinkedIn proxy settings."""
    base_url: str = "https://api1.unipile.com:13111/api/v1"
    api_key_env: str = "UNIPILE_API_KEY"
    timeout_seconds: float = 30.0

    def get_api_key(self) -> Optional[str]:
        return os.environ.get(self.api_key_env)


class SupabaseConfig(FrozenModel):
    """Supabase (PostgREST) backing store settings."""
    url: Optional[str] = None
    key_env: str = "SUPABASE_KEY"
    timeout_seconds: float = 30.0

    def get_key(self) -> Optional[str]:
        return os.environ.get(self.key_env)


class EnrichConfig(FrozenModel):
    """Profile enrichment edge function settings."""
    url: Optional[str] = None
    token_env: str = "ENRICH_TOKEN"
    timeout_seconds: float = 60.0

    def get_token(self) -> Optional[str]:
        return os.environ.get(self.token_env)


class SlackConfig(FrozenModel):
    """Slack incoming webhook URLs, read from the environment."""
    error_webhook_env: str = "SLACK_WEBHOOK_SCRIPT_LOGS"
    success_webhook_env: str = "SLACK_WEBHOOK_SUCCESS"
    timeout_seconds: float = 10.0

    def get_error_webhook(self) -> Optional[str]:
        return os.environ.get(self.error_webhook_env) or None

    def get_success_webhook(self) -> Optional[str]:
        return os.environ.get(self.success_webhook_env) or None


class LLMConfig(FrozenModel):
    """LLM provider configuration."""
    provider: str = "anthropic"
    models: dict[str, str] = Field(default_factory=lambda: {
        "anthropic": "claude-sonnet-4-20250514",
    })
    api_key_env: dict[str, str] = Field(default_factory=lambda: {
        "anthropic": "ANTHROPIC_API_KEY",
    })
    timeout_seconds: int = 30

    def get_api_key(self, provider: Optional[str] = None) -> Optional[str]:
        """Get API key from environment variable."""
        provider = provider or self.provider
        env_var = self.api_key_env.get(provider)
        if env_var:
            return os.environ.get(env_var)
        return None

    def get_model(self, provider: Optional[str] = None) -> str:
        """Get model name for provider."""
        provider = provider or self.provider
        return self.models.get(provider, self.models["anthropic"])


class SavedSearchConfig(FrozenModel):
    """One Sales Navigator saved search scraped by a strategic job."""
    key: str
    name: str
    saved_search_url: str
    saved_search_id: Optional[str] = None
    ghost_genius_account_id: Optional[str] = None


class StrategicJobConfig(FrozenModel):
    """Saved searches for one strategic job."""
    ghost_genius_account_id: Optional[str] = None
    searches: list[SavedSearchConfig] = Field(default_factory=list)


class FreshnessTableConfig(FrozenModel):
    """A table monitored by the data freshness check."""
    name: str
    date_column: str = "created_at"
    label: Optional[str] = None


class FreshnessConfig(FrozenModel):
    """Data freshness check configuration."""
    history_days: int = 30
    tables: list[FreshnessTableConfig] = Field(default_factory=lambda: [
        FreshnessTableConfig(name="PRC_INTENT_EVENTS", date_column="EVENT_RECORDED_ON"),
        FreshnessTableConfig(name="scrapped_visit"),
        FreshnessTableConfig(name="scrapped_reaction"),
        FreshnessTableConfig(name="scrapped_linkedin_messages", label="messages"),
        FreshnessTableConfig(name="scrapped_linkedin_threads", date_column="updated_at", label="threads"),
    ])


class MessagesJobConfig(FrozenModel):
    """Inbox import window."""
    lookback_hours: float = 24


class JobsConfig(FrozenModel):
    """Per-job data: saved searches and monitored tables."""
    strategic_connections: StrategicJobConfig = Field(default_factory=StrategicJobConfig)
    strategic_people: StrategicJobConfig = Field(default_factory=StrategicJobConfig)
    freshness: FreshnessConfig = Field(default_factory=FreshnessConfig)
    linkedin_messages: MessagesJobConfig = Field(default_factory=MessagesJobConfig)


class LoggingConfig(FrozenModel):
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None


class Config(FrozenModel):
    """Root configuration object."""
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    pagination: PaginationConfig = Field(default_factory=PaginationConfig)
    unipile: UnipileConfig = Field(default_factory=UnipileConfig)
    supabase: SupabaseConfig = Field(default_factory=SupabaseConfig)
    enrich: EnrichConfig = Field(default_factory=EnrichConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    jobs: JobsConfig = Field(default_factory=JobsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _resolve_env_vars(data: Any) -> Any:
    """Recursively resolve environment variables in config values.

    Supports ${VAR_NAME} and ${VAR_NAME:-default} syntax.
    """
    if isinstance(data, str):
        if data.startswith("${") and data.endswith("}"):
            var_expr = data[2:-1]
            if ":-" in var_expr:
                var_name, default = var_expr.split(":-", 1)
                return os.environ.get(var_name, default)
            return os.environ.get(var_expr, data)
        return data
    elif isinstance(data, dict):
        return {k: _resolve_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars(item) for item in data]
    return data


def load_config(
    config_path: Optional[Path] = None,
    local_config_path: Optional[Path] = None,
) -> Config:
    """Load configuration from YAML files.

    Args:
        config_path: Path to main config file (default: config.yaml)
        local_config_path: Path to local overrides (default: config.local.yaml)

    Returns:
        Merged and validated Config object
    """
    project_root = Path(__file__).parent.parent.parent

    if config_path is None:
        config_path = project_root / "config.yaml"
    if local_config_path is None:
        local_config_path = project_root / "config.local.yaml"

    config_data: dict[str, Any] = {}

    if config_path.exists():
        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}

    if local_config_path.exists():
        with open(local_config_path) as f:
            local_data = yaml.safe_load(f) or {}
            config_data = _deep_merge(config_data, local_data)

    config_data = _resolve_env_vars(config_data)

    return Config(**config_data)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
