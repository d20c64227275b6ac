"""
Configuration Module - Load and validate application settings.
==============================================================

Loads configuration from:
1. config/settings.yaml (defaults)
2. Environment variables from .env file
3. Environment variables from system

Environment variables override YAML defaults.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urljoin

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file early
load_dotenv()


def _find_project_root() -> Path:
    """Find the project root directory by looking for pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path.cwd()


PROJECT_ROOT = _find_project_root()
CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_CONFIG_FILE = CONFIG_DIR / "settings.yaml"


# ─────────────────────────────────────────────────────────────────────────────
# Nested Configuration Models
# ─────────────────────────────────────────────────────────────────────────────


class CampusConfig(BaseModel):
    """Configuration for a single upstream exam-seating endpoint."""

    name: str
    fetch_address: str
    report_address: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def effective_report_address(self) -> str:
        """Explicit report address, or ``report.php`` next to the submission address."""
        if self.report_address:
            return self.report_address
        return urljoin(self.fetch_address, "report.php")


class FetchConfig(BaseModel):
    """Network settings for campus fetches."""

    timeout: float = 12.0
    retries: int = 1
    retry_backoff: float = 0.5
    polite_delay_min: float = 0.3
    polite_delay_max: float = 0.7
    min_document_length: int = 5000
    session_codes: list[str] = Field(default_factory=lambda: ["FN", "AN"])
    user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


class ExtractionConfig(BaseModel):
    """Heuristics used by the extraction engine."""

    identifier_pattern: str = r"RA\d{10,15}"
    identifier_prefix_pattern: str = r"\bRA\d{2}"
    context_length: int = 150
    context_window: int = 100


class CacheConfig(BaseModel):
    """Seating result cache settings."""

    ttl_seconds: float = 300.0


class AdmissionConfig(BaseModel):
    """Rate limiting and bot heuristics."""

    enabled: bool = True
    window_seconds: float = 60.0
    max_requests: int = 5
    block_seconds: float = 1800.0
    timing_window_seconds: float = 10.0
    timing_max_requests: int = 3
    sequential_window_seconds: float = 300.0
    sequential_run_length: int = 3
    sequential_tail_digits: int = 6
    sweep_interval_seconds: float = 300.0
    blocked_agent_patterns: list[str] = Field(
        default_factory=lambda: [
            "bot",
            "crawler",
            "spider",
            "scraper",
            "curl",
            "wget",
            "python",
            "java",
            "postman",
            "insomnia",
            "httpie",
        ]
    )
    allowed_agent_patterns: list[str] = Field(
        default_factory=lambda: ["googlebot", "bingbot", "slurp"]
    )


class DirectoryConfig(BaseModel):
    """Student directory tiers."""

    primary_url: str = ""
    table: str = "students"
    identifier_column: str = "register_number"
    name_column: str = "name"
    bundled_resource: str = "seat-data.json"
    bundled_paths: list[str] = Field(
        default_factory=lambda: ["public/seat-data.json", "data/seat-data.json"]
    )
    remote_url: str = ""
    fallback_url: str = ""
    timeout: float = 10.0
    retry_attempts: int = 3
    retry_delay: float = 0.5


class EnquiryConfig(BaseModel):
    """Downstream enquiry record sink."""

    enabled: bool = True
    log_file: str = ""


class ApiConfig(BaseModel):
    """HTTP server settings."""

    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = "INFO"
    format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    rich_console: bool = True
    file: str = ""


# ─────────────────────────────────────────────────────────────────────────────
# Main Settings Class
# ─────────────────────────────────────────────────────────────────────────────


class Settings(BaseSettings):
    """
    Main application settings.

    Loads from:
    1. config/settings.yaml (defaults)
    2. Environment variables

    Environment variables override YAML settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Secrets (from environment only)
    directory_api_key: str = Field(default="", validation_alias="DIRECTORY_API_KEY")

    # Top-level environment overrides
    log_level: Optional[str] = Field(default=None, validation_alias="LOG_LEVEL")

    # Nested configurations (from YAML)
    campuses: list[CampusConfig] = Field(default_factory=list)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    admission: AdmissionConfig = Field(default_factory=AdmissionConfig)
    directory: DirectoryConfig = Field(default_factory=DirectoryConfig)
    enquiry: EnquiryConfig = Field(default_factory=EnquiryConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    _project_root: Path = PROJECT_ROOT

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # YAML values arrive as init kwargs; environment must win over them.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @field_validator("directory_api_key", mode="before")
    @classmethod
    def validate_api_key(cls, v: Any) -> str:
        """Allow an empty key; the primary directory tier is then anonymous."""
        if v is None:
            return ""
        return str(v)

    @field_validator("campuses")
    @classmethod
    def validate_unique_campuses(cls, v: list[CampusConfig]) -> list[CampusConfig]:
        names = [c.name for c in v]
        if len(names) != len(set(names)):
            raise ValueError("campus names must be unique")
        return v

    @property
    def project_root(self) -> Path:
        """Get the project root directory."""
        return self._project_root

    def get_campus(self, name: str) -> Optional[CampusConfig]:
        """Get campus configuration by name (case-insensitive)."""
        for campus in self.campuses:
            if campus.name.lower() == name.lower():
                return campus
        return None

    def get_campus_names(self) -> list[str]:
        """Get list of all configured campus names."""
        return [c.name for c in self.campuses]

    def get_effective_log_level(self) -> str:
        """Get the effective log level (env override or config)."""
        if self.log_level:
            return self.log_level.upper()
        return self.logging.level.upper()


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}

    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
        return data if data else {}


def _create_settings(config_path: Optional[Path] = None) -> Settings:
    """Create settings instance by merging YAML defaults with environment."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    yaml_config = _load_yaml_config(config_path)
    return Settings(**yaml_config)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get the singleton settings instance.

    Returns:
        Settings instance with merged configuration

    Example:
        >>> settings = get_settings()
        >>> print(settings.cache.ttl_seconds)
        300.0
    """
    return _create_settings()


def reload_settings() -> Settings:
    """
    Force reload of settings (clears cache).

    Returns:
        Fresh Settings instance
    """
    get_settings.cache_clear()
    return get_settings()
