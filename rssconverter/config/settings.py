"""
RSS Converter Configuration System
==================================

Configuration management with Pydantic models. Values are merged from, in
order of precedence: constructor arguments, the short legacy environment
variables (``RSS_SOURCE_URL``, ``SERVER_PORT``...), ``RSS_CONVERTER_``
prefixed environment variables, the ``.env`` file, a TOML config file and
finally the Field defaults.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

from ..conversion.rules import DEFAULT_PRIORITY, TitleConverter, TitleRule, build_converter, default_rules
from ..utils.exceptions import ConfigurationError, ErrorCode, RSSConverterError
from ..utils.validators import URLValidator

CONFIG_FILE_ENV = "RSS_CONVERTER_CONFIG"
DEFAULT_CONFIG_FILE = "config.toml"
EXAMPLE_CONFIG_FILE = Path(__file__).parent / "example_config.toml"


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ServerSettings(BaseModel):
    """HTTP listener configuration."""
    host: str = Field(default="127.0.0.1", description="Interface to bind")
    port: int = Field(default=3030, ge=1, le=65535, description="TCP port to listen on")
    feed_path: str = Field(default="/rss.xml", description="Path serving the converted feed")
    health_path: str = Field(default="/health", description="Liveness endpoint path")

    @field_validator("feed_path", "health_path")
    @classmethod
    def validate_path(cls, v):
        """Ensure route paths are absolute."""
        if not v.startswith("/"):
            raise ValueError("route paths must start with '/'")
        return v


class RssSettings(BaseModel):
    """Upstream feed configuration."""
    source_url: str = Field(..., description="URL of the feed to convert")
    request_timeout: int = Field(default=30, ge=1, le=300, description="Upstream request timeout in seconds")
    max_feed_bytes: int = Field(
        default=10 * 1024 * 1024, ge=1024, description="Largest upstream body accepted"
    )
    user_agent: str = Field(
        default="rss-converter/0.3 (+https://github.com/arrs/rss-converter)",
        description="User-Agent sent upstream",
    )

    @field_validator("source_url")
    @classmethod
    def validate_source_url(cls, v):
        """Validate the upstream feed URL."""
        try:
            return URLValidator.validate_feed_url(v)
        except RSSConverterError as e:
            raise ValueError(e.user_message) from e


class ConversionSettings(BaseModel):
    """Title conversion configuration."""
    default_priority: int = Field(
        default=DEFAULT_PRIORITY, description="Priority of rules that do not set one"
    )
    item_tag: str = Field(default="item", min_length=1, description="Element holding one feed entry")
    title_tag: str = Field(default="title", min_length=1, description="Title element inside an entry")
    rules: List[TitleRule] = Field(
        default_factory=default_rules, description="Conversion rules, first match wins"
    )


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default=None, description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v):
        """Accept lower-case level names such as ``info``."""
        return v.upper() if isinstance(v, str) else v


class LegacyEnvSettingsSource(PydanticBaseSettingsSource):
    """Short environment variable names understood by earlier deployments."""

    VARIABLES: Dict[str, Tuple[str, str]] = {
        "RSS_SOURCE_URL": ("rss", "source_url"),
        "SERVER_HOST": ("server", "host"),
        "SERVER_PORT": ("server", "port"),
        "CONVERSION_DEFAULT_PRIORITY": ("conversion", "default_priority"),
        "LOGGING_LEVEL": ("logging", "level"),
    }

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        # Values are produced section by section in __call__
        return None, field_name, False

    def __call__(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for variable, (section, key) in self.VARIABLES.items():
            value = os.environ.get(variable)
            if value:
                data.setdefault(section, {})[key] = value
        return data


def config_file_path() -> Path:
    """TOML file consulted for settings, overridable via ``RSS_CONVERTER_CONFIG``."""
    return Path(os.getenv(CONFIG_FILE_ENV, DEFAULT_CONFIG_FILE))


class RSSConverterSettings(BaseSettings):
    """Main application settings."""

    server: ServerSettings = Field(default_factory=ServerSettings)
    rss: RssSettings
    conversion: ConversionSettings = Field(default_factory=ConversionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="RSS Converter", description="Application name")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        env_prefix="RSS_CONVERTER_",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            LegacyEnvSettingsSource(settings_cls),
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls, toml_file=config_file_path()),
        )

    def build_converter(self) -> TitleConverter:
        """Compile the configured rules into a frozen converter.

        Raises:
            ConfigurationError: If any rule is invalid
        """
        return build_converter(
            self.conversion.rules, default_priority=self.conversion.default_priority
        )

    def validate_configuration(self) -> None:
        """Validate complete configuration."""
        errors = []

        try:
            self.build_converter()
        except ConfigurationError as e:
            errors.append(str(e))

        if self.logging.file_path:
            try:
                log_path = Path(self.logging.file_path)
                log_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID,
            )

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> RSSConverterSettings:
    """Load settings from environment variables, files and defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is missing or invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    explicit_config = os.getenv(CONFIG_FILE_ENV)
    if explicit_config and not Path(explicit_config).is_file():
        raise ConfigurationError(
            f"Config file not found: {explicit_config}",
            config_key=CONFIG_FILE_ENV,
            error_code=ErrorCode.CONFIG_MISSING,
        )

    try:
        settings = RSSConverterSettings()
    except PydanticValidationError as e:
        missing = any(err["type"] == "missing" for err in e.errors())
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_MISSING if missing else ErrorCode.CONFIG_INVALID,
        ) from e
    except ValueError as e:
        raise ConfigurationError(
            f"Failed to parse configuration: {e}",
            error_code=ErrorCode.CONFIG_PARSE_ERROR,
        ) from e

    settings.validate_configuration()
    return settings


_settings: Optional[RSSConverterSettings] = None


def get_settings(reload: bool = False) -> RSSConverterSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
