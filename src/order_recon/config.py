"""Configuration loader and validation for reconciliation settings."""

from pathlib import Path
from typing import Any, Literal, Optional
import logging

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

POS_SIDE = "pos"
SOURCE_SIDE = "source"


class PlatformProfile(BaseModel):
    """Column mapping and parsing hints for one platform's export."""

    side: Literal["pos", "source"]
    display_name: str = ""
    column_mappings: dict[str, str] = Field(default_factory=dict)
    date_formats: list[str] = Field(
        default_factory=lambda: [
            "%Y-%m-%d",
            "%Y-%m-%d %H:%M:%S",
            "%Y-%m-%d %H:%M",
            "%d-%m-%Y",
            "%d/%m/%Y",
            "%d/%m/%Y %H:%M",
            "%d-%m-%Y %H:%M:%S",
        ]
    )
    dayfirst: bool = True
    sheet_name: Optional[str] = None

    @field_validator("column_mappings")
    @classmethod
    def _require_amount_and_date(cls, value: dict[str, str]) -> dict[str, str]:
        missing = [key for key in ("amount", "date") if key not in value]
        if missing:
            raise ValueError(f"column_mappings missing required keys: {missing}")
        return value


class ToleranceConfig(BaseModel):
    """Amount tolerance shared by the probable, grouped and midnight stages."""

    amount: Optional[float] = 10.0
    percent: Optional[float] = 5.0
    combine: Literal["min", "max"] = "min"

    @field_validator("amount", "percent")
    @classmethod
    def _non_negative(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value < 0:
            raise ValueError("tolerance bounds must be non-negative")
        return value


class StageConfig(BaseModel):
    """Toggle for an optional matching stage."""

    enabled: bool = True


class GroupedConfig(StageConfig):
    """Bounded subset-sum search settings."""

    min_group_size: int = 2
    max_group_size: int = 5

    @model_validator(mode="after")
    def _check_sizes(self) -> "GroupedConfig":
        if self.min_group_size < 2:
            raise ValueError("min_group_size must be at least 2")
        if self.max_group_size < self.min_group_size:
            raise ValueError("max_group_size must be >= min_group_size")
        return self


class MidnightConfig(StageConfig):
    """Date-shifted matching settings."""

    max_day_offset: int = 1

    @field_validator("max_day_offset")
    @classmethod
    def _only_one_day(cls, value: int) -> int:
        if value != 1:
            raise ValueError("midnight matching only supports a one-day offset")
        return value


class MatchingConfig(BaseModel):
    """Configuration for matching engine."""

    tolerance: ToleranceConfig = Field(default_factory=ToleranceConfig)
    probable: StageConfig = Field(default_factory=StageConfig)
    grouped: GroupedConfig = Field(default_factory=GroupedConfig)
    midnight: MidnightConfig = Field(default_factory=MidnightConfig)


class EngineConfig(BaseModel):
    """Execution settings for a reconciliation run."""

    max_workers: int = 1
    timeout_seconds: Optional[float] = None

    @field_validator("max_workers")
    @classmethod
    def _positive_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_workers must be at least 1")
        return value

    @field_validator("timeout_seconds")
    @classmethod
    def _positive_timeout(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value <= 0:
            raise ValueError("timeout_seconds must be positive")
        return value


class SheetConfig(BaseModel):
    """Configuration for a report sheet."""

    enabled: bool = True
    name: str


class SheetsConfig(BaseModel):
    """Configuration for all report sheets."""

    summary: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Summary"))
    matched: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Matched Orders"))
    probable: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Probable Matches"))
    grouped: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Grouped Matches"))
    midnight: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Midnight Matches"))
    pos_only: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Unmatched in POS"))
    source_only: SheetConfig = Field(
        default_factory=lambda: SheetConfig(name="Unmatched in Source")
    )


class OutputConfig(BaseModel):
    """Configuration for output."""

    json_filename_template: str = "reconciliation_{date}_{time}.json"
    currency_symbol: str = "₹"
    sheets: SheetsConfig = Field(default_factory=SheetsConfig)


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None


class ReconConfig(BaseModel):
    """Main configuration model for reconciliation."""

    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    platforms: dict[str, PlatformProfile] = Field(default_factory=dict)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    config_file_path: Optional[str] = None

    def platforms_for(self, side: str) -> list[str]:
        """Platform tags configured for one side, in configuration order."""
        return [tag for tag, profile in self.platforms.items() if profile.side == side]


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a dictionary."""
    return {
        "matching": {
            "tolerance": {
                "amount": 10.0,
                "percent": 5.0,
                "combine": "min",
            },
            "probable": {"enabled": True},
            "grouped": {
                "enabled": True,
                "min_group_size": 2,
                "max_group_size": 5,
            },
            "midnight": {
                "enabled": True,
                "max_day_offset": 1,
            },
        },
        "engine": {
            "max_workers": 1,
            "timeout_seconds": None,
        },
        "platforms": {
            "petpooja": {
                "side": POS_SIDE,
                "display_name": "Pet Pooja",
                "column_mappings": {
                    "amount": "Grand Total",
                    "date": "Date",
                    "id": "Invoice No.",
                },
            },
            "ristas": {
                "side": POS_SIDE,
                "display_name": "Ristas",
                "column_mappings": {
                    "amount": "Net Amount",
                    "date": "Bill Date",
                    "id": "Bill No",
                },
            },
            "swiggy": {
                "side": SOURCE_SIDE,
                "display_name": "Swiggy Dineout",
                "column_mappings": {
                    "amount": "Bill Amount",
                    "date": "Date",
                    "id": "Order ID",
                },
            },
            "zomatopay": {
                "side": SOURCE_SIDE,
                "display_name": "Zomato Pay",
                "column_mappings": {
                    "amount": "Bill Amount",
                    "date": "Transaction Date",
                    "id": "Transaction ID",
                },
            },
            "eazydiner": {
                "side": SOURCE_SIDE,
                "display_name": "Eazy Diner",
                "column_mappings": {
                    "amount": "Bill Amount",
                    "date": "Booking Date",
                    "id": "Booking ID",
                },
            },
        },
        "output": {
            "json_filename_template": "reconciliation_{date}_{time}.json",
            "currency_symbol": "₹",
            "sheets": {
                "summary": {"enabled": True, "name": "Summary"},
                "matched": {"enabled": True, "name": "Matched Orders"},
                "probable": {"enabled": True, "name": "Probable Matches"},
                "grouped": {"enabled": True, "name": "Grouped Matches"},
                "midnight": {"enabled": True, "name": "Midnight Matches"},
                "pos_only": {"enabled": True, "name": "Unmatched in POS"},
                "source_only": {"enabled": True, "name": "Unmatched in Source"},
            },
        },
        "logging": {
            "level": "INFO",
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "file": None,
        },
    }


def load_config(config_path: Optional[Path] = None) -> ReconConfig:
    """
    Load configuration from a YAML file or use defaults.

    Args:
        config_path: Path to YAML configuration file (optional)

    Returns:
        ReconConfig object with loaded or default settings

    Raises:
        ConfigurationError: If the file is not valid YAML or fails validation
    """
    config_dict = get_default_config()

    if config_path and config_path.exists():
        logger.info(f"Loading configuration from: {config_path}")
        try:
            with open(config_path, "r") as f:
                user_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

        if not isinstance(user_config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

        # Deep merge user config into defaults
        config_dict = _deep_merge(config_dict, user_config)
        config_dict["config_file_path"] = str(config_path)
    else:
        logger.info("Using default configuration")

    return build_config(config_dict)


def build_config(config_dict: dict[str, Any]) -> ReconConfig:
    """Validate a configuration dictionary into a ReconConfig."""
    try:
        return ReconConfig(**config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge on top

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def generate_default_config(output_path: Path) -> None:
    """
    Generate a default configuration file.

    Args:
        output_path: Path to write the configuration file
    """
    config_dict = get_default_config()

    yaml_content = """# POS / platform order reconciliation configuration
# Generated configuration file - customize as needed
#
# matching.tolerance: a pair is within tolerance when
#   |source - pos| <= min(amount, percent% of source amount)   (combine: min)
#   |source - pos| <= max(amount, percent% of source amount)   (combine: max)

"""
    yaml_content += yaml.dump(config_dict, default_flow_style=False, sort_keys=False)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        f.write(yaml_content)

    logger.info(f"Generated configuration file: {output_path}")
