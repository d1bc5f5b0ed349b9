"""Configuration loader and validation for reconciliation settings."""

from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Optional
import logging
import os

import yaml
from pydantic import BaseModel, Field

from .models.transaction import FlagColor
from .utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ACCESS_TOKEN_ENV = "YNAB_ACCESS_TOKEN"


class TieBreak(str, Enum):
    """How to choose between candidates at the same date distance."""

    INPUT_ORDER = "input_order"
    LEDGER_ID = "ledger_id"


class LedgerConfig(BaseModel):
    """Configuration for the external ledger API."""

    base_url: str = "https://api.ynab.com/v1"
    access_token: str = ""
    timeout_seconds: float = Field(default=30.0, gt=0)
    default_budget_id: Optional[str] = None
    default_account_id: Optional[str] = None

    def resolve_access_token(self) -> str:
        """Return the configured token, falling back to the environment."""
        token = self.access_token or os.environ.get(ACCESS_TOKEN_ENV, "")
        if not token:
            raise ConfigurationError(
                f"Ledger access token is not configured; set {ACCESS_TOKEN_ENV}"
            )
        return token


class MatchingConfig(BaseModel):
    """Tolerances for the matching engine."""

    date_tolerance_days: int = Field(default=7, ge=0)
    amount_tolerance: Decimal = Field(default=Decimal("0.01"), ge=0)
    tie_break: TieBreak = TieBreak.INPUT_ORDER
    exclude_deleted: bool = True


class StoreConfig(BaseModel):
    """Configuration for the local statement store."""

    database_url: str = "sqlite:///db/transactions.db"


class ActionsConfig(BaseModel):
    """Configuration for follow-up actions on the ledger."""

    flag_color: FlagColor = FlagColor.ORANGE


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None


class ReconConfig(BaseModel):
    """Main configuration model for reconciliation."""

    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    actions: ActionsConfig = Field(default_factory=ActionsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    config_file_path: Optional[str] = None


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a dictionary."""
    return {
        "ledger": {
            "base_url": "https://api.ynab.com/v1",
            "access_token": "",
            "timeout_seconds": 30.0,
            "default_budget_id": None,
            "default_account_id": None,
        },
        "matching": {
            "date_tolerance_days": 7,
            "amount_tolerance": "0.01",
            "tie_break": "input_order",
            "exclude_deleted": True,
        },
        "store": {
            "database_url": "sqlite:///db/transactions.db",
        },
        "actions": {
            "flag_color": "orange",
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

        config_dict = _deep_merge(config_dict, user_config)
        config_dict["config_file_path"] = str(config_path)
    else:
        logger.info("Using default configuration")

    try:
        return ReconConfig(**config_dict)
    except ValueError as e:
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

    yaml_content = """# Statement to YNAB Reconciliation Configuration
# Generated configuration file - customize as needed
# The access token may be left empty and supplied via YNAB_ACCESS_TOKEN

"""
    yaml_content += yaml.dump(config_dict, default_flow_style=False, sort_keys=False)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        f.write(yaml_content)

    logger.info(f"Generated configuration file: {output_path}")
