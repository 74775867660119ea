"""Configuration management for Costwise."""

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from costwise.core.exceptions import ConfigurationError
from costwise.services.models import ResourceType


class Config(BaseModel):
    """Configuration model for the analysis engine and CLI."""

    default_region: str = Field(default="us-east-1", description="Default AWS region")
    role_arn: Optional[str] = Field(default=None, description="IAM role assumed for analysis")
    profile_name: Optional[str] = Field(default=None, description="Named AWS profile")
    max_workers: int = Field(default=4, ge=1, le=32, description="Concurrent gateway calls per analyzer")
    cost_threshold: float = Field(default=1000.0, gt=0, description="Daily per-service spend that raises a finding")
    savings_rate: float = Field(default=0.2, gt=0, le=1, description="Share of flagged spend considered saveable")
    enabled_families: List[str] = Field(
        default_factory=lambda: [t.value for t in ResourceType],
        description="Resource families to analyze, in registration order",
    )
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Configuration creation timestamp")
    version: str = Field(default="1.0.0", description="Configuration version")

    @field_validator('default_region')
    @classmethod
    def validate_region(cls, v: str) -> str:
        """Validate AWS region format."""
        region_pattern = r'^[a-z]{2,3}-[a-z]+-\d+$'
        if not re.match(region_pattern, v):
            raise ValueError(
                f"Invalid AWS region format: {v}. "
                "Expected format: us-east-1, eu-west-1, ap-southeast-3, etc."
            )
        return v

    @field_validator('role_arn')
    @classmethod
    def validate_role_arn(cls, v: Optional[str]) -> Optional[str]:
        """Validate IAM role ARN format."""
        if v is None:
            return v
        arn_pattern = r'^arn:aws:iam::\d{12}:role/[a-zA-Z0-9+=,.@_/-]+$'
        if not re.match(arn_pattern, v):
            raise ValueError(
                f"Invalid IAM role ARN format: {v}. "
                "Expected format: arn:aws:iam::123456789012:role/RoleName"
            )
        return v

    @field_validator('enabled_families')
    @classmethod
    def validate_families(cls, v: List[str]) -> List[str]:
        known = {t.value for t in ResourceType}
        unknown = [family for family in v if family not in known]
        if unknown:
            raise ValueError(f"Unknown resource families: {', '.join(unknown)}")
        # Keep order, drop repeats
        return list(dict.fromkeys(v))

    @field_validator('created_at')
    @classmethod
    def validate_created_at(cls, v: datetime) -> datetime:
        """Store timestamps as naive UTC."""
        if v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


class ConfigManager:
    """Reads and writes ``config.json`` in the Costwise home directory."""

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Args:
            config_dir: Directory holding config.json. Defaults to ~/.costwise/
        """
        self.config_dir = config_dir or Path.home() / ".costwise"
        self.config_file = self.config_dir / "config.json"

    def config_exists(self) -> bool:
        return self.config_file.exists()

    def load_config(self) -> Optional[Config]:
        """Load the stored configuration.

        Returns:
            Config, or None when no configuration file exists

        Raises:
            ConfigurationError: If the file is unreadable or holds invalid values
        """
        if not self.config_file.exists():
            return None

        try:
            return Config.model_validate(json.loads(self.config_file.read_text()))
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration file {self.config_file}: {e}")

    def load_or_default(self) -> Config:
        return self.load_config() or Config()

    def save_config(self, config: Config) -> None:
        """Write the configuration atomically.

        Raises:
            ConfigurationError: If the file cannot be written
        """
        data = config.model_dump(mode='json')
        data['created_at'] = config.created_at.isoformat() + 'Z'

        temp_file = self.config_file.with_suffix('.tmp')
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            temp_file.write_text(json.dumps(data, indent=2))
            temp_file.replace(self.config_file)
        except OSError as e:
            temp_file.unlink(missing_ok=True)
            raise ConfigurationError(f"Could not write configuration file {self.config_file}: {e}")

    def update_config(self, **changes: Any) -> Config:
        """Apply field changes on top of the stored configuration and save the result.

        Raises:
            ConfigurationError: If a changed value does not validate
        """
        data = self.load_or_default().model_dump()
        data.update(changes)
        try:
            config = Config.model_validate(data)
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration value: {e}")
        self.save_config(config)
        return config

    def delete_config(self) -> bool:
        """Remove the configuration file. Returns False when there was none.

        Raises:
            ConfigurationError: If the file cannot be removed
        """
        try:
            self.config_file.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise ConfigurationError(f"Could not delete configuration file {self.config_file}: {e}")
        return True
