"""
Configuration for a backup run.

Values come from three layers, the model defaults, an optional ``key=value``
configuration file and the command line, each overriding the previous one.
"""

import shlex
from pathlib import Path
from datetime import date as Date
from typing import Any, Literal, Optional

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from rotasync import logging
from rotasync.errors import ConfigurationError
from rotasync.transfer import DEFAULT_ARGS
from rotasync.interfaces import DEFAULT_DATE_FORMAT, SnapshotName, name_for
from rotasync.retention.interfaces import RetentionPolicy
from rotasync.retention.policies.depth import DepthRetentionPolicy
from rotasync.retention.policies.flags import KeepFlagRetentionPolicy

logger = logging.get_logger(__name__)

PolicyMode = Literal['depth', 'flags']


class BackupConfig(BaseModel):
    """
    Immutable settings for one backup run.
    """

    model_config = ConfigDict(frozen=True, extra='forbid')

    source: Optional[str] = None
    dest_root: Optional[Path] = None
    date_format: str = DEFAULT_DATE_FORMAT
    name: Optional[SnapshotName] = None
    link_dest: Optional[SnapshotName] = None
    args: tuple[str, ...] = DEFAULT_ARGS
    exclude_from: Optional[Path] = None
    log_file: Optional[Path] = None
    verbose: bool = False
    mode: PolicyMode = 'depth'
    daily: int = Field(default=1, ge=0)
    weekly: int = Field(default=0, ge=0)
    monthly: int = Field(default=0, ge=0)

    @field_validator('args', mode='before')
    @classmethod
    def split_args(cls, args: Any):
        if isinstance(args, str):
            return tuple(shlex.split(args))
        return args

    @field_validator('date_format')
    @classmethod
    def validate_date_format(cls, date_format: str):
        # raises if the format yields an empty name or one containing '/'
        name_for(Date(2000, 1, 2), date_format)
        return date_format

    @model_validator(mode='after')
    def validate_policy(self):
        try:
            self.build_policy()
        except PydanticValidationError as e:
            raise ValueError(f"Invalid {self.mode} retention settings: {e}")
        return self

    def build_policy(self) -> RetentionPolicy:
        if self.mode == 'flags':
            return KeepFlagRetentionPolicy(daily=self.daily, weekly=self.weekly, monthly=self.monthly)
        return DepthRetentionPolicy(daily=self.daily, weekly=self.weekly, monthly=self.monthly)

    @property
    def policy(self) -> RetentionPolicy:
        return self.build_policy()

    def snapshot_name(self, today: Date) -> SnapshotName:
        return self.name if self.name is not None else name_for(today, self.date_format)


OPTIONS = frozenset(BackupConfig.model_fields)


def normalize_key(key: str) -> str:
    return key.strip().lower().replace('-', '_')


def load_config_file(path: Path) -> dict[str, str]:
    """
    Read ``key=value`` options from a configuration file.

    Unknown options and lines without a value are ignored with a warning.

    Raises:
        ConfigurationError: If the file does not exist.
    """
    path = Path(path)
    lgr = logger.bind(path=path)
    if not path.is_file():
        raise ConfigurationError(f"Configuration file not found: {path}")
    lgr.debug("Loading configuration file")

    values: dict[str, str] = {}
    for key, value in dotenv_values(path, interpolate=False).items():
        option = normalize_key(key)
        if option not in OPTIONS:
            lgr.warning("Ignoring unknown option", option=key)
        elif value is None:
            lgr.warning("Ignoring option without a value", option=key)
        else:
            lgr.debug("Option loaded", option=option, value=value)
            values[option] = value
    return values


def resolve_config(cli: Optional[dict[str, Any]] = None,
                   file: Optional[dict[str, Any]] = None) -> BackupConfig:
    """
    Build the run configuration, command line values taking precedence over
    configuration file values, which take precedence over the defaults.
    ``None`` means not set.

    Raises:
        ConfigurationError: If an option is unknown or invalid.
    """
    merged: dict[str, Any] = {}
    for layer in (file or {}, cli or {}):
        merged.update({normalize_key(k): v for k, v in layer.items() if v is not None})
    try:
        return BackupConfig.model_validate(merged)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
