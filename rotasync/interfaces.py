import re
from enum import Enum
from datetime import date as Date
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, GetCoreSchemaHandler, computed_field, validate_call
from pydantic_core import CoreSchema, core_schema

DEFAULT_DATE_FORMAT = r"%Y-%m-%d"

DeletionReason = Literal['previous day', 'new week', 'new month']


class SnapshotName(str):
    """
    String type for the name of a snapshot directory (or of the reference
    link) inside the destination root.
    """

    _pattern = re.compile(r"[^/\x00]+")

    def __new__(cls, name: str):
        """
        Validate and create a new SnapshotName.

        Raises:
            ValueError: If the name is empty, contains '/' or is '.' or '..'.
        """
        if (not cls._pattern.fullmatch(name)) or (name in ('.', '..')):
            raise ValueError(f"SnapshotName = {name!r} must be a single non-empty path component")
        return str.__new__(cls, name)

    @classmethod
    def __get_pydantic_core_schema__(cls, _: Any, handler: GetCoreSchemaHandler) -> CoreSchema:
        """
        Pydantic core schema for SnapshotName.
        """
        return core_schema.no_info_after_validator_function(cls, handler(str))


@validate_call
def name_for(date: Date, date_format: str = DEFAULT_DATE_FORMAT) -> SnapshotName:
    """
    Derive the on-disk name of the snapshot made on ``date``.

    Args:
        date (Date): The calendar date of the snapshot.
        date_format (str): A ``strftime`` template, e.g. '%Y-%m-%d'.

    Returns:
        SnapshotName: The formatted name, always the same for the same inputs.

    Raises:
        ValueError: If the template does not produce a usable directory name.
    """
    return SnapshotName(date.strftime(date_format))


class Snapshot(BaseModel):
    """
    A dated backup copy, identified by its formatted name.
    """

    model_config = ConfigDict(frozen=True)

    date: Date
    date_format: str = DEFAULT_DATE_FORMAT

    @computed_field
    @property
    def name(self) -> SnapshotName:
        return name_for(self.date, self.date_format)

    def __str__(self):
        return self.name


class Deletion(BaseModel):
    """
    One snapshot the retention policy wants gone, and why.
    """

    model_config = ConfigDict(frozen=True)

    date: Date
    reason: DeletionReason

    def snapshot(self, date_format: str = DEFAULT_DATE_FORMAT) -> Snapshot:
        return Snapshot(date=self.date, date_format=date_format)


class RotationDecision(BaseModel):
    """
    The ordered deletions planned for a single run, usually zero to two.
    """

    model_config = ConfigDict(frozen=True)

    today: Date
    deletions: tuple[Deletion, ...] = ()

    def names(self, date_format: str = DEFAULT_DATE_FORMAT) -> list[SnapshotName]:
        return [name_for(d.date, date_format) for d in self.deletions]


class LinkState(Enum):
    """
    What currently sits at the reference link path.
    """

    ABSENT = 'absent'
    REFERENCE = 'reference'
    WRONG_KIND = 'wrong_kind'
