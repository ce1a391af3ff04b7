# backend/drill_converter/models.py
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Intensity(str, Enum):
    SOFT = "soft"
    MEDIUM = "medium"
    HEAVY = "heavy"


class ConversionStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ConversionStatus.COMPLETED, ConversionStatus.FAILED)


class ConversionCreate(BaseModel):
    """Fields supplied by the upload handler when a job is recorded."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    original_filename: str
    original_file_path: str
    intensity: Intensity = Intensity.MEDIUM
    metadata: Optional[Dict[str, Any]] = None


class Conversion(BaseModel):
    """A conversion job as held by the store and returned by the API (camelCase)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    original_filename: str
    original_file_path: str
    converted_file_path: Optional[str] = None
    intensity: Intensity
    status: ConversionStatus = ConversionStatus.PENDING
    progress: int = 0  # 0 - 100
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class ConversionRow(SQLModel, table=True):
    __tablename__ = "conversions"

    id: str = Field(primary_key=True, nullable=False)
    original_filename: str = Field(nullable=False)
    original_file_path: str = Field(nullable=False)
    converted_file_path: Optional[str] = Field(default=None)
    intensity: str = Field(nullable=False)  # soft | medium | heavy
    status: str = Field(default="pending", nullable=False)  # pending | processing | completed | failed
    progress: int = Field(default=0, nullable=False)
    # "metadata" is taken by SQLModel itself
    file_metadata: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, nullable=False, index=True)
    completed_at: Optional[datetime] = Field(default=None)

    @classmethod
    def from_conversion(cls, conversion: Conversion) -> "ConversionRow":
        return cls(
            id=conversion.id,
            original_filename=conversion.original_filename,
            original_file_path=conversion.original_file_path,
            converted_file_path=conversion.converted_file_path,
            intensity=conversion.intensity.value,
            status=conversion.status.value,
            progress=conversion.progress,
            file_metadata=conversion.metadata,
            created_at=conversion.created_at,
            completed_at=conversion.completed_at,
        )

    def to_conversion(self) -> Conversion:
        return Conversion(
            id=self.id,
            original_filename=self.original_filename,
            original_file_path=self.original_file_path,
            converted_file_path=self.converted_file_path,
            intensity=Intensity(self.intensity),
            status=ConversionStatus(self.status),
            progress=self.progress,
            metadata=self.file_metadata,
            created_at=_as_utc(self.created_at),
            completed_at=_as_utc(self.completed_at),
        )


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # sqlite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
