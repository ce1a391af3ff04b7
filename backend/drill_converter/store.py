# backend/drill_converter/store.py
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import col, func, select

from .db import init_db, session_scope
from .models import Conversion, ConversionCreate, ConversionRow, ConversionStatus, utcnow

UPDATABLE_FIELDS = frozenset(Conversion.model_fields) - {"id", "created_at"}


class JobStore(ABC):
    """Keyed collection of conversion jobs.

    Each job has a single writer (its runner) and any number of readers, so
    implementations only need to protect their own data structures.
    """

    @abstractmethod
    def create(self, fields: ConversionCreate) -> Conversion:
        ...

    @abstractmethod
    def get(self, job_id: str) -> Optional[Conversion]:
        ...

    @abstractmethod
    def update(self, job_id: str, **fields: Any) -> Optional[Conversion]:
        """Shallow-merge ``fields`` into the job. Returns None for an unknown id."""

    @abstractmethod
    def list_all(self) -> List[Conversion]:
        """All jobs, most recently created first."""

    @abstractmethod
    def count(self) -> int:
        ...

    @staticmethod
    def _new_conversion(fields: ConversionCreate) -> Conversion:
        return Conversion(
            id=str(uuid.uuid4()),
            original_filename=fields.original_filename,
            original_file_path=fields.original_file_path,
            intensity=fields.intensity,
            metadata=fields.metadata,
            status=ConversionStatus.PENDING,
            progress=0,
            converted_file_path=None,
            created_at=utcnow(),
            completed_at=None,
        )

    @staticmethod
    def _check_fields(fields: Dict[str, Any]):
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot update fields: {', '.join(sorted(unknown))}")


class MemoryJobStore(JobStore):
    """In-process store; cleared on restart."""

    def __init__(self):
        self._jobs: Dict[str, Conversion] = {}
        self._lock = threading.Lock()

    def create(self, fields: ConversionCreate) -> Conversion:
        conversion = self._new_conversion(fields)
        with self._lock:
            self._jobs[conversion.id] = conversion
        return conversion.model_copy(deep=True)

    def get(self, job_id: str) -> Optional[Conversion]:
        with self._lock:
            conversion = self._jobs.get(job_id)
            return conversion.model_copy(deep=True) if conversion else None

    def update(self, job_id: str, **fields: Any) -> Optional[Conversion]:
        self._check_fields(fields)
        with self._lock:
            existing = self._jobs.get(job_id)
            if existing is None:
                return None
            updated = Conversion.model_validate({**existing.model_dump(), **fields})
            self._jobs[job_id] = updated
            return updated.model_copy(deep=True)

    def list_all(self) -> List[Conversion]:
        with self._lock:
            # newest insertions first, so equal timestamps keep that order under the stable sort
            jobs = [c.model_copy(deep=True) for c in reversed(list(self._jobs.values()))]
        return sorted(jobs, key=lambda c: c.created_at, reverse=True)

    def count(self) -> int:
        with self._lock:
            return len(self._jobs)


class SQLJobStore(JobStore):
    """Store backed by the ``conversions`` table."""

    def __init__(self, engine: Engine):
        self.engine = engine
        init_db(engine)

    def create(self, fields: ConversionCreate) -> Conversion:
        conversion = self._new_conversion(fields)
        with session_scope(self.engine) as session:
            session.add(ConversionRow.from_conversion(conversion))
            session.commit()
        return conversion

    def get(self, job_id: str) -> Optional[Conversion]:
        with session_scope(self.engine) as session:
            row = session.get(ConversionRow, job_id)
            return row.to_conversion() if row else None

    def update(self, job_id: str, **fields: Any) -> Optional[Conversion]:
        self._check_fields(fields)
        with session_scope(self.engine) as session:
            row = session.get(ConversionRow, job_id)
            if row is None:
                return None
            updated = Conversion.model_validate({**row.to_conversion().model_dump(), **fields})
            session.merge(ConversionRow.from_conversion(updated))
            session.commit()
            return updated

    def list_all(self) -> List[Conversion]:
        with session_scope(self.engine) as session:
            rows = session.exec(select(ConversionRow).order_by(col(ConversionRow.created_at).desc())).all()
            return [row.to_conversion() for row in rows]

    def count(self) -> int:
        with session_scope(self.engine) as session:
            return session.exec(select(func.count()).select_from(ConversionRow)).one()
