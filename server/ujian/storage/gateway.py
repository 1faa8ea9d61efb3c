"""
Persistence Gateway.

One entry point for all aggregates. Users are served from the database in
remote mode and from local JSON files in local mode; the other aggregates
need the database and refuse writes in local mode.
"""
from typing import Any, Dict, List, Optional, Sequence

from ujian.database import StorageBackend, StorageMode
from ujian.schemas import UserRecord
from ujian.storage.filters import Filters
from ujian.storage.local import LocalUserStore
from ujian.storage.sql import (
    ClassRepository,
    ExamRepository,
    SettingsRepository,
    SqlUserRepository,
    SubmissionRepository,
)


class UserRepository:
    """Routes every call to the store matching the current storage mode."""

    def __init__(self, backend: StorageBackend):
        self.backend = backend
        self._remote = SqlUserRepository(backend)
        self._local = LocalUserStore(backend.local_data_dir)

    @property
    def _store(self):
        return self._remote if self.backend.is_remote else self._local

    def list(self, filters: Filters = None) -> List[UserRecord]:
        return self._store.list(filters)

    def get_by_id(self, record_id: str) -> Optional[UserRecord]:
        return self._store.get_by_id(record_id)

    def find_by_username(self, username: str, roles: Sequence[Any]) -> Optional[UserRecord]:
        return self._store.find_by_username(username, roles)

    def find_by_nisn(self, nisn: str) -> Optional[UserRecord]:
        return self._store.find_by_nisn(nisn)

    def create(self, data: Dict[str, Any]) -> UserRecord:
        return self._store.create(data)

    def update(self, record_id: str, patch: Dict[str, Any], expected: Filters = None) -> UserRecord:
        return self._store.update(record_id, patch, expected=expected)

    def delete(self, record_id: str) -> UserRecord:
        return self._store.delete(record_id)


class Gateway:
    def __init__(self, backend: StorageBackend):
        self.backend = backend
        self.users = UserRepository(backend)
        self.classes = ClassRepository(backend)
        self.exams = ExamRepository(backend)
        self.submissions = SubmissionRepository(backend)
        self.settings = SettingsRepository(backend)

    @property
    def mode(self) -> StorageMode:
        return self.backend.mode
