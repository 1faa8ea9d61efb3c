"""
Local JSON storage for users (local mode).

Users are split into two partitions inside the data directory:
``admin.json`` for owners/teachers and ``students.json`` for students.
Every write rewrites the partition file atomically.
"""
import json
import logging
import os
import threading
from typing import Any, Dict, List, Optional, Sequence

from ujian.errors import Conflict, NotFound
from ujian.models.user import UserRole
from ujian.schemas import UserRecord
from ujian.storage.filters import Filters, matches, plain
from ujian.utils import new_id, utcnow

logger = logging.getLogger(__name__)

PRIVILEGED_FILE = "admin.json"
STUDENT_FILE = "students.json"

# Serializes partition rewrites across threads
_write_lock = threading.RLock()


def partition_for(role: Any) -> str:
    return STUDENT_FILE if plain(role) == UserRole.STUDENT.value else PRIVILEGED_FILE


class LocalUserStore:
    """Flat-file user repository with the same contract as the SQL one."""

    def __init__(self, data_dir: str):
        self.data_dir = data_dir

    def _path(self, filename: str) -> str:
        return os.path.join(self.data_dir, filename)

    def _read(self, filename: str) -> List[Dict[str, Any]]:
        path = self._path(filename)
        if not os.path.exists(path):
            return []
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, filename: str, documents: List[Dict[str, Any]]) -> None:
        os.makedirs(self.data_dir, exist_ok=True)
        path = self._path(filename)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(documents, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)

    def _all(self) -> List[Dict[str, Any]]:
        return self._read(PRIVILEGED_FILE) + self._read(STUDENT_FILE)

    @staticmethod
    def _dump(record: UserRecord) -> Dict[str, Any]:
        return record.model_dump(mode="json")

    # CRUD ------------------------------------------------------------------

    def list(self, filters: Filters = None) -> List[UserRecord]:
        records = [UserRecord.model_validate(doc) for doc in self._all()]
        return [r for r in records if matches(r.model_dump(), filters)]

    def get_by_id(self, record_id: str) -> Optional[UserRecord]:
        for doc in self._all():
            if doc.get("id") == record_id:
                return UserRecord.model_validate(doc)
        return None

    def find_by_username(self, username: str, roles: Sequence[Any]) -> Optional[UserRecord]:
        wanted = username.strip().lower()
        allowed = plain(roles)
        for doc in self._all():
            if doc.get("username", "").lower() == wanted and doc.get("role") in allowed:
                return UserRecord.model_validate(doc)
        return None

    def find_by_nisn(self, nisn: str) -> Optional[UserRecord]:
        wanted = str(nisn).strip()
        for doc in self._read(STUDENT_FILE):
            if str(doc.get("nisn")) == wanted:
                return UserRecord.model_validate(doc)
        return None

    def create(self, data: Dict[str, Any]) -> UserRecord:
        now = utcnow()
        record = UserRecord.model_validate({"id": new_id(), "created_at": now, "updated_at": now, **data})
        filename = partition_for(record.role)
        with _write_lock:
            documents = self._read(filename)
            if record.nisn and any(str(d.get("nisn")) == record.nisn for d in documents):
                raise Conflict("Record already exists")
            documents.append(self._dump(record))
            self._write(filename, documents)
        logger.info("📁 Stored user %s in %s", record.username, filename)
        return record

    def update(self, record_id: str, patch: Dict[str, Any], expected: Filters = None) -> UserRecord:
        with _write_lock:
            for filename in (PRIVILEGED_FILE, STUDENT_FILE):
                documents = self._read(filename)
                for index, doc in enumerate(documents):
                    if doc.get("id") != record_id:
                        continue
                    current = UserRecord.model_validate(doc)
                    if expected and not matches(current.model_dump(), expected):
                        raise Conflict("User was modified by another request")
                    updated = UserRecord.model_validate({**current.model_dump(), **patch, "updated_at": utcnow()})
                    target = partition_for(updated.role)
                    if target == filename:
                        documents[index] = self._dump(updated)
                        self._write(filename, documents)
                    else:
                        del documents[index]
                        self._write(filename, documents)
                        moved = self._read(target)
                        moved.append(self._dump(updated))
                        self._write(target, moved)
                    return updated
        raise NotFound("User not found")

    def delete(self, record_id: str) -> UserRecord:
        with _write_lock:
            for filename in (PRIVILEGED_FILE, STUDENT_FILE):
                documents = self._read(filename)
                for index, doc in enumerate(documents):
                    if doc.get("id") == record_id:
                        del documents[index]
                        self._write(filename, documents)
                        return UserRecord.model_validate(doc)
        raise NotFound("User not found")
