"""
SQL-backed repositories (remote mode).

Each repository maps one ORM model to one pydantic record type. List-valued
JSON columns cannot be filtered portably in SQL, so containment filters on
them are applied after loading.
"""
from typing import Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ujian.database import StorageBackend
from ujian.errors import Conflict, NotFound
from ujian.models import Classroom, Exam, Submission, AppSettings, User
from ujian.schemas import (
    ClassRecord,
    ExamRecord,
    Record,
    SettingsRecord,
    SubmissionRecord,
    UserRecord,
)
from ujian.storage.filters import MULTI_VALUE_TYPES, Filters, matches, plain
from ujian.utils import new_id, utcnow

R = TypeVar("R", bound=Record)


class SqlRepository(Generic[R]):
    model: Type[Any]
    record_cls: Type[R]
    label: str = "Record"
    purpose: str = "This operation"
    list_fields: Sequence[str] = ()

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    # Queries ---------------------------------------------------------------

    def _conditions(self, filters: Filters):
        """Split filters into SQL clauses and the list-field filters applied after loading."""
        clauses = []
        post_filters: Dict[str, Any] = {}
        for field, value in (filters or {}).items():
            column = getattr(self.model, field, None)
            if column is None:
                raise ValueError(f"Unknown filter field for {self.label}: {field}")
            if field in self.list_fields:
                post_filters[field] = value
            elif isinstance(value, MULTI_VALUE_TYPES):
                clauses.append(column.in_(plain(value)))
            else:
                clauses.append(column == plain(value))
        return clauses, post_filters

    def _select(self, filters: Filters):
        clauses, post_filters = self._conditions(filters)
        return select(self.model).where(*clauses), post_filters

    def _load(self, db: Session, record_id: str, for_update: bool = False):
        stmt = select(self.model).where(self.model.id == record_id)
        if for_update:
            stmt = stmt.with_for_update()
        return db.execute(stmt).scalar_one_or_none()

    def _load_or_404(self, db: Session, record_id: str, for_update: bool = False):
        row = self._load(db, record_id, for_update=for_update)
        if row is None:
            raise NotFound(f"{self.label} not found")
        return row

    def _record(self, row) -> R:
        return self.record_cls.model_validate(row)

    @staticmethod
    def _apply(row, patch: Dict[str, Any]) -> None:
        for field, value in patch.items():
            setattr(row, field, plain(value))
        row.updated_at = utcnow()

    # CRUD ------------------------------------------------------------------

    def list(self, filters: Filters = None) -> List[R]:
        if not self.backend.is_remote:
            return []
        stmt, post_filters = self._select(filters)
        with self.backend.session(self.purpose) as db:
            records = [self._record(row) for row in db.execute(stmt).scalars()]
        if post_filters:
            records = [r for r in records if matches(r.model_dump(), post_filters)]
        return records

    def get_by_id(self, record_id: str) -> Optional[R]:
        if not self.backend.is_remote:
            return None
        with self.backend.session(self.purpose) as db:
            row = self._load(db, record_id)
            return self._record(row) if row is not None else None

    def create(self, data: Dict[str, Any]) -> R:
        with self.backend.session(self.purpose) as db:
            row = self._insert(db, data)
            return self._record(row)

    def update(self, record_id: str, patch: Dict[str, Any], expected: Filters = None) -> R:
        """Apply ``patch``; with ``expected`` the stored row must match it first."""
        with self.backend.session(self.purpose) as db:
            if expected:
                return self._conditional_update(db, record_id, patch, expected)
            row = self._load_or_404(db, record_id)
            self._apply(row, patch)
            db.flush()
            return self._record(row)

    def _conditional_update(self, db: Session, record_id: str, patch: Dict[str, Any], expected: Filters) -> R:
        # Match and write in a single statement
        clauses, post_filters = self._conditions(expected)
        if post_filters:
            raise ValueError(f"List fields cannot guard an update: {', '.join(post_filters)}")

        values = {field: plain(value) for field, value in patch.items()}
        values["updated_at"] = utcnow()
        stmt = update(self.model).where(self.model.id == record_id, *clauses).values(**values)
        if db.execute(stmt).rowcount == 0:
            self._load_or_404(db, record_id)
            raise Conflict(f"{self.label} was modified by another request")
        return self._record(self._load(db, record_id))

    def delete(self, record_id: str) -> R:
        with self.backend.session(self.purpose) as db:
            row = self._load_or_404(db, record_id)
            record = self._record(row)
            self._delete_row(db, row)
            return record

    # Hooks -----------------------------------------------------------------

    def _insert(self, db: Session, data: Dict[str, Any]):
        now = utcnow()
        values = {"id": new_id(), "created_at": now, "updated_at": now}
        values.update({k: plain(v) for k, v in data.items()})
        row = self.model(**values)
        db.add(row)
        db.flush()
        return row

    def _delete_row(self, db: Session, row) -> None:
        db.delete(row)


class SqlUserRepository(SqlRepository[UserRecord]):
    model = User
    record_cls = UserRecord
    label = "User"
    purpose = "User storage"
    list_fields = ("classes",)

    def find_by_username(self, username: str, roles: Sequence[Any]) -> Optional[UserRecord]:
        stmt = (
            select(User)
            .where(func.lower(User.username) == username.strip().lower())
            .where(User.role.in_(plain(roles)))
        )
        with self.backend.session(self.purpose) as db:
            row = db.execute(stmt).scalars().first()
            return self._record(row) if row is not None else None

    def find_by_nisn(self, nisn: str) -> Optional[UserRecord]:
        stmt = select(User).where(User.nisn == str(nisn).strip())
        with self.backend.session(self.purpose) as db:
            row = db.execute(stmt).scalars().first()
            return self._record(row) if row is not None else None


class ClassRepository(SqlRepository[ClassRecord]):
    model = Classroom
    record_cls = ClassRecord
    label = "Class"
    purpose = "Class management"
    list_fields = ("students", "exams")

    def find_by_invite_code(self, invite_code: str) -> Optional[ClassRecord]:
        if not self.backend.is_remote:
            return None
        stmt = select(Classroom).where(Classroom.invite_code == invite_code.strip())
        with self.backend.session(self.purpose) as db:
            row = db.execute(stmt).scalar_one_or_none()
            return self._record(row) if row is not None else None

    def enroll_student(self, class_id: str, student_id: str) -> ClassRecord:
        """Add the student to the class and the class to the student in one transaction."""
        with self.backend.session(self.purpose) as db:
            classroom = self._load_or_404(db, class_id, for_update=True)
            student = db.execute(select(User).where(User.id == student_id).with_for_update()).scalar_one_or_none()
            if student is None:
                raise NotFound("User not found")
            if student_id not in classroom.students:
                self._apply(classroom, {"students": [*classroom.students, student_id]})
            if class_id not in student.classes:
                self._apply(student, {"classes": [*student.classes, class_id]})
            db.flush()
            return self._record(classroom)

    def _delete_row(self, db: Session, row) -> None:
        # Drop the membership back-references and the class's exams with it
        for student in db.execute(select(User).where(User.id.in_(row.students or []))).scalars():
            self._apply(student, {"classes": [c for c in student.classes if c != row.id]})
        for exam in db.execute(select(Exam).where(Exam.class_id == row.id)).scalars():
            db.delete(exam)
        db.delete(row)


class ExamRepository(SqlRepository[ExamRecord]):
    model = Exam
    record_cls = ExamRecord
    label = "Exam"
    purpose = "Exam management"

    def _insert(self, db: Session, data: Dict[str, Any]):
        classroom = db.execute(
            select(Classroom).where(Classroom.id == data.get("class_id")).with_for_update()
        ).scalar_one_or_none()
        if classroom is None:
            raise NotFound("Class not found")
        row = super()._insert(db, data)
        self._apply(classroom, {"exams": [*classroom.exams, row.id]})
        return row

    def _delete_row(self, db: Session, row) -> None:
        classroom = db.execute(select(Classroom).where(Classroom.id == row.class_id)).scalar_one_or_none()
        if classroom is not None:
            self._apply(classroom, {"exams": [e for e in classroom.exams if e != row.id]})
        db.delete(row)


class SubmissionRepository(SqlRepository[SubmissionRecord]):
    model = Submission
    record_cls = SubmissionRecord
    label = "Submission"
    purpose = "Submission handling"


class SettingsRepository(SqlRepository[SettingsRecord]):
    model = AppSettings
    record_cls = SettingsRecord
    label = "Settings"
    purpose = "Settings management"

    SINGLETON_ID = "global"

    def get(self, defaults: Optional[Dict[str, Any]] = None) -> SettingsRecord:
        """Singleton settings; local mode (or a first read) yields ``defaults``."""
        if not self.backend.is_remote:
            return SettingsRecord(**(defaults or {}))
        with self.backend.session(self.purpose) as db:
            row = self._load(db, self.SINGLETON_ID)
            if row is None:
                row = self._insert(db, {"id": self.SINGLETON_ID, **(defaults or {})})
            return self._record(row)

    def save(self, patch: Dict[str, Any], updated_by: Optional[str] = None,
             defaults: Optional[Dict[str, Any]] = None) -> SettingsRecord:
        with self.backend.session(self.purpose) as db:
            row = self._load(db, self.SINGLETON_ID, for_update=True)
            if row is None:
                row = self._insert(db, {"id": self.SINGLETON_ID, **(defaults or {})})
            self._apply(row, {**patch, "updated_by": updated_by})
            db.flush()
            return self._record(row)
