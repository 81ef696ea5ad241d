# onboarding_app/progress.py
"""
Onboarding progress and task-status rules.

Pure functions over plain records: no ORM access, no I/O. Rows coming out of
the database (or a JSON payload) are turned into explicit records here, and
every loosely-typed field (status strings, the SQL bit behind
``document_required``) is normalized once at that boundary.
"""
import datetime
import enum
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Mapping, Optional, Sequence

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

NOT_STARTED = "Not Started"
IN_PROGRESS = "In Progress"
COMPLETED = "Completed"
APPROVED = "Approved"

STATUSES = (NOT_STARTED, IN_PROGRESS, COMPLETED)
TERMINAL_TASK_STATUSES = (COMPLETED, APPROVED)

DOCUMENT_MODE_STAGE = "stage"
DOCUMENT_MODE_SUBTASK = "subtask"

_STATUS_LOOKUP = {s.lower(): s for s in STATUSES + (APPROVED,)}
_FALSE_FLAGS = {"0", "false"}


class GateDecision(enum.Enum):
    ALLOW_DIRECT = "ALLOW_DIRECT"
    REQUIRE_DOCUMENT_UPLOAD = "REQUIRE_DOCUMENT_UPLOAD"


def _status_key(value):
    return " ".join(str(value).replace("_", " ").replace("-", " ").split()).lower()


def _is_completed(value):
    return value is not None and _status_key(value) == COMPLETED.lower()


def _is_terminal(value):
    return value is not None and _status_key(value) in {s.lower() for s in TERMINAL_TASK_STATUSES}


def _as_int(value, default=0):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def normalize_status(value) -> str:
    """Map any spelling of a known status to its canonical form.

    Missing or unknown values fall back to "Not Started", the least complete
    state, instead of raising.
    """
    if value is None:
        return NOT_STARTED
    return _STATUS_LOOKUP.get(_status_key(value), NOT_STARTED)


def is_known_status(value) -> bool:
    return value is not None and _status_key(value) in _STATUS_LOOKUP


def normalize_document_required(value) -> bool:
    """Resolve the SQL bit / JSON boolean ambiguity of ``document_required``.

    Only an explicit false (``False``, ``0``, ``"0"``, ``"false"``) disables
    the requirement. ``None`` and a missing field keep it on.
    """
    if value is None:
        return True
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_FLAGS
    return True


@dataclass(frozen=True)
class SubtaskRecord:
    stage_id: object
    status: str = NOT_STARTED
    subtask_id: object = None

    @classmethod
    def from_row(cls, row: Mapping):
        return cls(
            stage_id=row.get("client_stage_id"),
            status=normalize_status(row.get("status")),
            subtask_id=row.get("subtask_id"),
        )


@dataclass(frozen=True)
class StageRecord:
    stage_id: object
    stage_name: str = ""
    order_number: int = 0
    status: str = NOT_STARTED
    subtasks: tuple = ()
    document_required: bool = False
    document_mode: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping, subtasks: Iterable[SubtaskRecord] = ()):
        # Stages store the flag as nullable and default to no document
        doc_flag = row.get("document_required")
        return cls(
            stage_id=row.get("client_stage_id"),
            stage_name=row.get("stage_name") or "",
            order_number=_as_int(row.get("order_number")),
            status=normalize_status(row.get("status")),
            subtasks=tuple(subtasks),
            document_required=False if doc_flag is None else normalize_document_required(doc_flag),
            document_mode=row.get("document_mode"),
        )


@dataclass(frozen=True)
class TaskRecord:
    id: object
    client_id: object = None
    assignee_role: Optional[str] = None
    status: str = NOT_STARTED
    due_date: object = None
    document_required: bool = True

    @classmethod
    def from_row(cls, row: Mapping):
        """Accepts both the API shape (camelCase) and the column names."""
        def pick(*keys):
            for key in keys:
                if key in row:
                    return row[key]
            return None

        return cls(
            id=pick("id", "task_id"),
            client_id=pick("clientId", "client_id"),
            assignee_role=pick("assigneeRole", "assigned_to_role"),
            status=normalize_status(pick("status")),
            due_date=pick("dueDate", "due_date"),
            document_required=normalize_document_required(pick("documentRequired", "document_required")),
        )


@dataclass(frozen=True)
class ProgressSummary:
    completed_stages: int
    total_stages: int
    progress_percent: int
    per_stage_completed: dict = field(default_factory=dict)
    next_stage: Optional[StageRecord] = None

    @property
    def client_status(self) -> str:
        return client_status_for(self.progress_percent)


def attach_subtasks(stage_rows: Iterable[Mapping], subtask_rows: Iterable[Mapping]) -> list:
    """Group subtask rows under their stage and return ordered StageRecords.

    Subtasks pointing at a stage that is not in ``stage_rows`` are dropped.
    """
    stage_rows = list(stage_rows)
    grouped = {row.get("client_stage_id"): [] for row in stage_rows}
    for row in subtask_rows:
        bucket = grouped.get(row.get("client_stage_id"))
        if bucket is not None:
            bucket.append(SubtaskRecord.from_row(row))

    stages = [StageRecord.from_row(row, grouped[row.get("client_stage_id")]) for row in stage_rows]
    return sorted(stages, key=lambda s: s.order_number)


def subtasks_all_completed(stage: StageRecord) -> bool:
    # An empty checklist must not count as finished
    return len(stage.subtasks) > 0 and all(s.status == COMPLETED for s in stage.subtasks)


def is_stage_completed(stage: StageRecord) -> bool:
    return stage.status == COMPLETED or subtasks_all_completed(stage)


def percent(part: int, total: int) -> int:
    """Whole-number percentage rounded half up; 0 when there is no total."""
    if total == 0:
        return 0
    value = Decimal(part) * 100 / Decimal(total)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_progress(stages: Sequence[StageRecord]) -> ProgressSummary:
    per_stage = {}
    next_stage = None
    completed = 0
    for stage in stages:
        done = is_stage_completed(stage)
        per_stage[stage.stage_id] = done
        if done:
            completed += 1
        elif next_stage is None:
            next_stage = stage

    return ProgressSummary(
        completed_stages=completed,
        total_stages=len(stages),
        progress_percent=percent(completed, len(stages)),
        per_stage_completed=per_stage,
        next_stage=next_stage,
    )


def client_status_for(progress_percent: int) -> str:
    if progress_percent >= 100:
        return COMPLETED
    if progress_percent > 0:
        return IN_PROGRESS
    return NOT_STARTED


def rollup_stage_status(stage: StageRecord) -> str:
    """Status a stage should be stored with, given its subtasks.

    Never demotes a stage that is already Completed.
    """
    if is_stage_completed(stage):
        return COMPLETED
    if stage.status == IN_PROGRESS or any(s.status != NOT_STARTED for s in stage.subtasks):
        return IN_PROGRESS
    return NOT_STARTED


def gate_status_change(task, new_status) -> GateDecision:
    """Decide whether a task status change can be written right away.

    ``task`` is a TaskRecord, a raw row mapping, or a model instance with
    ``document_required``.
    Moving a task that requires a document into any terminal status
    (Completed or Approved) must wait for an upload acknowledgment.
    """
    if not _is_terminal(new_status):
        return GateDecision.ALLOW_DIRECT
    if isinstance(task, Mapping):
        flag = task.get("documentRequired", task.get("document_required"))
    else:
        flag = getattr(task, "document_required", None)
    if normalize_document_required(flag):
        return GateDecision.REQUIRE_DOCUMENT_UPLOAD
    return GateDecision.ALLOW_DIRECT


def gate_subtask_completion(stage: StageRecord, subtask_id, new_status) -> GateDecision:
    """Same gate for stage checklists.

    In "subtask" mode every completion needs a document; in "stage" mode only
    the completion that finishes the stage does.
    """
    if not _is_completed(new_status) or not stage.document_required:
        return GateDecision.ALLOW_DIRECT
    if stage.document_mode == DOCUMENT_MODE_STAGE:
        others_done = all(s.status == COMPLETED for s in stage.subtasks if s.subtask_id != subtask_id)
        return GateDecision.REQUIRE_DOCUMENT_UPLOAD if others_done else GateDecision.ALLOW_DIRECT
    return GateDecision.REQUIRE_DOCUMENT_UPLOAD


def _as_local_date(value) -> Optional[datetime.date]:
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        try:
            parsed = parse_datetime(value) or parse_date(value)
        except ValueError:
            return None
        if parsed is None:
            return None
        value = parsed
    if isinstance(value, datetime.datetime):
        if timezone.is_aware(value):
            value = timezone.localtime(value)
        return value.date()
    if isinstance(value, datetime.date):
        return value
    return None


def is_overdue(due_date, status, today: Optional[datetime.date] = None) -> bool:
    """True once the due date's whole calendar day has passed.

    A task due today is not overdue until tomorrow. Completed and Approved
    items are never overdue.
    """
    due = _as_local_date(due_date)
    if due is None:
        return False
    if _is_terminal(status):
        return False
    if today is None:
        today = timezone.localdate()
    elif isinstance(today, datetime.datetime):
        today = _as_local_date(today)
    return due < today
