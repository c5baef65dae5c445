from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from fieldtrack.core.ids import (
    AttendanceId,
    CalendarEventId,
    CategoryId,
    ChildId,
    GroupId,
    JoinRequestId,
    NotificationId,
    ProgressEntryId,
    ReportId,
    SessionId,
    UserId,
)


UserRole = Literal['parent', 'trainer']
JoinRequestStatus = Literal['pending', 'accepted', 'rejected']
CategoryType = Literal['counter', 'text']
ReportStatus = Literal['draft', 'submitted']
ProgressPeriod = Literal['week', 'month']
AttendanceStatus = Literal['PRESENT', 'ABSENT']
NotificationAction = Literal['join_request', 'progress_entry']
ReportValue = int | float | str


class Record(BaseModel):
    """Persisted entity. Records are never mutated in place, only replaced."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    def to_json(self) -> dict:
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)


class User(Record):
    id: UserId
    role: UserRole
    name: str
    email: str
    password_hash: str
    created_at: str


class Group(Record):
    id: GroupId
    name: str
    trainer_id: UserId


class Child(Record):
    id: ChildId
    name: str
    parent_id: UserId
    birth_date: str | None = None
    group_id: GroupId | None = None
    trainer_id: UserId | None = None
    joined_group_at: str | None = None


class JoinRequest(Record):
    id: JoinRequestId
    child_id: ChildId
    group_id: GroupId
    trainer_id: UserId
    parent_id: UserId
    status: JoinRequestStatus = 'pending'
    created_at: str


class Category(Record):
    id: CategoryId
    name: str
    type: CategoryType


class Session(Record):
    id: SessionId
    title: str
    date: str
    categories: list[Category] = Field(min_length=1)
    trainer_id: UserId
    group_id: GroupId


class Report(Record):
    id: ReportId
    session_id: SessionId
    child_id: ChildId
    parent_id: UserId
    status: ReportStatus = 'draft'
    values: dict[CategoryId, ReportValue] = Field(default_factory=dict)
    updated_at: str
    submitted_at: str | None = None


class ProgressEntry(Record):
    id: ProgressEntryId
    child_id: ChildId
    group_id: GroupId
    trainer_id: UserId
    period: ProgressPeriod
    description: str
    created_at: str


class CalendarEvent(Record):
    id: CalendarEventId
    group_id: GroupId
    title: str
    date: str
    time: str
    location: str = ''
    created_by: UserId
    created_at: str
    updated_at: str


class EventAttendance(Record):
    id: AttendanceId
    event_id: CalendarEventId
    child_id: ChildId
    status: AttendanceStatus
    marked_by: UserId
    marked_at: str


class Notification(Record):
    id: NotificationId
    user_id: UserId
    message: str
    read: bool = False
    created_at: str
    action_type: NotificationAction | None = None
    action_id: str | None = None


class AuthResult(BaseModel):
    success: bool
    error: str | None = None


class TrainerSearchResult(BaseModel):
    id: UserId
    name: str
    groups: list[Group]


class AttendanceSummary(BaseModel):
    present: int = 0
    absent: int = 0
    unmarked: int = 0


# Request payloads. Ids and timestamps are assigned by the route handlers.


class Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class RegisterRequest(Payload):
    name: str
    email: str
    password: str
    role: UserRole


class LoginRequest(Payload):
    email: str
    password: str


class GroupCreateRequest(Payload):
    name: str = Field(min_length=1)


class GroupUpdateRequest(Payload):
    name: str = Field(min_length=1)


class ChildCreateRequest(Payload):
    name: str = Field(min_length=1)
    birth_date: str | None = None


class ChildUpdateRequest(Payload):
    name: str = Field(min_length=1)
    birth_date: str | None = None


class ChildMoveRequest(Payload):
    group_id: GroupId


class JoinRequestCreateRequest(Payload):
    child_id: ChildId
    group_id: GroupId


class CategoryPayload(Payload):
    name: str = Field(min_length=1)
    type: CategoryType


class SessionCreateRequest(Payload):
    group_id: GroupId
    title: str = Field(min_length=1)
    date: str
    categories: list[CategoryPayload] = Field(min_length=1)


class SessionTitleRequest(Payload):
    title: str = Field(min_length=1)


class ReportSaveRequest(Payload):
    session_id: SessionId
    child_id: ChildId
    values: dict[CategoryId, ReportValue] = Field(default_factory=dict)
    submit: bool = False


class ReportUpdateRequest(Payload):
    values: dict[CategoryId, ReportValue] = Field(default_factory=dict)


class ProgressEntryCreateRequest(Payload):
    child_id: ChildId
    period: ProgressPeriod
    description: str = Field(min_length=1)


class CalendarEventRequest(Payload):
    group_id: GroupId
    title: str = Field(min_length=1)
    date: str
    time: str
    location: str = ''


class CalendarEventUpdateRequest(Payload):
    title: str = Field(min_length=1)
    date: str
    time: str
    location: str = ''


class AttendanceSaveRequest(Payload):
    records: dict[ChildId, AttendanceStatus | None]


class MarkReadRequest(Payload):
    ids: list[str]
