from __future__ import annotations

import secrets
from typing import NewType


UserId = NewType('UserId', str)
GroupId = NewType('GroupId', str)
ChildId = NewType('ChildId', str)
JoinRequestId = NewType('JoinRequestId', str)
SessionId = NewType('SessionId', str)
CategoryId = NewType('CategoryId', str)
ReportId = NewType('ReportId', str)
ProgressEntryId = NewType('ProgressEntryId', str)
CalendarEventId = NewType('CalendarEventId', str)
AttendanceId = NewType('AttendanceId', str)
NotificationId = NewType('NotificationId', str)


def new_id(prefix: str) -> str:
    return f'{prefix}-{secrets.token_hex(6)}'


def attendance_id(event_id: CalendarEventId, child_id: ChildId) -> AttendanceId:
    return AttendanceId(f'att-{event_id}-{child_id}')
