from __future__ import annotations

from functools import wraps
import logging
import threading
from typing import Iterable

from fieldtrack.core.ids import (
    CalendarEventId,
    ChildId,
    GroupId,
    JoinRequestId,
    NotificationId,
    ProgressEntryId,
    ReportId,
    SessionId,
    UserId,
    attendance_id,
    new_id,
)
from fieldtrack.core.time_provider import TimeProvider, default_time_provider
from fieldtrack.schemas import (
    AttendanceStatus,
    AttendanceSummary,
    CalendarEvent,
    Child,
    EventAttendance,
    Group,
    JoinRequest,
    Notification,
    ProgressEntry,
    Record,
    Report,
    Session,
    TrainerSearchResult,
)
from fieldtrack.services.identity_store import IdentityStore
from fieldtrack.services.store_migrations import backfill_joined_group_at
from fieldtrack.storage import (
    ATTENDANCE,
    CALENDAR_EVENTS,
    CHILDREN,
    GROUPS,
    JOIN_REQUESTS,
    NOTIFICATIONS,
    PROGRESS_ENTRIES,
    READ_PROGRESS_BY_CHILD,
    READ_SESSIONS_BY_CHILD,
    REPORTS,
    SESSIONS,
    KeyValueStorage,
    storage_key,
)


logger = logging.getLogger(__name__)

# storage name -> (attribute, record type)
_COLLECTIONS: dict[str, tuple[str, type[Record]]] = {
    GROUPS: ('_groups', Group),
    CHILDREN: ('_children', Child),
    SESSIONS: ('_sessions', Session),
    REPORTS: ('_reports', Report),
    JOIN_REQUESTS: ('_join_requests', JoinRequest),
    NOTIFICATIONS: ('_notifications', Notification),
    PROGRESS_ENTRIES: ('_progress_entries', ProgressEntry),
    CALENDAR_EVENTS: ('_calendar_events', CalendarEvent),
    ATTENDANCE: ('_attendance', EventAttendance),
}
_READ_MAPS: dict[str, str] = {
    READ_SESSIONS_BY_CHILD: '_read_sessions',
    READ_PROGRESS_BY_CHILD: '_read_progress',
}

_PERIOD_LABELS = {'week': 'weekly', 'month': 'monthly'}


def _locked(method):
    """Run a mutator, including its persistence step, under the store lock."""

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)

    return wrapper


def _detached(child: Child) -> Child:
    return child.model_copy(update={'group_id': None, 'trainer_id': None, 'joined_group_at': None})


class DomainStore:
    """In-memory owner of every business entity, mirrored to durable storage.

    Each mutation commits to the in-memory collections first and then saves
    every touched collection under its own key. Reads are recomputed from the
    collections on every call. Mutators hold an RLock across the whole
    update-and-persist step.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        identity_store: IdentityStore,
        time_provider: TimeProvider = default_time_provider,
    ) -> None:
        self._storage = storage
        self._identity = identity_store
        self._time = time_provider
        self._lock = threading.RLock()

        self._groups: list[Group] = []
        self._children: list[Child] = []
        self._sessions: list[Session] = []
        self._reports: list[Report] = []
        self._join_requests: list[JoinRequest] = []
        self._notifications: list[Notification] = []
        self._progress_entries: list[ProgressEntry] = []
        self._calendar_events: list[CalendarEvent] = []
        self._attendance: list[EventAttendance] = []
        self._read_sessions: dict[ChildId, set[str]] = {}
        self._read_progress: dict[ChildId, set[str]] = {}

        self._load()

    # === persistence ===

    def _load(self) -> None:
        for name, (attr, model) in _COLLECTIONS.items():
            raw = self._storage.load(storage_key(name))
            items = [model.model_validate(item) for item in raw] if isinstance(raw, list) else []
            setattr(self, attr, items)
        for name, attr in _READ_MAPS.items():
            raw = self._storage.load(storage_key(name))
            read_map = {ChildId(k): set(v) for k, v in raw.items()} if isinstance(raw, dict) else {}
            setattr(self, attr, read_map)

        patched, changed = backfill_joined_group_at(self._children, self._join_requests, self._time.now_iso())
        if changed:
            self._children = patched
            self._persist(CHILDREN)
        logger.info(
            'domain_store_loaded',
            extra={'groups': len(self._groups), 'children': len(self._children), 'sessions': len(self._sessions)},
        )

    def _persist(self, *names: str) -> None:
        for name in names:
            if name in _COLLECTIONS:
                items = getattr(self, _COLLECTIONS[name][0])
                value = [item.to_json() for item in items]
            else:
                read_map = getattr(self, _READ_MAPS[name])
                value = {child_id: sorted(ids) for child_id, ids in read_map.items()}
            self._storage.save(storage_key(name), value)

    def _now(self) -> str:
        return self._time.now_iso()

    # === groups ===

    @_locked
    def add_group(self, group: Group) -> None:
        self._groups.insert(0, group)
        self._persist(GROUPS)
        logger.info('group_created', extra={'group_id': group.id, 'trainer_id': group.trainer_id})

    @_locked
    def update_group(self, group_id: GroupId, name: str) -> None:
        group = self.get_group_by_id(group_id)
        if not group:
            logger.info('group_not_found', extra={'group_id': group_id})
            return
        self._groups = [g.model_copy(update={'name': name}) if g.id == group_id else g for g in self._groups]
        self._persist(GROUPS)

    @_locked
    def delete_group(self, group_id: GroupId) -> None:
        if not self.get_group_by_id(group_id):
            logger.info('group_not_found', extra={'group_id': group_id})
            return
        self._groups = [g for g in self._groups if g.id != group_id]

        session_ids = {s.id for s in self._sessions if s.group_id == group_id}
        self._sessions = [s for s in self._sessions if s.group_id != group_id]
        self._reports = [r for r in self._reports if r.session_id not in session_ids]

        event_ids = {e.id for e in self._calendar_events if e.group_id == group_id}
        self._calendar_events = [e for e in self._calendar_events if e.group_id != group_id]
        self._attendance = [a for a in self._attendance if a.event_id not in event_ids]

        self._children = [_detached(c) if c.group_id == group_id else c for c in self._children]

        self._persist(GROUPS, SESSIONS, REPORTS, CALENDAR_EVENTS, ATTENDANCE, CHILDREN)
        logger.info(
            'group_deleted',
            extra={'group_id': group_id, 'sessions_removed': len(session_ids), 'events_removed': len(event_ids)},
        )

    def get_groups_for_trainer(self, trainer_id: UserId) -> list[Group]:
        return [g for g in self._groups if g.trainer_id == trainer_id]

    def get_group_by_id(self, group_id: GroupId) -> Group | None:
        return next((g for g in self._groups if g.id == group_id), None)

    # === children ===

    @_locked
    def add_child(self, child: Child) -> None:
        self._children.insert(0, child)
        self._persist(CHILDREN)

    @_locked
    def update_child(self, child_id: ChildId, name: str, birth_date: str | None = None) -> None:
        self._update_child(child_id, {'name': name, 'birth_date': birth_date or None})

    @_locked
    def remove_child_from_group(self, child_id: ChildId) -> None:
        child = self.get_child_by_id(child_id)
        if not child:
            logger.info('child_not_found', extra={'child_id': child_id})
            return
        self._children = [_detached(c) if c.id == child_id else c for c in self._children]
        self._persist(CHILDREN)
        logger.info('child_removed_from_group', extra={'child_id': child_id, 'group_id': child.group_id})

    @_locked
    def move_child_to_group(self, child_id: ChildId, new_group_id: GroupId) -> None:
        target = self.get_group_by_id(new_group_id)
        if not target:
            logger.info('group_not_found', extra={'group_id': new_group_id})
            return
        # Moving resets the membership window: earlier sessions in the new group are not owed.
        self._update_child(
            child_id,
            {'group_id': target.id, 'trainer_id': target.trainer_id, 'joined_group_at': self._now()},
        )

    def _update_child(self, child_id: ChildId, changes: dict) -> bool:
        if not self.get_child_by_id(child_id):
            logger.info('child_not_found', extra={'child_id': child_id})
            return False
        self._children = [c.model_copy(update=changes) if c.id == child_id else c for c in self._children]
        self._persist(CHILDREN)
        return True

    def get_children_for_parent(self, parent_id: UserId) -> list[Child]:
        return [c for c in self._children if c.parent_id == parent_id]

    def get_children_for_trainer(self, trainer_id: UserId) -> list[Child]:
        return [c for c in self._children if c.trainer_id == trainer_id]

    def get_children_for_group(self, group_id: GroupId) -> list[Child]:
        return [c for c in self._children if c.group_id == group_id]

    def get_child_by_id(self, child_id: ChildId) -> Child | None:
        return next((c for c in self._children if c.id == child_id), None)

    # === join requests ===

    @_locked
    def send_join_request(self, request: JoinRequest) -> None:
        self._join_requests.insert(0, request)
        self._persist(JOIN_REQUESTS)
        child = self.get_child_by_id(request.child_id)
        group = self.get_group_by_id(request.group_id)
        if child and group:
            self._notify(
                request.trainer_id,
                f'{child.name} wants to join group "{group.name}"',
                action_type='join_request',
                action_id=request.id,
            )
        logger.info('join_request_sent', extra={'request_id': request.id, 'group_id': request.group_id})

    @_locked
    def accept_join_request(self, request_id: JoinRequestId) -> None:
        request = self._pending_request(request_id)
        if not request:
            return
        self._join_requests = [
            r.model_copy(update={'status': 'accepted'}) if r.id == request_id else r for r in self._join_requests
        ]
        joined_at = self._now()
        self._children = [
            c.model_copy(update={'group_id': request.group_id, 'trainer_id': request.trainer_id, 'joined_group_at': joined_at})
            if c.id == request.child_id
            else c
            for c in self._children
        ]
        self._persist(JOIN_REQUESTS, CHILDREN)
        logger.info('join_request_accepted', extra={'request_id': request_id, 'child_id': request.child_id})

    @_locked
    def reject_join_request(self, request_id: JoinRequestId) -> None:
        if not self._pending_request(request_id):
            return
        self._join_requests = [
            r.model_copy(update={'status': 'rejected'}) if r.id == request_id else r for r in self._join_requests
        ]
        self._persist(JOIN_REQUESTS)
        logger.info('join_request_rejected', extra={'request_id': request_id})

    def _pending_request(self, request_id: JoinRequestId) -> JoinRequest | None:
        request = next((r for r in self._join_requests if r.id == request_id), None)
        if not request:
            logger.info('join_request_not_found', extra={'request_id': request_id})
            return None
        if request.status != 'pending':
            logger.info('join_request_already_resolved', extra={'request_id': request_id, 'status': request.status})
            return None
        return request

    def get_join_requests_for_trainer(self, trainer_id: UserId) -> list[JoinRequest]:
        rows = [r for r in self._join_requests if r.trainer_id == trainer_id]
        return sorted(rows, key=lambda r: r.created_at, reverse=True)

    def get_join_requests_for_parent(self, parent_id: UserId) -> list[JoinRequest]:
        rows = [r for r in self._join_requests if r.parent_id == parent_id]
        return sorted(rows, key=lambda r: r.created_at, reverse=True)

    def get_pending_requests_count(self, trainer_id: UserId) -> int:
        return sum(1 for r in self._join_requests if r.trainer_id == trainer_id and r.status == 'pending')

    # === sessions ===

    @_locked
    def add_session(self, session: Session) -> None:
        self._sessions.insert(0, session)
        self._persist(SESSIONS)
        logger.info('session_created', extra={'session_id': session.id, 'group_id': session.group_id})

    @_locked
    def update_session_title(self, session_id: SessionId, title: str) -> None:
        if not self.get_session_by_id(session_id):
            logger.info('session_not_found', extra={'session_id': session_id})
            return
        self._sessions = [s.model_copy(update={'title': title}) if s.id == session_id else s for s in self._sessions]
        self._persist(SESSIONS)

    @_locked
    def delete_session(self, session_id: SessionId) -> None:
        if not self.get_session_by_id(session_id):
            logger.info('session_not_found', extra={'session_id': session_id})
            return
        self._sessions = [s for s in self._sessions if s.id != session_id]
        self._reports = [r for r in self._reports if r.session_id != session_id]
        self._persist(SESSIONS, REPORTS)
        logger.info('session_deleted', extra={'session_id': session_id})

    def get_sessions_for_group(self, group_id: GroupId) -> list[Session]:
        rows = [s for s in self._sessions if s.group_id == group_id]
        return sorted(rows, key=lambda s: s.date, reverse=True)

    def get_sessions_for_trainer(self, trainer_id: UserId) -> list[Session]:
        rows = [s for s in self._sessions if s.trainer_id == trainer_id]
        return sorted(rows, key=lambda s: s.date, reverse=True)

    def get_session_by_id(self, session_id: SessionId) -> Session | None:
        return next((s for s in self._sessions if s.id == session_id), None)

    def get_visible_sessions_for_child(self, child_id: ChildId, group_id: GroupId) -> list[Session]:
        joined_at = self._joined_at(child_id)
        return [s for s in self.get_sessions_for_group(group_id) if _visible(s.date, joined_at)]

    # === reports ===

    @_locked
    def add_report(self, report: Report) -> Report:
        existing = self.get_report_for_session_and_child(report.session_id, report.child_id)
        if existing:
            logger.warning(
                'report_duplicate_rejected',
                extra={'session_id': report.session_id, 'child_id': report.child_id, 'existing_id': existing.id},
            )
            return existing
        report = self._with_submission_stamp(report)
        self._reports.insert(0, report)
        self._persist(REPORTS)
        return report

    @_locked
    def update_report(self, report: Report) -> None:
        current = next((r for r in self._reports if r.id == report.id), None)
        if not current:
            logger.info('report_not_found', extra={'report_id': report.id})
            return
        if current.status == 'submitted' and report.status != 'submitted':
            report = report.model_copy(update={'status': 'submitted', 'submitted_at': current.submitted_at})
        report = self._with_submission_stamp(report.model_copy(update={'updated_at': self._now()}))
        self._reports = [report if r.id == report.id else r for r in self._reports]
        self._persist(REPORTS)

    @_locked
    def submit_report(self, report_id: ReportId) -> None:
        if not any(r.id == report_id for r in self._reports):
            logger.info('report_not_found', extra={'report_id': report_id})
            return
        submitted_at = self._now()
        self._reports = [
            r.model_copy(update={'status': 'submitted', 'submitted_at': submitted_at}) if r.id == report_id else r
            for r in self._reports
        ]
        self._persist(REPORTS)
        logger.info('report_submitted', extra={'report_id': report_id})

    def _with_submission_stamp(self, report: Report) -> Report:
        if report.status == 'submitted' and not report.submitted_at:
            return report.model_copy(update={'submitted_at': self._now()})
        return report

    def get_report_by_id(self, report_id: ReportId) -> Report | None:
        return next((r for r in self._reports if r.id == report_id), None)

    def get_report_for_session_and_child(self, session_id: SessionId, child_id: ChildId) -> Report | None:
        return next((r for r in self._reports if r.session_id == session_id and r.child_id == child_id), None)

    def get_submitted_reports_for_session(self, session_id: SessionId) -> list[Report]:
        return [r for r in self._reports if r.session_id == session_id and r.status == 'submitted']

    def get_submitted_reports_for_child(self, child_id: ChildId) -> list[Report]:
        rows = [r for r in self._reports if r.child_id == child_id and r.status == 'submitted']
        return sorted(rows, key=lambda r: r.submitted_at or '', reverse=True)

    # === progress entries ===

    @_locked
    def add_progress_entry(self, entry: ProgressEntry) -> None:
        self._progress_entries.insert(0, entry)
        self._persist(PROGRESS_ENTRIES)
        child = self.get_child_by_id(entry.child_id)
        if child:
            period = _PERIOD_LABELS.get(entry.period, entry.period)
            self._notify(
                child.parent_id,
                f'New {period} progress note for {child.name}',
                action_type='progress_entry',
                action_id=entry.id,
            )
        logger.info('progress_entry_created', extra={'entry_id': entry.id, 'child_id': entry.child_id})

    def get_progress_entries_for_child(self, child_id: ChildId) -> list[ProgressEntry]:
        rows = [p for p in self._progress_entries if p.child_id == child_id]
        return sorted(rows, key=lambda p: p.created_at, reverse=True)

    # === notifications ===

    @_locked
    def add_notification(self, notification: Notification) -> None:
        self._notifications.insert(0, notification)
        self._persist(NOTIFICATIONS)

    def _notify(self, user_id: UserId, message: str, *, action_type: str, action_id: str) -> None:
        self.add_notification(
            Notification(
                id=NotificationId(new_id('notif')),
                user_id=user_id,
                message=message,
                read=False,
                created_at=self._now(),
                action_type=action_type,
                action_id=action_id,
            )
        )

    @_locked
    def mark_notification_read(self, notification_id: NotificationId) -> None:
        if not any(n.id == notification_id for n in self._notifications):
            logger.info('notification_not_found', extra={'notification_id': notification_id})
            return
        self._notifications = [
            n.model_copy(update={'read': True}) if n.id == notification_id else n for n in self._notifications
        ]
        self._persist(NOTIFICATIONS)

    @_locked
    def mark_all_notifications_read(self, user_id: UserId) -> None:
        if not any(n.user_id == user_id and not n.read for n in self._notifications):
            return
        self._notifications = [
            n.model_copy(update={'read': True}) if n.user_id == user_id and not n.read else n
            for n in self._notifications
        ]
        self._persist(NOTIFICATIONS)

    def get_unread_notifications(self, user_id: UserId) -> list[Notification]:
        return [n for n in self.get_notifications_for_user(user_id) if not n.read]

    def get_notifications_for_user(self, user_id: UserId) -> list[Notification]:
        rows = [n for n in self._notifications if n.user_id == user_id]
        return sorted(rows, key=lambda n: n.created_at, reverse=True)

    # === calendar events ===

    @_locked
    def add_calendar_event(self, event: CalendarEvent) -> None:
        self._calendar_events.insert(0, event)
        self._persist(CALENDAR_EVENTS)
        logger.info('calendar_event_created', extra={'event_id': event.id, 'group_id': event.group_id})

    @_locked
    def update_calendar_event(
        self,
        event_id: CalendarEventId,
        *,
        title: str,
        date: str,
        time: str,
        location: str = '',
    ) -> None:
        if not self.get_calendar_event_by_id(event_id):
            logger.info('calendar_event_not_found', extra={'event_id': event_id})
            return
        changes = {'title': title, 'date': date, 'time': time, 'location': location, 'updated_at': self._now()}
        self._calendar_events = [
            e.model_copy(update=changes) if e.id == event_id else e for e in self._calendar_events
        ]
        self._persist(CALENDAR_EVENTS)

    @_locked
    def delete_calendar_event(self, event_id: CalendarEventId) -> None:
        if not self.get_calendar_event_by_id(event_id):
            logger.info('calendar_event_not_found', extra={'event_id': event_id})
            return
        self._calendar_events = [e for e in self._calendar_events if e.id != event_id]
        self._attendance = [a for a in self._attendance if a.event_id != event_id]
        self._persist(CALENDAR_EVENTS, ATTENDANCE)
        logger.info('calendar_event_deleted', extra={'event_id': event_id})

    def get_calendar_event_by_id(self, event_id: CalendarEventId) -> CalendarEvent | None:
        return next((e for e in self._calendar_events if e.id == event_id), None)

    def get_calendar_events_for_group(self, group_id: GroupId) -> list[CalendarEvent]:
        rows = [e for e in self._calendar_events if e.group_id == group_id]
        return sorted(rows, key=lambda e: (e.date, e.time))

    def get_calendar_events_for_child(self, child_id: ChildId) -> list[CalendarEvent]:
        child = self.get_child_by_id(child_id)
        if not child or not child.group_id:
            return []
        return [e for e in self.get_calendar_events_for_group(child.group_id) if _visible(e.date, child.joined_group_at)]

    # === attendance ===

    @_locked
    def save_attendance(
        self,
        event_id: CalendarEventId,
        status_map: dict[ChildId, AttendanceStatus | None],
        trainer_id: UserId,
    ) -> None:
        if not self.get_calendar_event_by_id(event_id):
            logger.info('calendar_event_not_found', extra={'event_id': event_id})
            return
        marked_at = self._now()
        rows = [
            EventAttendance(
                id=attendance_id(event_id, child_id),
                event_id=event_id,
                child_id=child_id,
                status=status,
                marked_by=trainer_id,
                marked_at=marked_at,
            )
            for child_id, status in status_map.items()
            if status is not None
        ]
        self._attendance = rows + [a for a in self._attendance if a.event_id != event_id]
        self._persist(ATTENDANCE)
        logger.info('attendance_saved', extra={'event_id': event_id, 'marked': len(rows)})

    def get_attendance_for_event(self, event_id: CalendarEventId) -> dict[ChildId, AttendanceStatus]:
        return {a.child_id: a.status for a in self._attendance if a.event_id == event_id}

    def get_attendance_summary_for_child(self, child_id: ChildId) -> AttendanceSummary:
        today = self._time.today().isoformat()
        summary = AttendanceSummary()
        for event in self.get_calendar_events_for_child(child_id):
            if event.date > today:
                continue
            status = self.get_attendance_for_event(event.id).get(child_id)
            if status == 'PRESENT':
                summary.present += 1
            elif status == 'ABSENT':
                summary.absent += 1
            else:
                summary.unmarked += 1
        return summary

    # === read tracking ===

    @_locked
    def mark_sessions_read(self, child_id: ChildId, session_ids: Iterable[str]) -> None:
        self._mark_read(READ_SESSIONS_BY_CHILD, self._read_sessions, child_id, session_ids)

    @_locked
    def mark_progress_read(self, child_id: ChildId, progress_ids: Iterable[str]) -> None:
        self._mark_read(READ_PROGRESS_BY_CHILD, self._read_progress, child_id, progress_ids)

    def _mark_read(self, name: str, read_map: dict[ChildId, set[str]], child_id: ChildId, ids: Iterable[str]) -> None:
        already = read_map.get(child_id, set())
        fresh = set(ids) - already
        if not fresh:
            return
        # Swap in a new set so readers never iterate one that is growing.
        read_map[child_id] = already | fresh
        self._persist(name)

    def get_read_session_ids(self, child_id: ChildId) -> set[str]:
        return set(self._read_sessions.get(child_id, set()))

    def get_read_progress_ids(self, child_id: ChildId) -> set[str]:
        return set(self._read_progress.get(child_id, set()))

    # === derived counters ===

    def get_pending_sessions_count_for_child(self, child_id: ChildId, group_id: GroupId) -> int:
        reports_by_session: dict[SessionId, Report] = {}
        for report in reversed(self._reports):
            if report.child_id == child_id:
                reports_by_session[report.session_id] = report
        pending = 0
        for session in self.get_visible_sessions_for_child(child_id, group_id):
            report = reports_by_session.get(session.id)
            if not report or report.status != 'submitted':
                pending += 1
        return pending

    def get_unread_session_count(self, child_id: ChildId, group_id: GroupId) -> int:
        read_ids = self._read_sessions.get(child_id, set())
        return sum(1 for s in self.get_visible_sessions_for_child(child_id, group_id) if s.id not in read_ids)

    def get_unread_progress_count(self, child_id: ChildId) -> int:
        read_ids = self._read_progress.get(child_id, set())
        return sum(1 for p in self._progress_entries if p.child_id == child_id and p.id not in read_ids)

    def _joined_at(self, child_id: ChildId) -> str | None:
        child = self.get_child_by_id(child_id)
        return child.joined_group_at if child else None

    # === trainer search ===

    def search_trainers(self, query: str) -> list[TrainerSearchResult]:
        needle = (query or '').strip().lower()
        if not needle:
            return []
        return [
            TrainerSearchResult(id=user.id, name=user.name, groups=self.get_groups_for_trainer(user.id))
            for user in self._identity.all_users()
            if user.role == 'trainer' and needle in user.name.lower()
        ]


def _visible(activity_date: str, joined_group_at: str | None) -> bool:
    return joined_group_at is None or activity_date >= joined_group_at
