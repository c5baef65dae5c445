from fastapi import APIRouter, Depends, HTTPException

from fieldtrack.core.ids import CalendarEventId, new_id
from fieldtrack.core.router_guard import (
    get_domain_store,
    get_time_provider,
    require_auth_user,
    require_owned_group,
    require_role,
)
from fieldtrack.core.time_provider import TimeProvider
from fieldtrack.route_logging import EndpointNameRoute
from fieldtrack.schemas import (
    AttendanceSaveRequest,
    CalendarEvent,
    CalendarEventRequest,
    CalendarEventUpdateRequest,
    User,
)
from fieldtrack.services.domain_store import DomainStore


router = APIRouter(prefix='/api', tags=['Calendar'], route_class=EndpointNameRoute)


def _require_owned_event(store: DomainStore, user: User, event_id: str) -> CalendarEvent:
    require_role(user, {'trainer'})
    event = store.get_calendar_event_by_id(event_id)
    if not event:
        raise HTTPException(status_code=404, detail='Event not found')
    require_owned_group(store, user, event.group_id)
    return event


@router.post('/events')
def create_event(
    payload: CalendarEventRequest,
    user: User = Depends(require_auth_user),
    store: DomainStore = Depends(get_domain_store),
    clock: TimeProvider = Depends(get_time_provider),
):
    require_role(user, {'trainer'})
    group = require_owned_group(store, user, payload.group_id)
    now_iso = clock.now_iso()
    event = CalendarEvent(
        id=CalendarEventId(new_id('event')),
        group_id=group.id,
        title=payload.title.strip(),
        date=payload.date,
        time=payload.time,
        location=payload.location.strip(),
        created_by=user.id,
        created_at=now_iso,
        updated_at=now_iso,
    )
    store.add_calendar_event(event)
    return event.to_json()


@router.get('/groups/{group_id}/events')
def group_events(group_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    require_owned_group(store, user, group_id)
    return [event.to_json() for event in store.get_calendar_events_for_group(group_id)]


@router.put('/events/{event_id}')
def update_event(
    event_id: str,
    payload: CalendarEventUpdateRequest,
    user: User = Depends(require_auth_user),
    store: DomainStore = Depends(get_domain_store),
):
    _require_owned_event(store, user, event_id)
    store.update_calendar_event(
        event_id,
        title=payload.title.strip(),
        date=payload.date,
        time=payload.time,
        location=payload.location.strip(),
    )
    return store.get_calendar_event_by_id(event_id).to_json()


@router.delete('/events/{event_id}')
def delete_event(event_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    _require_owned_event(store, user, event_id)
    store.delete_calendar_event(event_id)
    return {'success': True}


@router.get('/events/{event_id}/attendance')
def event_attendance(event_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    _require_owned_event(store, user, event_id)
    return store.get_attendance_for_event(event_id)


@router.put('/events/{event_id}/attendance')
def save_attendance(
    event_id: str,
    payload: AttendanceSaveRequest,
    user: User = Depends(require_auth_user),
    store: DomainStore = Depends(get_domain_store),
):
    event = _require_owned_event(store, user, event_id)
    members = {child.id for child in store.get_children_for_group(event.group_id)}
    unknown = sorted(set(payload.records) - members)
    if unknown:
        raise HTTPException(status_code=400, detail=f'Children not in group: {", ".join(unknown)}')
    store.save_attendance(event_id, payload.records, user.id)
    return store.get_attendance_for_event(event_id)
