from fastapi import APIRouter, Depends, HTTPException

from fieldtrack.core.ids import ChildId, new_id
from fieldtrack.core.router_guard import (
    get_domain_store,
    require_auth_user,
    require_owned_group,
    require_role,
    require_visible_child,
)
from fieldtrack.route_logging import EndpointNameRoute
from fieldtrack.schemas import Child, ChildCreateRequest, ChildMoveRequest, ChildUpdateRequest, MarkReadRequest, User
from fieldtrack.services.domain_store import DomainStore


router = APIRouter(prefix='/api/children', tags=['Children'], route_class=EndpointNameRoute)


def _child_overview(store: DomainStore, child: Child) -> dict:
    data = child.to_json()
    if child.group_id:
        data['pendingSessions'] = store.get_pending_sessions_count_for_child(child.id, child.group_id)
        data['unreadSessions'] = store.get_unread_session_count(child.id, child.group_id)
    else:
        data['pendingSessions'] = 0
        data['unreadSessions'] = 0
    data['unreadProgress'] = store.get_unread_progress_count(child.id)
    return data


@router.post('')
def create_child(
    payload: ChildCreateRequest,
    user: User = Depends(require_auth_user),
    store: DomainStore = Depends(get_domain_store),
):
    require_role(user, {'parent'})
    child = Child(
        id=ChildId(new_id('child')),
        name=payload.name.strip(),
        birth_date=payload.birth_date or None,
        parent_id=user.id,
    )
    store.add_child(child)
    return child.to_json()


@router.get('')
def list_children(user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    if user.role == 'parent':
        return [_child_overview(store, child) for child in store.get_children_for_parent(user.id)]
    return [child.to_json() for child in store.get_children_for_trainer(user.id)]


@router.get('/{child_id}')
def get_child(child_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    child = require_visible_child(store, user, child_id)
    return _child_overview(store, child)


@router.patch('/{child_id}')
def update_child(
    child_id: str,
    payload: ChildUpdateRequest,
    user: User = Depends(require_auth_user),
    store: DomainStore = Depends(get_domain_store),
):
    require_role(user, {'parent'})
    require_visible_child(store, user, child_id)
    store.update_child(child_id, payload.name.strip(), payload.birth_date)
    return store.get_child_by_id(child_id).to_json()


@router.post('/{child_id}/remove-from-group')
def remove_from_group(child_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    require_role(user, {'trainer'})
    require_visible_child(store, user, child_id)
    store.remove_child_from_group(child_id)
    return store.get_child_by_id(child_id).to_json()


@router.post('/{child_id}/move')
def move_child(
    child_id: str,
    payload: ChildMoveRequest,
    user: User = Depends(require_auth_user),
    store: DomainStore = Depends(get_domain_store),
):
    require_role(user, {'trainer'})
    require_visible_child(store, user, child_id)
    require_owned_group(store, user, payload.group_id)
    store.move_child_to_group(child_id, payload.group_id)
    return store.get_child_by_id(child_id).to_json()


@router.get('/{child_id}/sessions')
def child_sessions(child_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    child = require_visible_child(store, user, child_id)
    if not child.group_id:
        return []
    read_ids = store.get_read_session_ids(child.id)
    rows = []
    for session in store.get_visible_sessions_for_child(child.id, child.group_id):
        report = store.get_report_for_session_and_child(session.id, child.id)
        rows.append({
            **session.to_json(),
            'reportStatus': report.status if report else None,
            'read': session.id in read_ids,
        })
    return rows


@router.post('/{child_id}/sessions/read')
def mark_sessions_read(
    child_id: str,
    payload: MarkReadRequest,
    user: User = Depends(require_auth_user),
    store: DomainStore = Depends(get_domain_store),
):
    require_role(user, {'parent'})
    child = require_visible_child(store, user, child_id)
    store.mark_sessions_read(child.id, payload.ids)
    unread = store.get_unread_session_count(child.id, child.group_id) if child.group_id else 0
    return {'unreadSessions': unread}


@router.post('/{child_id}/progress/read')
def mark_progress_read(
    child_id: str,
    payload: MarkReadRequest,
    user: User = Depends(require_auth_user),
    store: DomainStore = Depends(get_domain_store),
):
    require_role(user, {'parent'})
    child = require_visible_child(store, user, child_id)
    store.mark_progress_read(child.id, payload.ids)
    return {'unreadProgress': store.get_unread_progress_count(child.id)}


@router.get('/{child_id}/reports')
def child_reports(child_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    child = require_visible_child(store, user, child_id)
    return [report.to_json() for report in store.get_submitted_reports_for_child(child.id)]


@router.get('/{child_id}/events')
def child_events(child_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    child = require_visible_child(store, user, child_id)
    return [event.to_json() for event in store.get_calendar_events_for_child(child.id)]


@router.get('/{child_id}/attendance')
def child_attendance(child_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    child = require_visible_child(store, user, child_id)
    if not child.group_id:
        raise HTTPException(status_code=404, detail='Child is not in a group')
    return store.get_attendance_summary_for_child(child.id).model_dump()
