from fastapi import APIRouter, Depends, HTTPException, Query

from fieldtrack.core.ids import CategoryId, ReportId, SessionId, new_id
from fieldtrack.core.router_guard import (
    get_domain_store,
    get_time_provider,
    require_auth_user,
    require_owned_group,
    require_role,
    require_visible_child,
)
from fieldtrack.core.time_provider import TimeProvider
from fieldtrack.route_logging import EndpointNameRoute
from fieldtrack.schemas import (
    Category,
    Report,
    ReportSaveRequest,
    ReportUpdateRequest,
    Session,
    SessionCreateRequest,
    SessionTitleRequest,
    User,
)
from fieldtrack.services.domain_store import DomainStore


router = APIRouter(prefix='/api', tags=['Sessions'], route_class=EndpointNameRoute)


def _require_owned_session(store: DomainStore, user: User, session_id: str) -> Session:
    require_role(user, {'trainer'})
    session = store.get_session_by_id(session_id)
    if not session:
        raise HTTPException(status_code=404, detail='Session not found')
    require_owned_group(store, user, session.group_id)
    return session


def _require_own_report(store: DomainStore, user: User, report_id: str) -> Report:
    require_role(user, {'parent'})
    report = store.get_report_by_id(report_id)
    if not report or report.parent_id != user.id:
        raise HTTPException(status_code=404, detail='Report not found')
    return report


@router.post('/sessions')
def create_session(
    payload: SessionCreateRequest,
    user: User = Depends(require_auth_user),
    store: DomainStore = Depends(get_domain_store),
):
    require_role(user, {'trainer'})
    group = require_owned_group(store, user, payload.group_id)
    session = Session(
        id=SessionId(new_id('session')),
        title=payload.title.strip(),
        date=payload.date,
        categories=[
            Category(id=CategoryId(new_id('cat')), name=item.name.strip(), type=item.type)
            for item in payload.categories
        ],
        trainer_id=user.id,
        group_id=group.id,
    )
    store.add_session(session)
    return session.to_json()


@router.get('/groups/{group_id}/sessions')
def group_sessions(group_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    require_owned_group(store, user, group_id)
    return [
        {**session.to_json(), 'submittedReports': len(store.get_submitted_reports_for_session(session.id))}
        for session in store.get_sessions_for_group(group_id)
    ]


@router.get('/sessions/{session_id}')
def get_session(session_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    session = store.get_session_by_id(session_id)
    if not session:
        raise HTTPException(status_code=404, detail='Session not found')
    if user.role == 'trainer':
        require_owned_group(store, user, session.group_id)
    elif not any(child.group_id == session.group_id for child in store.get_children_for_parent(user.id)):
        raise HTTPException(status_code=403, detail='Forbidden')
    return session.to_json()


@router.patch('/sessions/{session_id}')
def rename_session(
    session_id: str,
    payload: SessionTitleRequest,
    user: User = Depends(require_auth_user),
    store: DomainStore = Depends(get_domain_store),
):
    _require_owned_session(store, user, session_id)
    store.update_session_title(session_id, payload.title.strip())
    return store.get_session_by_id(session_id).to_json()


@router.delete('/sessions/{session_id}')
def delete_session(session_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    _require_owned_session(store, user, session_id)
    store.delete_session(session_id)
    return {'success': True}


@router.get('/sessions/{session_id}/reports')
def session_reports(session_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    _require_owned_session(store, user, session_id)
    rows = []
    for report in store.get_submitted_reports_for_session(session_id):
        child = store.get_child_by_id(report.child_id)
        rows.append({**report.to_json(), 'childName': child.name if child else None})
    return rows


@router.post('/reports')
def save_report(
    payload: ReportSaveRequest,
    user: User = Depends(require_auth_user),
    store: DomainStore = Depends(get_domain_store),
    clock: TimeProvider = Depends(get_time_provider),
):
    require_role(user, {'parent'})
    child = require_visible_child(store, user, payload.child_id)
    session = store.get_session_by_id(payload.session_id)
    if not session or session.group_id != child.group_id:
        raise HTTPException(status_code=404, detail='Session not found')

    existing = store.get_report_for_session_and_child(session.id, child.id)
    if existing:
        store.update_report(existing.model_copy(update={'values': payload.values}))
        if payload.submit:
            store.submit_report(existing.id)
        return store.get_report_by_id(existing.id).to_json()

    report = Report(
        id=ReportId(new_id('report')),
        session_id=session.id,
        child_id=child.id,
        parent_id=user.id,
        status='submitted' if payload.submit else 'draft',
        values=payload.values,
        updated_at=clock.now_iso(),
    )
    return store.add_report(report).to_json()


@router.get('/reports')
def find_report(
    session_id: str = Query(...),
    child_id: str = Query(...),
    user: User = Depends(require_auth_user),
    store: DomainStore = Depends(get_domain_store),
):
    require_visible_child(store, user, child_id)
    report = store.get_report_for_session_and_child(session_id, child_id)
    if not report:
        raise HTTPException(status_code=404, detail='Report not found')
    return report.to_json()


@router.put('/reports/{report_id}')
def update_report(
    report_id: str,
    payload: ReportUpdateRequest,
    user: User = Depends(require_auth_user),
    store: DomainStore = Depends(get_domain_store),
):
    report = _require_own_report(store, user, report_id)
    store.update_report(report.model_copy(update={'values': payload.values}))
    return store.get_report_by_id(report_id).to_json()


@router.post('/reports/{report_id}/submit')
def submit_report(report_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    _require_own_report(store, user, report_id)
    store.submit_report(report_id)
    return store.get_report_by_id(report_id).to_json()
