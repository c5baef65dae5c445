from fastapi import APIRouter, Depends, HTTPException

from fieldtrack.core.ids import ProgressEntryId, new_id
from fieldtrack.core.router_guard import (
    get_domain_store,
    get_time_provider,
    require_auth_user,
    require_role,
    require_visible_child,
)
from fieldtrack.core.time_provider import TimeProvider
from fieldtrack.route_logging import EndpointNameRoute
from fieldtrack.schemas import ProgressEntry, ProgressEntryCreateRequest, User
from fieldtrack.services.domain_store import DomainStore


router = APIRouter(prefix='/api', tags=['Progress'], route_class=EndpointNameRoute)


@router.post('/progress')
def create_progress_entry(
    payload: ProgressEntryCreateRequest,
    user: User = Depends(require_auth_user),
    store: DomainStore = Depends(get_domain_store),
    clock: TimeProvider = Depends(get_time_provider),
):
    require_role(user, {'trainer'})
    child = require_visible_child(store, user, payload.child_id)
    if not child.group_id:
        raise HTTPException(status_code=409, detail='Child is not in a group')
    entry = ProgressEntry(
        id=ProgressEntryId(new_id('progress')),
        child_id=child.id,
        group_id=child.group_id,
        trainer_id=user.id,
        period=payload.period,
        description=payload.description.strip(),
        created_at=clock.now_iso(),
    )
    store.add_progress_entry(entry)
    return entry.to_json()


@router.get('/children/{child_id}/progress')
def child_progress(child_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    child = require_visible_child(store, user, child_id)
    read_ids = store.get_read_progress_ids(child.id)
    return [
        {**entry.to_json(), 'read': entry.id in read_ids}
        for entry in store.get_progress_entries_for_child(child.id)
    ]
