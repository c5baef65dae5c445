from fastapi import APIRouter, Depends, HTTPException

from fieldtrack.core.ids import JoinRequestId, new_id
from fieldtrack.core.router_guard import (
    get_domain_store,
    get_time_provider,
    require_auth_user,
    require_role,
    require_visible_child,
)
from fieldtrack.core.time_provider import TimeProvider
from fieldtrack.route_logging import EndpointNameRoute
from fieldtrack.schemas import JoinRequest, JoinRequestCreateRequest, User
from fieldtrack.services.domain_store import DomainStore


router = APIRouter(prefix='/api/join-requests', tags=['Join Requests'], route_class=EndpointNameRoute)


def _with_names(store: DomainStore, request: JoinRequest) -> dict:
    child = store.get_child_by_id(request.child_id)
    group = store.get_group_by_id(request.group_id)
    return {
        **request.to_json(),
        'childName': child.name if child else None,
        'groupName': group.name if group else None,
    }


def _require_trainer_request(store: DomainStore, user: User, request_id: str) -> JoinRequest:
    require_role(user, {'trainer'})
    request = next((r for r in store.get_join_requests_for_trainer(user.id) if r.id == request_id), None)
    if not request:
        raise HTTPException(status_code=404, detail='Join request not found')
    return request


@router.post('')
def send_join_request(
    payload: JoinRequestCreateRequest,
    user: User = Depends(require_auth_user),
    store: DomainStore = Depends(get_domain_store),
    clock: TimeProvider = Depends(get_time_provider),
):
    require_role(user, {'parent'})
    child = require_visible_child(store, user, payload.child_id)
    group = store.get_group_by_id(payload.group_id)
    if not group:
        raise HTTPException(status_code=404, detail='Group not found')
    request = JoinRequest(
        id=JoinRequestId(new_id('jr')),
        child_id=child.id,
        group_id=group.id,
        trainer_id=group.trainer_id,
        parent_id=user.id,
        status='pending',
        created_at=clock.now_iso(),
    )
    store.send_join_request(request)
    return request.to_json()


@router.get('')
def list_join_requests(user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    if user.role == 'trainer':
        rows = store.get_join_requests_for_trainer(user.id)
    else:
        rows = store.get_join_requests_for_parent(user.id)
    return [_with_names(store, row) for row in rows]


@router.get('/pending-count')
def pending_count(user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    require_role(user, {'trainer'})
    return {'pending': store.get_pending_requests_count(user.id)}


@router.post('/{request_id}/accept')
def accept(request_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    _require_trainer_request(store, user, request_id)
    store.accept_join_request(request_id)
    return _with_names(store, _require_trainer_request(store, user, request_id))


@router.post('/{request_id}/reject')
def reject(request_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    _require_trainer_request(store, user, request_id)
    store.reject_join_request(request_id)
    return _with_names(store, _require_trainer_request(store, user, request_id))
