from fastapi import APIRouter, Depends, HTTPException, Query

from fieldtrack.core.ids import GroupId, new_id
from fieldtrack.core.router_guard import get_domain_store, require_auth_user, require_owned_group, require_role
from fieldtrack.route_logging import EndpointNameRoute
from fieldtrack.schemas import Group, GroupCreateRequest, GroupUpdateRequest, User
from fieldtrack.services.domain_store import DomainStore


router = APIRouter(prefix='/api', tags=['Groups'], route_class=EndpointNameRoute)


@router.post('/groups')
def create_group(
    payload: GroupCreateRequest,
    user: User = Depends(require_auth_user),
    store: DomainStore = Depends(get_domain_store),
):
    require_role(user, {'trainer'})
    group = Group(id=GroupId(new_id('group')), name=payload.name.strip(), trainer_id=user.id)
    store.add_group(group)
    return group.to_json()


@router.get('/groups')
def list_groups(user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    require_role(user, {'trainer'})
    return [
        {**group.to_json(), 'childrenCount': len(store.get_children_for_group(group.id))}
        for group in store.get_groups_for_trainer(user.id)
    ]


@router.get('/groups/{group_id}')
def get_group(group_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    group = store.get_group_by_id(group_id)
    if not group:
        raise HTTPException(status_code=404, detail='Group not found')
    return group.to_json()


@router.patch('/groups/{group_id}')
def rename_group(
    group_id: str,
    payload: GroupUpdateRequest,
    user: User = Depends(require_auth_user),
    store: DomainStore = Depends(get_domain_store),
):
    require_owned_group(store, user, group_id)
    store.update_group(group_id, payload.name.strip())
    return store.get_group_by_id(group_id).to_json()


@router.delete('/groups/{group_id}')
def delete_group(group_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    require_owned_group(store, user, group_id)
    store.delete_group(group_id)
    return {'success': True}


@router.get('/groups/{group_id}/children')
def group_children(group_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    require_owned_group(store, user, group_id)
    return [child.to_json() for child in store.get_children_for_group(group_id)]


@router.get('/trainers/search')
def search_trainers(
    q: str = Query(default=''),
    user: User = Depends(require_auth_user),
    store: DomainStore = Depends(get_domain_store),
):
    return [
        {'id': hit.id, 'name': hit.name, 'groups': [group.to_json() for group in hit.groups]}
        for hit in store.search_trainers(q)
    ]
