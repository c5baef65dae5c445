from fastapi import APIRouter, Depends

from fieldtrack.core.router_guard import get_domain_store, require_auth_user
from fieldtrack.route_logging import EndpointNameRoute
from fieldtrack.schemas import User
from fieldtrack.services.domain_store import DomainStore


router = APIRouter(prefix='/api/notifications', tags=['Notifications'], route_class=EndpointNameRoute)


@router.get('')
def list_notifications(
    unread_only: bool = False,
    user: User = Depends(require_auth_user),
    store: DomainStore = Depends(get_domain_store),
):
    if unread_only:
        rows = store.get_unread_notifications(user.id)
    else:
        rows = store.get_notifications_for_user(user.id)
    return [row.to_json() for row in rows]


@router.get('/unread-count')
def unread_count(user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    return {'unread': len(store.get_unread_notifications(user.id))}


@router.post('/read-all')
def mark_all_read(user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    store.mark_all_notifications_read(user.id)
    return {'unread': 0}


@router.post('/{notification_id}/read')
def mark_read(notification_id: str, user: User = Depends(require_auth_user), store: DomainStore = Depends(get_domain_store)):
    # Only the owner's notifications are touched; anything else is a silent no-op.
    if any(n.id == notification_id for n in store.get_notifications_for_user(user.id)):
        store.mark_notification_read(notification_id)
    return {'unread': len(store.get_unread_notifications(user.id))}
