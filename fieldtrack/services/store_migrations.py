from __future__ import annotations

import logging

from fieldtrack.schemas import Child, JoinRequest


logger = logging.getLogger(__name__)


def backfill_joined_group_at(children: list[Child], join_requests: list[JoinRequest], now_iso: str) -> tuple[list[Child], int]:
    """Fill joinedGroupAt for group members stored before the field existed.

    The most recent accepted join request for the same child and group supplies
    the timestamp; members without one are stamped with ``now_iso``.
    """
    patched: list[Child] = []
    changed = 0
    for child in children:
        if not child.group_id or child.joined_group_at:
            patched.append(child)
            continue
        accepted = [
            req.created_at
            for req in join_requests
            if req.child_id == child.id and req.group_id == child.group_id and req.status == 'accepted'
        ]
        joined_at = max(accepted) if accepted else now_iso
        patched.append(child.model_copy(update={'joined_group_at': joined_at}))
        changed += 1
        logger.info(
            'joined_group_at_backfilled',
            extra={'child_id': child.id, 'group_id': child.group_id, 'from_request': bool(accepted)},
        )
    return patched, changed
