from datetime import timedelta
from pathlib import Path
import sys


# Ensure imports work when running this file directly: `python scripts/init_db.py`.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from fieldtrack.core.ids import CategoryId, ChildId, GroupId, SessionId, new_id
from fieldtrack.core.time_provider import default_time_provider
from fieldtrack.db import Base, SessionLocal, engine
from fieldtrack.schemas import Category, Child, Group, Session
from fieldtrack.services.domain_store import DomainStore
from fieldtrack.services.identity_store import IdentityStore
from fieldtrack.storage import SqlStorage


Base.metadata.create_all(bind=engine)

storage = SqlStorage(SessionLocal)
identity = IdentityStore(storage)
store = DomainStore(storage, identity)

if not identity.all_users():
    identity.register('Demo Trainer', 'trainer@example.com', 'trainer123', 'trainer')
    trainer = identity.current_user
    group = Group(id=GroupId(new_id('group')), name='U10 Tigers', trainer_id=trainer.id)
    store.add_group(group)

    identity.register('Demo Parent', 'parent@example.com', 'parent123', 'parent')
    parent = identity.current_user
    child = Child(id=ChildId(new_id('child')), name='Ola', parent_id=parent.id)
    store.add_child(child)
    store.move_child_to_group(child.id, group.id)

    next_week = default_time_provider.today() + timedelta(days=7)
    store.add_session(
        Session(
            id=SessionId(new_id('session')),
            title='Saturday match',
            date=next_week.isoformat(),
            categories=[
                Category(id=CategoryId(new_id('cat')), name='Goals', type='counter'),
                Category(id=CategoryId(new_id('cat')), name='Comment', type='text'),
            ],
            trainer_id=trainer.id,
            group_id=group.id,
        )
    )
    identity.logout()

print('DB initialized with sample data.')
