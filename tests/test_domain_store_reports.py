import unittest
from datetime import datetime, timedelta, timezone

from fieldtrack.core.time_provider import TimeProvider
from fieldtrack.schemas import Category, Child, Group, ProgressEntry, Report, Session
from fieldtrack.services.domain_store import DomainStore
from fieldtrack.services.identity_store import IdentityStore
from fieldtrack.storage import READ_SESSIONS_BY_CHILD, MemoryStorage, storage_key


class FixedTimeProvider(TimeProvider):
    def __init__(self, frozen_dt: datetime):
        self._frozen_dt = frozen_dt

    def now(self) -> datetime:
        return self._frozen_dt

    def advance(self, **kwargs) -> None:
        self._frozen_dt += timedelta(**kwargs)


JOINED_AT = '2024-01-15T09:00:00.000Z'


def _session(session_id, date):
    return Session(
        id=session_id,
        title='Match',
        date=date,
        categories=[Category(id='goals', name='Goals', type='counter'), Category(id='notes', name='Notes', type='text')],
        trainer_id='t1',
        group_id='g1',
    )


def _report(report_id, session_id, status='draft', submitted_at=None, child_id='c1'):
    return Report(
        id=report_id,
        session_id=session_id,
        child_id=child_id,
        parent_id='p1',
        status=status,
        values={'goals': 1, 'notes': 'good game'},
        updated_at='2024-02-01T12:00:00.000Z',
        submitted_at=submitted_at,
    )


class StoreTestCase(unittest.TestCase):
    def setUp(self):
        self.storage = MemoryStorage()
        self.clock = FixedTimeProvider(datetime(2024, 2, 2, 10, 0, tzinfo=timezone.utc))
        self.identity = IdentityStore(self.storage, self.clock)
        self.store = DomainStore(self.storage, self.identity, self.clock)
        self.store.add_group(Group(id='g1', name='U10', trainer_id='t1'))
        self.store.add_child(
            Child(id='c1', name='Ola', parent_id='p1', group_id='g1', trainer_id='t1', joined_group_at=JOINED_AT)
        )


class PendingSessionTests(StoreTestCase):
    def test_session_before_join_is_not_pending(self):
        self.store.add_session(_session('s-before', '2024-01-10'))

        self.assertEqual(self.store.get_pending_sessions_count_for_child('c1', 'g1'), 0)
        self.assertEqual(self.store.get_visible_sessions_for_child('c1', 'g1'), [])

    def test_session_after_join_is_pending_until_submitted(self):
        self.store.add_session(_session('s-before', '2024-01-10'))
        self.store.add_session(_session('s-after', '2024-02-01'))
        self.assertEqual(self.store.get_pending_sessions_count_for_child('c1', 'g1'), 1)

        self.store.add_report(_report('r1', 's-after', status='submitted'))

        self.assertEqual(self.store.get_pending_sessions_count_for_child('c1', 'g1'), 0)

    def test_draft_report_still_counts_as_pending(self):
        self.store.add_session(_session('s1', '2024-02-01'))
        self.store.add_report(_report('r1', 's1'))

        self.assertEqual(self.store.get_pending_sessions_count_for_child('c1', 'g1'), 1)

        self.store.submit_report('r1')
        self.assertEqual(self.store.get_pending_sessions_count_for_child('c1', 'g1'), 0)

    def test_session_on_join_day_is_not_owed(self):
        # A bare date sorts before any timestamp of the same day.
        self.store.add_session(_session('s-join-day', JOINED_AT[:10]))
        self.store.add_session(_session('s-next-day', '2024-01-16'))

        visible = [s.id for s in self.store.get_visible_sessions_for_child('c1', 'g1')]
        self.assertEqual(visible, ['s-next-day'])
        self.assertEqual(self.store.get_pending_sessions_count_for_child('c1', 'g1'), 1)
        self.assertEqual(self.store.get_unread_session_count('c1', 'g1'), 1)

    def test_session_stamped_at_join_instant_is_owed(self):
        self.store.add_session(_session('s-at-join', JOINED_AT))

        self.assertEqual(self.store.get_pending_sessions_count_for_child('c1', 'g1'), 1)

    def test_unread_session_count_uses_same_visibility_window(self):
        self.store.add_session(_session('s-before', '2024-01-10'))
        self.store.add_session(_session('s-after', '2024-02-01'))

        self.assertEqual(self.store.get_unread_session_count('c1', 'g1'), 1)

        self.store.mark_sessions_read('c1', ['s-after'])
        self.assertEqual(self.store.get_unread_session_count('c1', 'g1'), 0)

    def test_delete_session_removes_its_reports(self):
        self.store.add_session(_session('s1', '2024-02-01'))
        self.store.add_report(_report('r1', 's1', status='submitted'))

        self.store.delete_session('s1')

        self.assertIsNone(self.store.get_session_by_id('s1'))
        self.assertIsNone(self.store.get_report_by_id('r1'))
        self.assertEqual(self.store.get_submitted_reports_for_child('c1'), [])

    def test_update_session_title(self):
        self.store.add_session(_session('s1', '2024-02-01'))

        self.store.update_session_title('s1', 'Cup final')
        self.store.update_session_title('missing', 'Nope')

        self.assertEqual(self.store.get_session_by_id('s1').title, 'Cup final')


class ReportLifecycleTests(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.store.add_session(_session('s1', '2024-02-01'))
        self.store.add_session(_session('s2', '2024-02-05'))

    def test_second_report_for_same_session_and_child_is_rejected(self):
        first = self.store.add_report(_report('r1', 's1'))
        duplicate = self.store.add_report(_report('r2', 's1', status='submitted'))

        self.assertEqual(first.id, 'r1')
        self.assertEqual(duplicate.id, 'r1')
        self.assertIsNone(self.store.get_report_by_id('r2'))
        self.assertEqual(self.store.get_report_for_session_and_child('s1', 'c1').status, 'draft')

    def test_submitted_report_without_timestamp_is_stamped(self):
        stored = self.store.add_report(_report('r1', 's1', status='submitted'))

        self.assertEqual(stored.submitted_at, '2024-02-02T10:00:00.000Z')

    def test_update_report_replaces_values_and_refreshes_updated_at(self):
        self.store.add_report(_report('r1', 's1'))
        self.clock.advance(hours=1)

        replacement = _report('r1', 's1').model_copy(update={'values': {'goals': 3}})
        self.store.update_report(replacement)

        stored = self.store.get_report_by_id('r1')
        self.assertEqual(stored.values, {'goals': 3})
        self.assertEqual(stored.updated_at, '2024-02-02T11:00:00.000Z')
        self.assertEqual(stored.status, 'draft')

    def test_submitted_report_never_returns_to_draft(self):
        self.store.add_report(_report('r1', 's1'))
        self.store.submit_report('r1')
        submitted_at = self.store.get_report_by_id('r1').submitted_at

        self.store.update_report(_report('r1', 's1', status='draft'))

        stored = self.store.get_report_by_id('r1')
        self.assertEqual(stored.status, 'submitted')
        self.assertEqual(stored.submitted_at, submitted_at)

    def test_resubmission_restamps_submitted_at(self):
        self.store.add_report(_report('r1', 's1'))
        self.store.submit_report('r1')
        self.clock.advance(days=1)

        self.store.submit_report('r1')

        stored = self.store.get_report_by_id('r1')
        self.assertEqual(stored.status, 'submitted')
        self.assertEqual(stored.submitted_at, '2024-02-03T10:00:00.000Z')

    def test_submitted_reports_for_child_sorted_by_submission(self):
        self.store.add_report(_report('r1', 's1', status='submitted', submitted_at='2024-02-02T08:00:00.000Z'))
        self.store.add_report(_report('r2', 's2', status='submitted', submitted_at='2024-02-06T08:00:00.000Z'))
        self.store.add_session(_session('s3', '2024-02-07'))
        self.store.add_report(_report('r3', 's3'))

        self.assertEqual([r.id for r in self.store.get_submitted_reports_for_child('c1')], ['r2', 'r1'])
        self.assertEqual([r.id for r in self.store.get_submitted_reports_for_session('s1')], ['r1'])

    def test_unknown_report_operations_are_no_ops(self):
        self.store.update_report(_report('missing', 's1'))
        self.store.submit_report('missing')

        self.assertIsNone(self.store.get_report_by_id('missing'))


class ReadTrackingTests(StoreTestCase):
    def test_marking_read_is_a_monotonic_union(self):
        for session_id, date in (('s1', '2024-02-01'), ('s2', '2024-02-03'), ('s3', '2024-02-05')):
            self.store.add_session(_session(session_id, date))

        self.store.mark_sessions_read('c1', ['s1'])
        self.store.mark_sessions_read('c1', ['s2'])
        self.store.mark_sessions_read('c1', [])

        self.assertEqual(self.store.get_read_session_ids('c1'), {'s1', 's2'})
        self.assertEqual(self.store.get_unread_session_count('c1', 'g1'), 1)
        self.assertEqual(self.storage.load(storage_key(READ_SESSIONS_BY_CHILD)), {'c1': ['s1', 's2']})

    def test_read_sets_survive_reload(self):
        self.store.mark_sessions_read('c1', ['s1'])
        self.store.mark_progress_read('c1', ['p1'])

        reloaded = DomainStore(self.storage, self.identity, self.clock)

        self.assertEqual(reloaded.get_read_session_ids('c1'), {'s1'})
        self.assertEqual(reloaded.get_read_progress_ids('c1'), {'p1'})


class ProgressEntryTests(StoreTestCase):
    def _entry(self, entry_id, created_at, child_id='c1', period='week'):
        return ProgressEntry(
            id=entry_id,
            child_id=child_id,
            group_id='g1',
            trainer_id='t1',
            period=period,
            description='Better first touch',
            created_at=created_at,
        )

    def test_progress_entry_notifies_parent(self):
        self.store.add_progress_entry(self._entry('p1', '2024-02-02T10:00:00.000Z', period='month'))

        notifications = self.store.get_unread_notifications('p1')
        self.assertEqual(len(notifications), 1)
        self.assertEqual(notifications[0].action_type, 'progress_entry')
        self.assertEqual(notifications[0].action_id, 'p1')
        self.assertIn('monthly', notifications[0].message)

    def test_progress_entry_for_unknown_child_has_no_notification(self):
        self.store.add_progress_entry(self._entry('p1', '2024-02-02T10:00:00.000Z', child_id='ghost'))

        self.assertEqual(self.store.get_progress_entries_for_child('ghost')[0].id, 'p1')
        self.assertEqual(self.store.get_unread_notifications('p1'), [])

    def test_unread_progress_count(self):
        self.store.add_progress_entry(self._entry('p1', '2024-02-01T10:00:00.000Z'))
        self.store.add_progress_entry(self._entry('p2', '2024-02-02T10:00:00.000Z'))
        self.assertEqual(self.store.get_unread_progress_count('c1'), 2)

        self.store.mark_progress_read('c1', ['p2'])

        self.assertEqual(self.store.get_unread_progress_count('c1'), 1)
        self.assertEqual([p.id for p in self.store.get_progress_entries_for_child('c1')], ['p2', 'p1'])

    def test_mark_notifications_read(self):
        self.store.add_progress_entry(self._entry('p1', '2024-02-01T10:00:00.000Z'))
        self.store.add_progress_entry(self._entry('p2', '2024-02-02T10:00:00.000Z'))
        first = self.store.get_notifications_for_user('p1')[0]

        self.store.mark_notification_read(first.id)
        self.store.mark_notification_read('missing')
        self.assertEqual(len(self.store.get_unread_notifications('p1')), 1)

        self.store.mark_all_notifications_read('p1')
        self.assertEqual(self.store.get_unread_notifications('p1'), [])
        self.assertEqual(len(self.store.get_notifications_for_user('p1')), 2)


if __name__ == '__main__':
    unittest.main()
