import unittest
from datetime import date, datetime

from freezegun import freeze_time

from fieldtrack.core.time_provider import default_time_provider, to_iso


class TimeProviderTests(unittest.TestCase):
    @freeze_time('2024-03-10 12:00:00')
    def test_now_iso_is_utc_with_milliseconds(self):
        self.assertEqual(default_time_provider.now_iso(), '2024-03-10T12:00:00.000Z')

    @freeze_time('2024-03-10 23:30:00')
    def test_today_follows_app_timezone(self):
        # 23:30 UTC is already past midnight in Warsaw.
        self.assertEqual(default_time_provider.today(), date(2024, 3, 11))

    def test_naive_datetimes_are_rejected(self):
        with self.assertRaises(ValueError):
            to_iso(datetime(2024, 3, 10, 12, 0))


if __name__ == '__main__':
    unittest.main()
