# apps/invoicing/tests/test_aging.py
from datetime import date, timedelta
from decimal import Decimal

from django.test import SimpleTestCase

from apps.invoicing.aging import BUCKETS, AgingClassifier

AS_OF = date(2026, 10, 19)


class AgingClassifierTest(SimpleTestCase):

    def bucket(self, days_past_due, amount_due=Decimal('100.00')):
        due_date = AS_OF - timedelta(days=days_past_due)
        return AgingClassifier.classify(due_date, AS_OF, amount_due).bucket

    def test_bucket_boundaries(self):
        cases = [
            (-10, 'current'),
            (0, 'current'),
            (1, '1-30'),
            (30, '1-30'),
            (31, '31-60'),
            (45, '31-60'),
            (60, '31-60'),
            (61, '61-90'),
            (90, '61-90'),
            (91, '90+'),
            (400, '90+'),
        ]
        for days, expected in cases:
            with self.subTest(days=days):
                self.assertEqual(self.bucket(days), expected)

    def test_days_overdue_never_negative(self):
        aging = AgingClassifier.classify(AS_OF + timedelta(days=5), AS_OF, Decimal('1.00'))
        self.assertEqual(aging.days_overdue, 0)

    def test_nothing_owed_has_no_bucket(self):
        aging = AgingClassifier.classify(AS_OF - timedelta(days=45), AS_OF, Decimal('0.00'))
        self.assertIsNone(aging.bucket)
        self.assertEqual(aging.days_overdue, 0)

    def test_missing_due_date_is_current(self):
        self.assertEqual(AgingClassifier.classify(None, AS_OF, Decimal('1.00')).bucket, 'current')

    def test_bucket_only_moves_forward_in_time(self):
        due_date = AS_OF
        previous = -1
        for offset in range(-5, 200):
            as_of = AS_OF + timedelta(days=offset)
            first = AgingClassifier.classify(due_date, as_of, Decimal('75.00'))
            second = AgingClassifier.classify(due_date, as_of, Decimal('75.00'))
            with self.subTest(as_of=as_of):
                self.assertEqual(first, second)
                index = BUCKETS.index(first.bucket)
                self.assertGreaterEqual(index, previous)
                previous = index
        self.assertEqual(BUCKETS[previous], '90+')
