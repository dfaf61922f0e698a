# apps/invoicing/aging.py
"""
Aging classification of open balances by days past due.
"""
from dataclasses import dataclass


CURRENT = 'current'
DAYS_1_30 = '1-30'
DAYS_31_60 = '31-60'
DAYS_61_90 = '61-90'
DAYS_90_PLUS = '90+'

BUCKETS = [CURRENT, DAYS_1_30, DAYS_31_60, DAYS_61_90, DAYS_90_PLUS]

BUCKET_CHOICES = [(bucket, bucket) for bucket in BUCKETS]


@dataclass(frozen=True)
class Aging:
    days_overdue: int
    bucket: str  # None when nothing is owed


class AgingClassifier:
    """
    Usage:
        AgingClassifier.classify(due_date, as_of, amount_due).bucket  # '31-60'
    """

    @staticmethod
    def days_overdue(due_date, as_of):
        if due_date is None:
            return 0
        return max(0, (as_of - due_date).days)

    @staticmethod
    def bucket_for_days(days):
        if days <= 0:
            return CURRENT
        elif days <= 30:
            return DAYS_1_30
        elif days <= 60:
            return DAYS_31_60
        elif days <= 90:
            return DAYS_61_90
        return DAYS_90_PLUS

    @classmethod
    def classify(cls, due_date, as_of, amount_due):
        days = cls.days_overdue(due_date, as_of)
        if amount_due <= 0:
            return Aging(days_overdue=0, bucket=None)
        return Aging(days_overdue=days, bucket=cls.bucket_for_days(days))
