"""AR aging summary over the projected alert set."""

from collections.abc import Iterable

from cpa_alerts.models import AgingSummary, ARAlert, BucketTotal


def _bucket_for(summary: AgingSummary, bucket: int) -> BucketTotal:
    if bucket == 0:
        return summary.current
    if bucket == 30:
        return summary.thirty
    if bucket == 60:
        return summary.sixty
    if bucket == 90:
        return summary.ninety
    return summary.one_twenty_plus


def summarize_aging(alerts: Iterable[ARAlert]) -> AgingSummary:
    """Bucket already-projected AR alerts by aging bucket.

    The caller passes the visible set, so handled and dismissed alerts never
    reach a bucket.
    """
    summary = AgingSummary()
    for alert in alerts:
        summary.total.add(alert.overdue_amount)
        _bucket_for(summary, alert.aging_bucket).add(alert.overdue_amount)

    summary.ninety_plus = BucketTotal(
        count=summary.ninety.count + summary.one_twenty_plus.count,
        amount=summary.ninety.amount + summary.one_twenty_plus.amount,
    )
    return summary
