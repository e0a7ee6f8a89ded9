"""
Bucket Classifier — inbox filtering by status bucket.

Pure functions over any snapshot of applications (ORM rows, dicts or
ApplicationState objects); inputs are never mutated.

Assignee filtering:
    Most buckets list files the officer currently holds (current_user_id).
    The "sent" bucket lists files the officer has passed on, so it is
    matched against previous_user_id instead.
"""

from alms.models.workflow import SENDER_BUCKETS, parse_status
from alms.services.workflow_catalog import get_catalog


def _field(app, name):
    if isinstance(app, dict):
        return app.get(name)
    return getattr(app, name, None)


def _matches(app, codes, bucket_key, assignee_id):
    if parse_status(_field(app, "status_code")) not in codes:
        return False
    if assignee_id is None:
        return True
    holder = "previous_user_id" if bucket_key in SENDER_BUCKETS else "current_user_id"
    return _field(app, holder) == assignee_id


def classify(applications, bucket_key, assignee_id=None, catalog=None) -> list:
    """Applications whose status is in *bucket_key*, optionally for one officer."""
    codes = (catalog or get_catalog()).codes_for_bucket(bucket_key)
    if not codes:
        return []
    return [a for a in applications if _matches(a, codes, bucket_key, assignee_id)]


def counts_by_bucket(applications, bucket_keys, assignee_id=None, catalog=None) -> dict:
    """{bucket_key: count} for summary badges; unknown keys count 0."""
    catalog = catalog or get_catalog()
    snapshot = list(applications)
    return {
        key: len(classify(snapshot, key, assignee_id=assignee_id, catalog=catalog))
        for key in bucket_keys
    }
