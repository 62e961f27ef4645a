from hypothesis import given
from hypothesis import strategies as st

from app.services.aggregator import percentage, summarize_epic

STATUSES = ["Done", "To Do", "In Progress", "PO Review", "Declined", "Won't Do"]


@given(st.integers(min_value=0, max_value=10_000), st.integers(min_value=0, max_value=10_000))
def test_percentage_bounds_and_rounding(part, extra):
    total = part + extra
    value = percentage(part, total)

    assert 0.0 <= value <= 100.0
    assert value == round(value, 2)
    if total == 0:
        assert value == 0.0


@given(st.lists(st.sampled_from(STATUSES), max_size=60))
def test_epic_buckets_partition_issues(statuses):
    issues = [{"fields": {"status": {"name": s}}} for s in statuses]

    progress = summarize_epic("OPR-3401", issues)

    assert progress.total_stories == len(statuses)
    assert (
        progress.done_stories + progress.todo_stories + progress.po_review_stories + progress.declined_stories
        == len(statuses)
    )
    assert progress.done_stories == statuses.count("Done")
    assert 0.0 <= progress.progress_percentage <= 100.0
