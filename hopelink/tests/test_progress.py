"""
Unit tests for progress computation and status views.
"""

import pytest

from hopelink.app.domain.workflow.progress import (
    COMPLETED, CURRENT, UPCOMING, compute_progress, describe_status
)
from hopelink.app.domain.workflow.stages import stages_for


def test_donation_in_transit():
    view = describe_status("donation", "in_transit")
    assert view.record.ordinal == 3
    assert view.progress.percentage == 60
    assert view.recognized


def test_request_fulfilled():
    view = describe_status("request", "fulfilled")
    assert view.record.ordinal == 3
    assert view.progress.percentage == 100


def test_bogus_value_renders_first_stage():
    view = describe_status("donation", "bogus_value")
    assert view.record.ordinal == 0
    assert view.progress.percentage == 0
    assert view.recognized is False


def test_none_status():
    view = describe_status("delivery", None)
    assert view.record.id == "pending"
    assert view.recognized is False


def test_step_states():
    progress = compute_progress(2, 6)
    states = [s.state for s in progress.steps]
    assert states == [COMPLETED, COMPLETED, CURRENT, UPCOMING, UPCOMING, UPCOMING]
    assert sum(1 for s in progress.steps if s.current) == 1


@pytest.mark.parametrize("entity_type", ["donation", "request", "delivery"])
def test_percentage_is_monotonic_and_bounded(entity_type):
    total = len(stages_for(entity_type))
    percentages = [compute_progress(i, total).percentage for i in range(total)]
    assert percentages == sorted(percentages)
    assert percentages[0] == 0
    assert percentages[-1] == 100


def test_rounds_half_up():
    # 1/8 of the way is 12.5%
    assert compute_progress(1, 9).percentage == 13
    # 1/3 and 2/3
    assert compute_progress(1, 4).percentage == 33
    assert compute_progress(2, 4).percentage == 67


def test_ordinal_is_clamped():
    assert compute_progress(10, 6).percentage == 100
    assert compute_progress(10, 6).current_ordinal == 5
    assert compute_progress(-3, 6).percentage == 0


def test_single_stage_is_complete():
    progress = compute_progress(0, 1)
    assert progress.percentage == 100
    assert progress.steps[0].current


def test_zero_stages_is_an_error():
    with pytest.raises(ValueError):
        compute_progress(0, 0)


@pytest.mark.parametrize("status", ["cancelled", "expired", "rejected", "archived"])
def test_terminal_status_has_no_progress(status):
    view = describe_status("donation", status)
    assert view.is_terminal
    assert view.progress is None
    assert view.record.ordinal is None


def test_alias_is_recognized():
    view = describe_status("delivery", "out_for_delivery")
    assert view.recognized
    assert view.record.id == "picked_up"
    assert view.progress.percentage == 60
