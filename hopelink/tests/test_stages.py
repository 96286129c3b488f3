"""
Unit tests for the workflow stage tables and lenient status lookup.
"""

import pytest

from hopelink.app.domain.workflow.stages import (
    EntityType, TERMINAL_STATUSES, Stage, TerminalStatus,
    stages_for, resolve_status, stage_index, is_final, is_known_status,
    valid_statuses, initial_status, terminal_statuses_for
)


@pytest.mark.parametrize("entity_type", list(EntityType))
def test_ordinals_follow_declaration_order(entity_type):
    stages = stages_for(entity_type)
    assert [s.ordinal for s in stages] == list(range(len(stages)))
    assert len({s.id for s in stages}) == len(stages)


def test_stage_counts():
    assert [s.id for s in stages_for("donation")] == [
        "available", "matched", "claimed", "in_transit", "delivered", "completed"
    ]
    assert [s.id for s in stages_for("request")] == ["open", "claimed", "in_progress", "fulfilled"]
    assert len(stages_for(EntityType.DELIVERY)) == 6


@pytest.mark.parametrize("alias, canonical", [
    ("coordination_needed", "pending"),
    ("scheduled", "assigned"),
    ("out_for_delivery", "picked_up"),
])
def test_delivery_aliases_share_an_ordinal(alias, canonical):
    assert resolve_status("delivery", alias).id == canonical
    assert stage_index("delivery", alias) == stage_index("delivery", canonical)


@pytest.mark.parametrize("value", [None, "", "bogus_value", "IN_TRANSIT", "fulfilled "])
def test_unknown_status_falls_back_to_first_stage(value):
    record = resolve_status("donation", value)
    assert isinstance(record, Stage)
    assert record.id == "available"
    assert stage_index("donation", value) == 0


def test_status_ids_are_scoped_by_entity_type():
    # "claimed" exists in both lifecycles at different positions
    assert stage_index("donation", "claimed") == 2
    assert stage_index("request", "claimed") == 1
    # a request status is unknown to donations
    assert stage_index("donation", "in_progress") == 0


@pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES))
def test_terminal_statuses_have_no_ordinal(status):
    record = resolve_status("donation", status)
    assert isinstance(record, TerminalStatus)
    assert record.is_terminal
    assert stage_index("donation", status) is None


def test_examples():
    assert stage_index("donation", "in_transit") == 3
    assert stage_index("request", "fulfilled") == 3
    assert resolve_status("delivery", "delivered").label == "Delivered"


def test_is_final():
    assert is_final("donation", "completed")
    assert is_final("donation", "cancelled")
    assert not is_final("donation", "delivered")
    assert is_final("delivery", "delivered")
    assert not is_final("delivery", "out_for_delivery")


def test_valid_statuses_per_type():
    assert "archived" in valid_statuses("donation")
    assert "archived" not in valid_statuses("request")
    assert not is_known_status("delivery", "expired")
    assert is_known_status("delivery", "scheduled")
    assert not is_known_status("request", None)


def test_terminal_statuses_for():
    assert [t.id for t in terminal_statuses_for("delivery")] == ["cancelled"]
    assert [t.id for t in terminal_statuses_for("request")] == ["cancelled", "expired", "rejected"]


def test_initial_status():
    assert initial_status("donation") == "available"
    assert initial_status("request") == "open"
    assert initial_status("delivery") == "pending"


def test_unknown_entity_type_raises():
    with pytest.raises(ValueError):
        stages_for("invoice")
