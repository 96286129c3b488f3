"""
Server-authoritative status transition rules.

Clients ask which moves are legal for the current user instead of
re-encoding these rules. Every status write is validated against this table.
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Tuple, Union

from hopelink.app.core.exceptions import (
    EntityLockedError, InvalidTransitionError, UnknownStatusError
)
from hopelink.app.domain.workflow.stages import (
    EntityType, is_final, is_known_status, stages_for
)
from hopelink.app.models.enums import UserRole

SYSTEM = "system"

DONOR = UserRole.DONOR.value
RECIPIENT = UserRole.RECIPIENT.value
VOLUNTEER = UserRole.VOLUNTEER.value
ADMIN = UserRole.ADMIN.value


@dataclass(frozen=True)
class Transition:
    entity_type: EntityType
    source: str
    target: str
    actors: FrozenSet[str]

    def permits(self, role: str) -> bool:
        if role in self.actors:
            return True
        # Admins may trigger anything the system does
        return role == ADMIN and SYSTEM in self.actors


def _rules(entity_type: EntityType, rows) -> Tuple[Transition, ...]:
    out = []
    for sources, targets, actors in rows:
        for source in sources:
            for target in targets:
                out.append(Transition(entity_type, source, target, frozenset(actors)))
    return tuple(out)


def _non_final(entity_type: EntityType) -> Tuple[str, ...]:
    return tuple(
        sid
        for stage in stages_for(entity_type)
        for sid in stage.status_ids
        if not is_final(entity_type, sid)
    )


_DONATION = _rules(EntityType.DONATION, (
    (("available",), ("matched",), (SYSTEM,)),
    (("available", "matched"), ("claimed",), (RECIPIENT,)),
    (("claimed",), ("in_transit",), (VOLUNTEER, DONOR, ADMIN)),
    (("in_transit",), ("delivered",), (VOLUNTEER, DONOR, ADMIN)),
    (("delivered",), ("completed",), (RECIPIENT, ADMIN)),
    (("available", "matched"), ("cancelled",), (DONOR, ADMIN)),
    (_non_final(EntityType.DONATION), ("expired",), (SYSTEM,)),
    (("available", "matched"), ("rejected",), (ADMIN,)),
    (("expired",), ("archived",), (SYSTEM,)),
    # Released when its delivery is cancelled
    (("claimed", "in_transit"), ("available",), (SYSTEM,)),
))

_REQUEST = _rules(EntityType.REQUEST, (
    (("open",), ("claimed",), (DONOR,)),
    (("claimed",), ("in_progress",), (VOLUNTEER, DONOR, ADMIN)),
    (("in_progress",), ("fulfilled",), (RECIPIENT, ADMIN)),
    (("open",), ("fulfilled", "expired", "rejected"), (ADMIN,)),
    (("open",), ("cancelled",), (RECIPIENT, ADMIN)),
    (("cancelled", "expired"), ("open",), (ADMIN,)),
))

_DELIVERY = _rules(EntityType.DELIVERY, (
    (("pending",), ("assigned",), (VOLUNTEER, ADMIN)),
    (("assigned",), ("accepted",), (VOLUNTEER,)),
    (("accepted",), ("picked_up",), (VOLUNTEER,)),
    (("picked_up",), ("in_transit",), (VOLUNTEER,)),
    (("in_transit",), ("delivered",), (VOLUNTEER, ADMIN)),
    (("coordination_needed",), ("scheduled",), (DONOR,)),
    (("scheduled",), ("out_for_delivery",), (DONOR,)),
    (("out_for_delivery",), ("delivered",), (DONOR, ADMIN)),
    (_non_final(EntityType.DELIVERY), ("cancelled",), (DONOR, RECIPIENT, ADMIN)),
))

TRANSITIONS = {
    EntityType.DONATION: _DONATION,
    EntityType.REQUEST: _REQUEST,
    EntityType.DELIVERY: _DELIVERY,
}

# Owner edits and deletes are only allowed before anyone else is involved
EDITABLE_STATUSES = {
    EntityType.DONATION: frozenset({"available"}),
    EntityType.REQUEST: frozenset({"open"}),
}

DELETABLE_STATUSES = {
    EntityType.DONATION: frozenset({"available", "cancelled", "expired"}),
    EntityType.REQUEST: frozenset({"open", "cancelled", "expired"}),
}


def _role_value(role: Union[UserRole, str]) -> str:
    return role.value if isinstance(role, UserRole) else role


def transitions_from(
    entity_type: Union[EntityType, str],
    current_status: Optional[str]
) -> List[Transition]:
    entity_type = EntityType(entity_type)
    return [t for t in TRANSITIONS[entity_type] if t.source == current_status]


def allowed_transitions(
    entity_type: Union[EntityType, str],
    current_status: Optional[str],
    role: Union[UserRole, str]
) -> List[Transition]:
    """Transitions the given role may perform from the current status."""
    role = _role_value(role)
    return [t for t in transitions_from(entity_type, current_status) if t.permits(role)]


def allowed_targets(
    entity_type: Union[EntityType, str],
    current_status: Optional[str],
    role: Union[UserRole, str]
) -> List[str]:
    return _dedupe(t.target for t in allowed_transitions(entity_type, current_status, role))


def can_transition(
    entity_type: Union[EntityType, str],
    current_status: Optional[str],
    new_status: str,
    role: Union[UserRole, str]
) -> bool:
    return new_status in allowed_targets(entity_type, current_status, role)


def validate_transition(
    entity_type: Union[EntityType, str],
    current_status: Optional[str],
    new_status: str,
    role: Union[UserRole, str]
) -> Transition:
    """
    Return the matching transition or raise.

    Raises:
        UnknownStatusError: new_status is not a status of this entity type
        InvalidTransitionError: the move is not legal for this role
    """
    entity_type = EntityType(entity_type)
    if not is_known_status(entity_type, new_status):
        raise UnknownStatusError(entity_type.value, new_status)

    for transition in allowed_transitions(entity_type, current_status, role):
        if transition.target == new_status:
            return transition

    raise InvalidTransitionError(
        entity_type.value,
        current_status,
        new_status,
        allowed=allowed_targets(entity_type, current_status, role),
    )


def ensure_editable(entity_type: Union[EntityType, str], status: str) -> None:
    entity_type = EntityType(entity_type)
    if status not in EDITABLE_STATUSES[entity_type]:
        raise EntityLockedError(
            f"Cannot edit a {entity_type.value} that is '{status}'",
            current_status=status,
        )


def ensure_deletable(entity_type: Union[EntityType, str], status: str) -> None:
    entity_type = EntityType(entity_type)
    if status not in DELETABLE_STATUSES[entity_type]:
        raise EntityLockedError(
            f"Cannot delete a {entity_type.value} that is '{status}'",
            current_status=status,
        )


def _dedupe(values: Iterable[str]) -> List[str]:
    seen = []
    for v in values:
        if v not in seen:
            seen.append(v)
    return seen
