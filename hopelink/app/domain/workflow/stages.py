"""
Workflow stage tables.

Single source of truth for the ordered status sequences of donations,
requests and deliveries, plus the terminal outcomes that sit outside them.
Rendering clients fetch these tables through the workflow API instead of
declaring their own copies.

Lookups are lenient: an unknown or missing status resolves to the first
stage so that something can always be rendered. Terminal statuses resolve to
their own records and never receive an ordinal.
"""

import enum
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Tuple, Union


class EntityType(str, enum.Enum):
    """Entities that carry a workflow status."""
    DONATION = "donation"
    REQUEST = "request"
    DELIVERY = "delivery"


class Actor(str, enum.Enum):
    """Which party normally moves an entity into a stage."""
    DONOR = "donor"
    RECIPIENT = "recipient"
    VOLUNTEER = "volunteer"
    SYSTEM = "system"
    ALL = "all"


@dataclass(frozen=True)
class Stage:
    """A named point in a linear lifecycle."""
    id: str
    ordinal: int
    label: str
    actor: Actor
    icon: str
    color: str
    description: str
    aliases: Tuple[str, ...] = field(default=())

    is_terminal = False

    @property
    def status_ids(self) -> Tuple[str, ...]:
        return (self.id,) + self.aliases


@dataclass(frozen=True)
class TerminalStatus:
    """An exception outcome (cancelled, expired, ...) outside the linear sequence."""
    id: str
    label: str
    icon: str
    color: str
    description: str

    is_terminal = True
    ordinal = None


# (id, label, actor, icon, color, description, aliases)
_DONATION_ROWS = (
    ("available", "Available", Actor.DONOR, "package", "blue",
     "Donation is posted and available for matching", ()),
    ("matched", "Matched", Actor.SYSTEM, "sparkles", "purple",
     "Matched with a recipient", ()),
    ("claimed", "Claimed", Actor.RECIPIENT, "heart", "pink",
     "Recipient has claimed the donation", ()),
    ("in_transit", "In Transit", Actor.VOLUNTEER, "truck", "yellow",
     "Donation is on its way to the recipient", ()),
    ("delivered", "Delivered", Actor.VOLUNTEER, "check-circle-2", "green",
     "Donation has been delivered", ()),
    ("completed", "Completed", Actor.ALL, "check-circle-2", "emerald",
     "Delivery confirmed by the recipient", ()),
)

_REQUEST_ROWS = (
    ("open", "Open", Actor.RECIPIENT, "package", "blue",
     "Request is open and waiting for donations", ()),
    ("claimed", "Claimed", Actor.DONOR, "heart", "pink",
     "A donor has claimed the request", ()),
    ("in_progress", "In Progress", Actor.VOLUNTEER, "truck", "yellow",
     "Delivery is in progress", ()),
    ("fulfilled", "Fulfilled", Actor.RECIPIENT, "check-circle-2", "green",
     "Request has been fulfilled and received", ()),
)

# Direct (donor-delivered) statuses are aliases of the volunteer path
_DELIVERY_ROWS = (
    ("pending", "Pending", Actor.SYSTEM, "clock", "gray",
     "Waiting for a volunteer", ("coordination_needed",)),
    ("assigned", "Assigned", Actor.VOLUNTEER, "clock", "blue",
     "Volunteer assigned to the delivery", ("scheduled",)),
    ("accepted", "Accepted", Actor.VOLUNTEER, "check-circle", "purple",
     "Volunteer has started the delivery", ()),
    ("picked_up", "Picked Up", Actor.VOLUNTEER, "package", "yellow",
     "Items collected from the donor", ("out_for_delivery",)),
    ("in_transit", "In Transit", Actor.VOLUNTEER, "truck", "orange",
     "On the way to the recipient", ()),
    ("delivered", "Delivered", Actor.VOLUNTEER, "star", "emerald",
     "Items handed to the recipient", ()),
)

TERMINAL_STATUSES: Dict[str, TerminalStatus] = {
    t.id: t for t in (
        TerminalStatus("cancelled", "Cancelled", "alert-circle", "red",
                       "Withdrawn before completion"),
        TerminalStatus("expired", "Expired", "clock", "gray",
                       "Passed its expiration date"),
        TerminalStatus("rejected", "Rejected", "x-circle", "red",
                       "Rejected by an administrator"),
        TerminalStatus("archived", "Archived", "archive", "gray",
                       "Expired and moved out of active listings"),
    )
}

# Terminal outcomes each entity type can actually be written with
_TERMINALS_BY_TYPE: Dict[EntityType, Tuple[str, ...]] = {
    EntityType.DONATION: ("cancelled", "expired", "rejected", "archived"),
    EntityType.REQUEST: ("cancelled", "expired", "rejected"),
    EntityType.DELIVERY: ("cancelled",),
}


def _build(rows) -> Tuple[Stage, ...]:
    return tuple(
        Stage(id=sid, ordinal=i, label=label, actor=actor, icon=icon,
              color=color, description=desc, aliases=aliases)
        for i, (sid, label, actor, icon, color, desc, aliases) in enumerate(rows)
    )


STAGE_TABLES: Dict[EntityType, Tuple[Stage, ...]] = {
    EntityType.DONATION: _build(_DONATION_ROWS),
    EntityType.REQUEST: _build(_REQUEST_ROWS),
    EntityType.DELIVERY: _build(_DELIVERY_ROWS),
}

_STAGE_INDEX: Dict[EntityType, Dict[str, Stage]] = {
    entity_type: {sid: stage for stage in stages for sid in stage.status_ids}
    for entity_type, stages in STAGE_TABLES.items()
}


def stages_for(entity_type: Union[EntityType, str]) -> Tuple[Stage, ...]:
    """Ordered stage table for an entity type."""
    return STAGE_TABLES[EntityType(entity_type)]


def terminal_statuses_for(entity_type: Union[EntityType, str]) -> Tuple[TerminalStatus, ...]:
    return tuple(TERMINAL_STATUSES[t] for t in _TERMINALS_BY_TYPE[EntityType(entity_type)])


def resolve_status(
    entity_type: Union[EntityType, str],
    status: Optional[str]
) -> Union[Stage, TerminalStatus]:
    """
    Map a status value to its display record.

    Stage ids and aliases return their Stage; terminal values return their
    TerminalStatus. Anything else, including None, falls back to the first
    stage. Never raises for a bad status.
    """
    entity_type = EntityType(entity_type)
    if status is not None:
        stage = _STAGE_INDEX[entity_type].get(status)
        if stage is not None:
            return stage
        terminal = TERMINAL_STATUSES.get(status)
        if terminal is not None:
            return terminal
    return STAGE_TABLES[entity_type][0]


def stage_index(entity_type: Union[EntityType, str], status: Optional[str]) -> Optional[int]:
    """Ordinal of a status, 0 for unknown values, None for terminal outcomes."""
    return resolve_status(entity_type, status).ordinal


def is_terminal(status: Optional[str]) -> bool:
    return status in TERMINAL_STATUSES


def is_final(entity_type: Union[EntityType, str], status: Optional[str]) -> bool:
    """True for terminal outcomes and the last stage of the sequence."""
    if is_terminal(status):
        return True
    return status in stages_for(entity_type)[-1].status_ids


def valid_statuses(entity_type: Union[EntityType, str]) -> FrozenSet[str]:
    """Every status string an entity of this type may be stored with."""
    entity_type = EntityType(entity_type)
    return frozenset(_STAGE_INDEX[entity_type]) | frozenset(_TERMINALS_BY_TYPE[entity_type])


def is_known_status(entity_type: Union[EntityType, str], status: Optional[str]) -> bool:
    return status in valid_statuses(entity_type)


def initial_status(entity_type: Union[EntityType, str]) -> str:
    return stages_for(entity_type)[0].id
