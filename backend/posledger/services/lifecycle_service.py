# Overview: Lifecycle state machine for catalog entities (products and variants).

"""
Catalog Lifecycle

STATE MACHINE:
    active <-> inactive
    active  -> deleted
    inactive -> deleted

    active:   listed in the POS catalog and sellable
    inactive: hidden from the POS catalog; existing carts may still sell it
    deleted:  terminal; cannot be sold, adjusted, or reactivated

RULES:
1. deleted is terminal (no transition out of it)
2. Entering deleted stamps deleted_at
3. A no-op transition is rejected so callers notice stale UI state
"""

from __future__ import annotations

from ..errors import LifecycleError
from ..models.catalog import LIFECYCLE_STATES, STATE_ACTIVE, STATE_DELETED, STATE_INACTIVE
from ..time_utils import utcnow


_VALID_TRANSITIONS = {
    (STATE_ACTIVE, STATE_INACTIVE),
    (STATE_INACTIVE, STATE_ACTIVE),
    (STATE_ACTIVE, STATE_DELETED),
    (STATE_INACTIVE, STATE_DELETED),
}


def validate_state(state: str) -> None:
    if state not in LIFECYCLE_STATES:
        raise LifecycleError(
            f"Invalid state '{state}'. Must be one of: {', '.join(LIFECYCLE_STATES)}",
            details={"state": state},
        )


def can_transition(from_state: str, to_state: str) -> bool:
    validate_state(from_state)
    validate_state(to_state)
    return (from_state, to_state) in _VALID_TRANSITIONS


def transition(entity, to_state: str, *, label: str) -> tuple[str, str]:
    """
    Move a Product or ProductVariant to to_state.

    Returns (old_state, new_state). Raises LifecycleError on an invalid
    transition. Does not commit.
    """
    from_state = entity.lifecycle_state
    if not can_transition(from_state, to_state):
        raise LifecycleError(
            f"Cannot change {label} {entity.id} from '{from_state}' to '{to_state}'",
            details={"id": entity.id, "from_state": from_state, "to_state": to_state},
        )

    entity.lifecycle_state = to_state
    if to_state == STATE_DELETED:
        entity.deleted_at = utcnow()
    return from_state, to_state
