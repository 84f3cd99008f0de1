"""
Role-based permission table.

Roles and actions are closed enumerations; the mapping between them is
fixed at deploy time. authorize() is a pure lookup that never raises.
"""

from enum import Enum
from typing import Dict, FrozenSet, Union


class Role(str, Enum):
    GUEST = "guest"                 # Not signed in
    ATTENDEE = "attendee"           # Default for every new account
    ORGANIZER = "organizer"
    CO_ORGANIZER = "co_organizer"   # Holds at least one delegation


class Action(str, Enum):
    BROWSE_EVENTS = "browse_events"
    PURCHASE_TICKETS = "purchase_tickets"
    VIEW_MY_TICKETS = "view_my_tickets"
    CANCEL_TICKET = "cancel_ticket"
    CREATE_EVENT = "create_event"
    UPDATE_EVENT = "update_event"
    DELETE_EVENT = "delete_event"
    VIEW_SALES = "view_sales"
    VIEW_ATTENDEES = "view_attendees"
    ASSIGN_COORGANIZER = "assign_coorganizer"
    REMOVE_COORGANIZER = "remove_coorganizer"


_ATTENDEE_ACTIONS = frozenset({
    Action.BROWSE_EVENTS,
    Action.PURCHASE_TICKETS,
    Action.VIEW_MY_TICKETS,
    Action.CANCEL_TICKET,
})

ROLE_PERMISSIONS: Dict[Role, FrozenSet[Action]] = {
    Role.GUEST: frozenset({Action.BROWSE_EVENTS}),
    Role.ATTENDEE: _ATTENDEE_ACTIONS,
    # Co-organizers still buy tickets for events they do not manage
    Role.CO_ORGANIZER: _ATTENDEE_ACTIONS | {
        Action.UPDATE_EVENT,
        Action.VIEW_ATTENDEES,
        Action.ASSIGN_COORGANIZER,
        Action.REMOVE_COORGANIZER,
    },
    Role.ORGANIZER: frozenset({
        Action.BROWSE_EVENTS,
        Action.CREATE_EVENT,
        Action.UPDATE_EVENT,
        Action.DELETE_EVENT,
        Action.VIEW_SALES,
        Action.VIEW_ATTENDEES,
        Action.ASSIGN_COORGANIZER,
        Action.REMOVE_COORGANIZER,
    }),
}


def parse_role(value: Union[Role, str, None]) -> Union[Role, None]:
    """Return the Role for `value`, or None when it is not a known role."""
    try:
        return Role(value)
    except ValueError:
        return None


def permissions_for(role: Union[Role, str, None]) -> FrozenSet[Action]:
    known = parse_role(role)
    if known is None:
        return frozenset()
    return ROLE_PERMISSIONS[known]


def authorize(role: Union[Role, str, None], action: Union[Action, str]) -> bool:
    """
    Check whether `role` may perform `action`.

    Unknown roles and unknown actions are simply not permitted.
    """
    try:
        action = Action(action)
    except ValueError:
        return False
    return action in permissions_for(role)
