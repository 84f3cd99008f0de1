from concurrent.futures import ThreadPoolExecutor

import pytest

from ticketing.auth_service import credentials
from ticketing.auth_service.permissions import Role
from ticketing.errors import (
    AlreadyCoOrganizer,
    AuthorizationError,
    NotCoOrganizer,
    NotFoundError,
    TicketingError,
    ValidationError,
)
from ticketing.events_service import delegation, inventory
from ticketing.events_service.inventory import Visibility


def _create(organizer, name="Spring Concert"):
    return inventory.create_event(
        organizer["user_id"], name, None, "2030-05-01T19:00:00Z", 10, 50
    )


def _role(user):
    return credentials.get_current_role(user["user_id"])


def _co_organizers(event):
    return inventory.get_event(event["event_id"], Visibility.MANAGEMENT)["co_organizers"]


def test_assign_then_delete_event_resets_role(organizer, make_user):
    event = _create(organizer)
    helper = make_user()

    result = delegation.assign_coorganizer(event["event_id"], organizer["user_id"], helper["user_id"])

    assert result["role"] == "co_organizer"
    assert _role(helper) == "co_organizer"
    assert _co_organizers(event) == [helper["user_id"]]

    released = inventory.delete_event(event["event_id"], organizer["user_id"])

    assert released["released_co_organizers"] == [helper["user_id"]]
    assert _role(helper) == "attendee"


def test_assign_twice_leaves_state_unchanged(organizer, make_user):
    event = _create(organizer)
    helper = make_user()
    delegation.assign_coorganizer(event["event_id"], organizer["user_id"], helper["user_id"])

    with pytest.raises(AlreadyCoOrganizer):
        delegation.assign_coorganizer(event["event_id"], organizer["user_id"], helper["user_id"])

    assert _co_organizers(event) == [helper["user_id"]]
    assert _role(helper) == "co_organizer"


def test_assign_requires_creator_or_co_organizer(organizer, make_user):
    event = _create(organizer)
    rival = make_user(Role.ORGANIZER)
    target = make_user()

    with pytest.raises(AuthorizationError):
        delegation.assign_coorganizer(event["event_id"], rival["user_id"], target["user_id"])

    assert _co_organizers(event) == []
    assert _role(target) == "attendee"


def test_co_organizer_can_delegate_further(organizer, make_user):
    event = _create(organizer)
    first = make_user()
    second = make_user()
    delegation.assign_coorganizer(event["event_id"], organizer["user_id"], first["user_id"])

    result = delegation.assign_coorganizer(event["event_id"], first["user_id"], second["user_id"])

    assert result["co_organizers"] == [first["user_id"], second["user_id"]]
    assert _role(second) == "co_organizer"


def test_assign_missing_event(organizer, attendee):
    with pytest.raises(NotFoundError):
        delegation.assign_coorganizer(999, organizer["user_id"], attendee["user_id"])


def test_assign_missing_user(organizer):
    event = _create(organizer)

    with pytest.raises(NotFoundError):
        delegation.assign_coorganizer(event["event_id"], organizer["user_id"], 999)


def test_creator_cannot_be_own_co_organizer(organizer):
    event = _create(organizer)

    with pytest.raises(ValidationError):
        delegation.assign_coorganizer(event["event_id"], organizer["user_id"], organizer["user_id"])


def test_organizer_target_keeps_organizer_role(organizer, make_user):
    event = _create(organizer)
    partner = make_user(Role.ORGANIZER)

    result = delegation.assign_coorganizer(event["event_id"], organizer["user_id"], partner["user_id"])

    assert result["role"] == "organizer"
    assert _co_organizers(event) == [partner["user_id"]]

    delegation.remove_coorganizer(event["event_id"], organizer["user_id"], partner["user_id"])
    assert _role(partner) == "organizer"


def test_remove_co_organizer(organizer, make_user):
    event = _create(organizer)
    helper = make_user()
    delegation.assign_coorganizer(event["event_id"], organizer["user_id"], helper["user_id"])

    result = delegation.remove_coorganizer(event["event_id"], organizer["user_id"], helper["user_id"])

    assert result["role"] == "attendee"
    assert result["co_organizers"] == []
    assert _role(helper) == "attendee"

    with pytest.raises(NotCoOrganizer):
        delegation.remove_coorganizer(event["event_id"], organizer["user_id"], helper["user_id"])


def test_remove_requires_creator_or_co_organizer(organizer, make_user):
    event = _create(organizer)
    helper = make_user()
    stranger = make_user(Role.ORGANIZER)
    delegation.assign_coorganizer(event["event_id"], organizer["user_id"], helper["user_id"])

    with pytest.raises(AuthorizationError):
        delegation.remove_coorganizer(event["event_id"], stranger["user_id"], helper["user_id"])

    assert _co_organizers(event) == [helper["user_id"]]


def test_removal_keeps_role_while_other_delegations_remain(organizer, make_user):
    first = _create(organizer, "First Concert")
    second = _create(organizer, "Second Concert")
    helper = make_user()
    delegation.assign_coorganizer(first["event_id"], organizer["user_id"], helper["user_id"])
    delegation.assign_coorganizer(second["event_id"], organizer["user_id"], helper["user_id"])

    delegation.remove_coorganizer(first["event_id"], organizer["user_id"], helper["user_id"])
    assert _role(helper) == "co_organizer"

    delegation.remove_coorganizer(second["event_id"], organizer["user_id"], helper["user_id"])
    assert _role(helper) == "attendee"


def test_deleting_one_event_keeps_role_from_another(organizer, make_user):
    first = _create(organizer, "First Concert")
    second = _create(organizer, "Second Concert")
    helper = make_user()
    delegation.assign_coorganizer(first["event_id"], organizer["user_id"], helper["user_id"])
    delegation.assign_coorganizer(second["event_id"], organizer["user_id"], helper["user_id"])

    inventory.delete_event(first["event_id"], organizer["user_id"])

    assert _role(helper) == "co_organizer"
    assert _co_organizers(second) == [helper["user_id"]]


def test_concurrent_assigns_of_same_target(organizer, make_user):
    event = _create(organizer)
    helper = make_user()

    def assign(_):
        try:
            delegation.assign_coorganizer(event["event_id"], organizer["user_id"], helper["user_id"])
            return "ok"
        except TicketingError as e:
            return e.kind

    with ThreadPoolExecutor(max_workers=6) as pool:
        outcomes = list(pool.map(assign, range(6)))

    assert outcomes.count("ok") == 1
    assert outcomes.count("already_coorganizer") == 5
    assert _co_organizers(event) == [helper["user_id"]]
    assert _role(helper) == "co_organizer"


def test_concurrent_removals_on_different_events_demote(organizer, make_user):
    first = _create(organizer, "First Concert")
    second = _create(organizer, "Second Concert")
    helper = make_user()
    for event in (first, second):
        delegation.assign_coorganizer(event["event_id"], organizer["user_id"], helper["user_id"])

    def remove(event):
        return delegation.remove_coorganizer(event["event_id"], organizer["user_id"], helper["user_id"])

    with ThreadPoolExecutor(max_workers=2) as pool:
        list(pool.map(remove, [first, second]))

    assert _co_organizers(first) == []
    assert _co_organizers(second) == []
    assert _role(helper) == "attendee"


def test_concurrent_assign_and_remove_on_different_events(organizer, make_user):
    first = _create(organizer, "First Concert")
    second = _create(organizer, "Second Concert")
    helper = make_user()
    delegation.assign_coorganizer(first["event_id"], organizer["user_id"], helper["user_id"])

    with ThreadPoolExecutor(max_workers=2) as pool:
        removal = pool.submit(
            delegation.remove_coorganizer, first["event_id"], organizer["user_id"], helper["user_id"]
        )
        grant = pool.submit(
            delegation.assign_coorganizer, second["event_id"], organizer["user_id"], helper["user_id"]
        )
        removal.result()
        grant.result()

    assert _co_organizers(first) == []
    assert _co_organizers(second) == [helper["user_id"]]
    assert _role(helper) == "co_organizer"
