from typing import Callable, Dict, Iterable, List

from dispatch_app.models.passenger import NOT_SPECIFIED, Passenger

LocationKey = Callable[[Passenger], str]


def departure_key(passenger: Passenger) -> str:
    return passenger.departure_address or NOT_SPECIFIED


def arrival_key(passenger: Passenger) -> str:
    return passenger.arrival_address or NOT_SPECIFIED


def group_by_location(passengers: Iterable[Passenger], key_fn: LocationKey = departure_key) -> Dict[str, List[Passenger]]:
    """
    Group passengers by a shared location.

    Keys keep the order in which they were first seen and passengers keep
    their input order inside each group (dicts preserve insertion order).
    """
    groups: Dict[str, List[Passenger]] = {}
    for passenger in passengers:
        groups.setdefault(key_fn(passenger), []).append(passenger)
    return groups


def unassigned_by_location(
    passengers: Iterable[Passenger],
    assigned_ids: Iterable[str],
    key_fn: LocationKey = departure_key,
) -> Dict[str, List[Passenger]]:
    """Same grouping restricted to passengers not placed on any vehicle; empty groups are dropped."""
    placed = set(assigned_ids)
    return group_by_location((p for p in passengers if p.id not in placed), key_fn)
