from dispatch_app.models.passenger import NOT_SPECIFIED, Passenger
from dispatch_app.services.grouping import arrival_key, departure_key, group_by_location, unassigned_by_location


def passenger(pid, departure, arrival="Office"):
    return Passenger(id=pid, name=pid, departure_address=departure, arrival_address=arrival)


class TestGroupByLocation:
    def test_empty_input(self):
        assert group_by_location([], departure_key) == {}

    def test_keys_in_first_seen_order_and_members_in_input_order(self):
        passengers = [
            passenger("a", "Lac 2"),
            passenger("b", "Ariana"),
            passenger("c", "Lac 2"),
            passenger("d", "Marsa"),
            passenger("e", "Ariana"),
        ]

        groups = group_by_location(passengers, departure_key)

        assert list(groups) == ["Lac 2", "Ariana", "Marsa"]
        assert [p.id for p in groups["Lac 2"]] == ["a", "c"]
        assert [p.id for p in groups["Ariana"]] == ["b", "e"]

    def test_group_by_arrival(self):
        passengers = [passenger("a", "X", "Site A"), passenger("b", "Y", "Site B"), passenger("c", "Z", "Site A")]

        groups = group_by_location(passengers, arrival_key)

        assert {k: [p.id for p in v] for k, v in groups.items()} == {"Site A": ["a", "c"], "Site B": ["b"]}

    def test_missing_address_grouped_under_placeholder(self):
        groups = group_by_location([passenger("a", None), passenger("b", None)], departure_key)
        assert list(groups) == [NOT_SPECIFIED]

    def test_unassigned_drops_placed_passengers_and_empty_groups(self):
        passengers = [passenger("a", "Lac 2"), passenger("b", "Ariana"), passenger("c", "Lac 2")]

        groups = unassigned_by_location(passengers, ["b", "c"], departure_key)

        assert {k: [p.id for p in v] for k, v in groups.items()} == {"Lac 2": ["a"]}
