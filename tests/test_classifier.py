from indoor_locator.classifier import classify
from indoor_locator.models import BeaconRecord, BeaconTag, FloorStrategy, Observation


def _assert_partition(result, catalog) -> None:
    c = result.classification
    assert c.detected | c.same_floor | c.other == set(catalog)
    assert not c.detected & c.same_floor
    assert not c.detected & c.other
    assert not c.same_floor & c.other


def test_two_beacons_on_first_floor(catalog, model) -> None:
    batch = [Observation("A", -59), Observation("B", -69)]
    result = classify(batch, catalog, model, previous_floor=None)
    assert result.detected == {"A", "B"}
    assert result.floor == 1
    assert result.classification.same_floor == set()
    assert result.classification.other == {"C"}
    _assert_partition(result, catalog)


def test_unknown_beacons_are_ignored(catalog, model) -> None:
    result = classify([Observation("Z", -70)], catalog, model, previous_floor=2)
    assert result.detected == set()
    assert result.floor == 2
    # C is on the sticky floor 2
    assert result.classification["C"] is BeaconTag.SAME_FLOOR
    _assert_partition(result, catalog)


def test_no_observations_keeps_unknown_floor(catalog, model) -> None:
    result = classify([], catalog, model, previous_floor=None)
    assert result.floor is None
    assert result.classification.other == set(catalog)


def test_out_of_range_readings_are_dropped(catalog, model) -> None:
    # -129 dBm -> 10 ** 1.75 ~ 56 m
    result = classify([Observation("A", -129)], catalog, model, None, max_relevant_distance=50.0)
    assert result.detected == set()
    assert result.floor is None


def test_closest_beacon_decides_floor(catalog, model) -> None:
    batch = [Observation("A", -80), Observation("C", -60)]
    result = classify(batch, catalog, model, previous_floor=1)
    assert result.floor == 2
    assert result.detected == {"C"}
    assert result.classification.same_floor == set()
    assert result.classification.other == {"A", "B"}
    _assert_partition(result, catalog)


def test_undetected_beacons_on_current_floor_are_same_floor(catalog, model) -> None:
    result = classify([Observation("A", -60)], catalog, model, previous_floor=None)
    assert result.detected == {"A"}
    assert result.classification["B"] is BeaconTag.SAME_FLOOR
    assert result.classification["C"] is BeaconTag.OTHER


def test_duplicate_readings_keep_the_closest(catalog, model) -> None:
    batch = [Observation("A", -90), Observation("A", -59)]
    result = classify(batch, catalog, model, previous_floor=None)
    assert result.distances["A"] == 1.0


def test_majority_strategy_outvotes_single_close_beacon(model) -> None:
    catalog = {
        "A": BeaconRecord("A", 0.0, 0.0, 1),
        "B": BeaconRecord("B", 0.0, 1.0, 1),
        "C": BeaconRecord("C", 1.0, 1.0, 2),
    }
    batch = [Observation("A", -70), Observation("B", -72), Observation("C", -59)]
    closest = classify(batch, catalog, model, None)
    majority = classify(batch, catalog, model, None, strategy=FloorStrategy.MAJORITY)
    assert closest.floor == 2
    assert majority.floor == 1
    assert majority.detected == {"A", "B"}


def test_majority_tie_is_broken_by_closest(catalog, model) -> None:
    batch = [Observation("A", -70), Observation("C", -60)]
    result = classify(batch, catalog, model, None, strategy=FloorStrategy.MAJORITY)
    assert result.floor == 2


def test_empty_catalog(model) -> None:
    result = classify([Observation("A", -59)], {}, model, previous_floor=None)
    assert result.detected == set()
    assert result.floor is None
    assert len(result.classification) == 0
