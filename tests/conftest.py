import pytest

from indoor_locator.models import BeaconRecord, CalibrationModel


@pytest.fixture
def catalog():
    return {
        "A": BeaconRecord(id="A", latitude=0.0, longitude=0.0, floor_id=1),
        "B": BeaconRecord(id="B", latitude=0.0, longitude=2.0, floor_id=1),
        "C": BeaconRecord(id="C", latitude=5.0, longitude=5.0, floor_id=2),
    }


@pytest.fixture
def model():
    return CalibrationModel(tx_power_at_1m=-59.0, path_loss_exponent=4.0)
