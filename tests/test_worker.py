import pytest

from cleandispatch.worker import sweep_minutes


@pytest.mark.parametrize("interval, minutes", [(5, set(range(0, 60, 5))), (15, {0, 15, 30, 45}), (0, set(range(60)))])
def test_sweep_schedule(interval, minutes):
    assert sweep_minutes(interval) == minutes
