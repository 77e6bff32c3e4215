import pytest

from cleandispatch.services.service_area import BoundingBoxServiceArea, parse_bounds


def test_service_area_boxes():
    area = BoundingBoxServiceArea(parse_bounds("-9.1,115.8,-8.0,116.8; -8.9,114.4,-8.0,115.7"))

    assert area.contains(-8.58, 116.1)  # Mataram
    assert area.contains(-8.65, 115.2)  # Denpasar
    assert not area.contains(-6.2, 106.8)  # Jakarta
    assert not area.contains(95.0, 116.1)


def test_bounds_corners_may_be_given_in_any_order():
    (box,) = parse_bounds("-8.0,116.8,-9.1,115.8")

    assert (box.lat_min, box.lng_min, box.lat_max, box.lng_max) == (-9.1, 115.8, -8.0, 116.8)


def test_malformed_bounds_raise():
    with pytest.raises(ValueError):
        parse_bounds("-9.1,115.8,-8.0")


def test_empty_service_area_rejects_everything():
    assert not BoundingBoxServiceArea([]).contains(-8.58, 116.1)
