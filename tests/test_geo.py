import pytest

from surelink.utils.geo import Position, distance_meters, format_distance

TOKYO = Position(35.0, 139.0)


class TestDistanceMeters:

    @pytest.mark.parametrize(
        "p",
        [Position(0, 0), TOKYO, Position(90, 180), Position(-90, -180), Position(-33.86, 151.2)],
    )
    def test_same_point_is_zero(self, p):
        assert distance_meters(p, p) == pytest.approx(0, abs=1e-6)

    def test_symmetric(self):
        a, b = TOKYO, Position(51.5, -0.12)
        assert distance_meters(a, b) == distance_meters(b, a)

    def test_nearby_points_are_about_a_metre_apart(self):
        d = distance_meters(TOKYO, Position(35.00001, 139.00001))
        assert 1.0 < d < 2.0

    def test_one_degree_apart_is_about_133km(self):
        d = distance_meters(TOKYO, Position(36.0, 140.0))
        assert 130_000 < d < 150_000

    def test_one_degree_of_latitude(self):
        # 2 * pi * 6371000 / 360
        assert distance_meters(Position(0, 0), Position(1, 0)) == pytest.approx(111_195, rel=1e-4)

    def test_never_negative(self):
        assert distance_meters(Position(-10, 170), Position(10, -170)) > 0


class TestFormatDistance:

    def test_metres(self):
        assert format_distance(12.4) == "12m"

    def test_kilometres(self):
        assert format_distance(1234) == "1.2km"
