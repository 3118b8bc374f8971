"""
test_geo.py — Tests for great-circle distance.
"""

import pytest

from sereno.app.spatial.geo import Coordinate, haversine


class TestHaversine:

    def test_same_point(self):
        p = Coordinate(19.4326, -99.1332)
        assert haversine(p, p) == 0.0

    def test_known_distance(self):
        # Mexico City → Guadalajara is roughly 460 km
        cdmx = Coordinate(19.4326, -99.1332)
        gdl = Coordinate(20.6597, -103.3496)
        assert 450 < haversine(cdmx, gdl) < 470

    def test_symmetric(self):
        a = Coordinate(40.4168, -3.7038)
        b = Coordinate(-34.6037, -58.3816)
        assert haversine(a, b) == haversine(b, a)

    @pytest.mark.parametrize("lat, lon", [(90.1, 0), (0, -180.5)])
    def test_out_of_range(self, lat, lon):
        with pytest.raises(ValueError):
            Coordinate(lat, lon)
