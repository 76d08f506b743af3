import pytest

from stbrecon.observations import Observation, barycentric_samples


def test_samples_are_convex_combinations():
    samples = barycentric_samples()
    assert len(samples) == 4
    for weights in samples:
        assert sum(weights) == pytest.approx(1.0)
        assert all(w >= 0 for w in weights)


def test_sample_corners_in_order():
    corners = [Observation(0, 0.0, 0.0, *w).corner() for w in barycentric_samples()]
    assert corners == [None, 0, 1, 2]


def test_centre_sample_is_not_vertex_sample():
    obs = Observation(3, 10.0, 20.0, 0.3333, 0.3333, 0.3334)
    assert obs.is_vertex_sample() is False


def test_corner_sample_is_vertex_sample():
    obs = Observation(3, 10.0, 20.0, 0.0, 1.0, 0.0)
    assert obs.is_vertex_sample() is True
    assert obs.corner() == 1


def test_row_round_trip():
    row = (7, 12.5, 30.25, 0.0, 0.0, 1.0)
    obs = Observation.from_row(row)
    assert obs.face_id == 7
    assert obs.as_row() == row
    assert obs.weights == (0.0, 0.0, 1.0)


def test_from_row_rejects_wrong_length():
    with pytest.raises(ValueError):
        Observation.from_row([1, 2, 3])