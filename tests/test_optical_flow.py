import numpy as np
import pytest

from stbrecon.optical_flow import LucasKanadeTracker, bgr_to_gray, pyramidal_lucas_kanade


def _scene(shift_x=0.0, shift_y=0.0, size=80):
    y, x = np.mgrid[0:size, 0:size].astype(float)
    x = x - shift_x
    y = y - shift_y
    return 120.0 + 60.0 * np.sin(x / 6.0) * np.cos(y / 7.0) + 30.0 * np.cos((x + y) / 9.0)


POINTS = np.array([[30.0, 30.0], [40.0, 35.0], [45.0, 48.0]])


def test_gray_of_equal_channels_is_that_value():
    image = np.full((2, 3, 3), 77, dtype=np.uint8)
    gray = bgr_to_gray(image)
    assert gray.dtype == np.uint8
    assert np.all(gray == 77)


def test_gray_extremes():
    image = np.zeros((1, 2, 3), dtype=np.uint8)
    image[0, 1] = 255
    np.testing.assert_array_equal(bgr_to_gray(image), [[0, 255]])


def test_gray_weights_green_above_red_above_blue():
    image = np.zeros((1, 3, 3), dtype=np.uint8)
    image[0, 0, 0] = 255
    image[0, 1, 1] = 255
    image[0, 2, 2] = 255
    blue, green, red = bgr_to_gray(image)[0]
    assert green > red > blue


def test_gray_passes_grey_through():
    grey = np.arange(6, dtype=np.uint8).reshape(2, 3)
    np.testing.assert_array_equal(bgr_to_gray(grey), grey)


def test_gray_rejects_bad_shape():
    with pytest.raises(ValueError):
        bgr_to_gray(np.zeros((2, 2, 2)))


def test_zero_motion_keeps_points():
    image = _scene()
    tracked, status, errors = pyramidal_lucas_kanade(image, image, POINTS, (15, 15), 2, 10, 0.03)
    np.testing.assert_allclose(tracked, POINTS, atol=1e-6)
    assert status.all()
    np.testing.assert_allclose(errors, 0.0, atol=1e-9)


def test_recovers_subpixel_translation():
    previous = _scene()
    current = _scene(2.0, 1.0)
    tracked, status, _ = pyramidal_lucas_kanade(previous, current, POINTS, (15, 15), 2, 10, 0.03)
    assert status.all()
    np.testing.assert_allclose(tracked - POINTS, np.tile([2.0, 1.0], (3, 1)), atol=0.1)


def test_flat_image_loses_points():
    flat = np.full((40, 40), 100.0)
    _, status, _ = pyramidal_lucas_kanade(flat, flat, POINTS[:1] - 10, (9, 9), 1, 10, 0.03)
    assert not status.any()


def test_empty_points():
    image = _scene()
    tracked, status, errors = pyramidal_lucas_kanade(image, image, [], (15, 15), 2, 10, 0.03)
    assert tracked.shape == (0, 2)
    assert status.shape == (0,)
    assert errors.shape == (0,)


def test_rejects_bad_window():
    image = _scene()
    with pytest.raises(ValueError):
        pyramidal_lucas_kanade(image, image, POINTS, (0, 15), 2, 10, 0.03)


def test_rejects_mismatched_images():
    with pytest.raises(ValueError):
        pyramidal_lucas_kanade(_scene(size=40), _scene(), POINTS, (15, 15), 2, 10, 0.03)


def test_tracker_tracks_from_reference_frame():
    config = {"Kanade": {"iteration": 2, "width": 15, "height": 15}}
    reference = np.repeat(_scene()[:, :, None], 3, axis=2)
    moved = np.repeat(_scene(2.0, 1.0)[:, :, None], 3, axis=2)
    tracker = LucasKanadeTracker(reference, POINTS, config)
    assert tracker.window_size == (15, 15)
    first = tracker.track(moved)
    second = tracker.track(moved)
    np.testing.assert_allclose(first, second)
    np.testing.assert_allclose(first - POINTS, np.tile([2.0, 1.0], (3, 1)), atol=0.1)
    assert tracker.status.all()