# -*- coding: utf-8 -*-
import numpy as np
from numpy.testing import assert_array_almost_equal
import pytest

from tractmap.tractanalysis.curvature import (compute_arc_length_matrix,
                                              compute_raw_tangents,
                                              curvature_along_streamline,
                                              curvature_from_tangents,
                                              repair_tangents,
                                              smooth_tangents)
from tractmap.tractograms.streamline import Streamline


def test_raw_tangents():
    points = np.array([[0, 0, 0], [0, 0, 0], [1, 0, 0], [2, 0, 0],
                       [2, 3, 0]], dtype=float)
    tangents, valid = compute_raw_tangents(points)

    assert np.array_equal(valid, [False, True, True, True, True])
    assert_array_almost_equal(tangents, [[0, 0, 0],
                                         [1, 0, 0],
                                         [1, 0, 0],
                                         [np.sqrt(0.1), np.sqrt(0.9), 0],
                                         [0, 1, 0]])


def test_raw_tangents_two_points():
    tangents, valid = compute_raw_tangents(np.array([[0, 0, 0],
                                                     [0, 0, 2.]]))
    assert np.all(valid)
    assert_array_almost_equal(tangents, [[0, 0, 1], [0, 0, 1]])


def test_repair_tangents_interior():
    tangents = np.array([[1, 0, 0], [0, 0, 0], [0, 0, 0], [0, 1, 0]],
                        dtype=float)
    valid = np.array([True, False, False, True])
    repaired = repair_tangents(tangents, valid)

    expected = np.array([1, 1, 0]) / np.sqrt(2)
    assert_array_almost_equal(repaired[1], expected)
    assert_array_almost_equal(repaired[2], expected)
    # Valid tangents untouched, input untouched
    assert_array_almost_equal(repaired[[0, 3]], tangents[[0, 3]])
    assert np.all(tangents[1] == 0)


def test_repair_tangents_endpoints():
    tangents = np.array([[0, 0, 0], [0, 0, 0], [0, 1, 0], [1, 0, 0],
                         [0, 0, 0]], dtype=float)
    valid = np.array([False, False, True, True, False])
    repaired = repair_tangents(tangents, valid)

    # First vertex searches right, last vertex searches left.
    assert_array_almost_equal(repaired[0], [0, 1, 0])
    assert_array_almost_equal(repaired[1], [0, 1, 0])
    assert_array_almost_equal(repaired[4], [1, 0, 0])


def test_repair_tangents_opposite_neighbours():
    tangents = np.array([[1, 0, 0], [0, 0, 0], [-1, 0, 0]], dtype=float)
    repaired = repair_tangents(tangents, np.array([True, False, True]))
    assert_array_almost_equal(repaired[1], [1, 0, 0])


def test_repair_tangents_nothing_valid():
    tangents = np.zeros((3, 3))
    repaired = repair_tangents(tangents, np.zeros(3, dtype=bool))
    assert np.array_equal(repaired, tangents)


def test_arc_length_matrix():
    distances = compute_arc_length_matrix(np.array([1., 2., 3.]))

    assert distances.shape == (4, 4)
    assert np.array_equal(distances, distances.T)
    assert np.all(np.diag(distances) == 0)
    assert distances[0, 1] == 1.
    assert distances[0, 3] == 6.
    assert distances[1, 3] == 5.
    assert distances[2, 1] == 2.

    cumulated = np.concatenate([[0.], np.cumsum([1., 2., 3.])])
    assert_array_almost_equal(distances,
                              np.abs(cumulated[:, None] - cumulated[None]))


def test_smooth_tangents():
    tangents = np.array([[1, 0, 0], [0, 1, 0]], dtype=float)
    distances = compute_arc_length_matrix(np.array([1.]))

    # Tiny kernel: no smoothing
    assert_array_almost_equal(smooth_tangents(tangents, distances, 1e-3),
                              tangents)

    # Huge kernel: both tangents become the mean direction
    smoothed = smooth_tangents(tangents, distances, 1e6)
    expected = np.array([1, 1, 0]) / np.sqrt(2)
    assert_array_almost_equal(smoothed, [expected, expected])

    with pytest.raises(ValueError):
        smooth_tangents(tangents, distances, 0.)


def test_curvature_from_tangents_no_nan():
    tangents = np.array([[1, 0, 0], [np.nan, np.nan, np.nan], [0, 1, 0]])
    distances = compute_arc_length_matrix(np.array([1., 1.]))
    curvatures = curvature_from_tangents(tangents, distances)

    assert np.all(np.isfinite(curvatures))
    assert np.isclose(curvatures[1], np.pi / 4)
    assert curvatures[0] == 0.
    assert curvatures[2] == 0.


def test_curvature_straight_line():
    points = np.array([[i, 0., 0.] for i in range(10)])
    assert np.all(curvature_along_streamline(points) == 0.)

    points = np.array([[i, i, i] for i in range(10)], dtype=float)
    curvatures = curvature_along_streamline(Streamline(points))
    assert len(curvatures) == 10
    assert_array_almost_equal(curvatures, np.zeros(10), decimal=6)


def test_curvature_right_angle():
    points = np.array([[0, 0, 0], [1, 0, 0], [1, 1, 0]], dtype=float)
    curvatures = curvature_along_streamline(points, fwhm=1e-3)

    # Tangents at both neighbours of the middle vertex are orthogonal, and
    # those neighbours are 2mm apart along the streamline.
    assert np.isclose(curvatures[1], (np.pi / 2) / 2.)


def test_curvature_circle():
    radius = 10.
    angles = np.linspace(0, np.pi / 2, 100)
    points = np.stack([radius * np.cos(angles), radius * np.sin(angles),
                       np.zeros(100)], axis=1)

    # Tangents at the ends are one-sided: check from the third vertex.
    curvatures = curvature_along_streamline(points, fwhm=0.01)
    assert np.allclose(curvatures[2:-2], 1. / radius, rtol=1e-3)

    # Default smoothing: still finite and positive.
    curvatures = curvature_along_streamline(points)
    assert np.all(np.isfinite(curvatures))
    assert np.all(curvatures[1:-1] > 0)


def test_curvature_degenerate_streamlines():
    # All points superimposed
    points = np.ones((5, 3))
    curvatures = curvature_along_streamline(points)
    assert np.array_equal(curvatures, np.zeros(5))

    # Repeated points inside the streamline
    points = np.array([[0, 0, 0], [1, 0, 0], [1, 0, 0], [1, 0, 0],
                       [1, 1, 0], [1, 2, 0]], dtype=float)
    curvatures = curvature_along_streamline(points, fwhm=1.)
    assert len(curvatures) == 6
    assert np.all(np.isfinite(curvatures))
    assert np.all(curvatures >= 0)

    with pytest.raises(ValueError):
        curvature_along_streamline(np.array([[0, 0, 0]]))
