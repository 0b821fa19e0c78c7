# -*- coding: utf-8 -*-
"""
Curvature along a streamline, estimated from its geometry only.

Tangents are estimated at every vertex, smoothed with a Gaussian kernel
over the distance along the streamline (not the Euclidean distance), and
curvature is the angle between the smoothed tangents of neighbouring
vertices, divided by the distance separating them.

Careful: the distance matrix and the smoothing kernel are computed between
all pairs of vertices, i.e. O(N^2) in memory and time. This is fine for
typical streamlines (tens to hundreds of points). Using a local window
instead would change the results.
"""

import numpy as np

from tractmap.tractograms.streamline import get_points

# In mm.
CURVATURE_TRACK_SMOOTHING_FWHM = 10.0


def compute_raw_tangents(points):
    """
    Unit tangent at each vertex, from a centered finite difference
    (P[i+1] - P[i-1]) inside the streamline and a one-sided difference at
    both ends.

    Parameters
    ----------
    points: np.ndarray (N, 3), N >= 2

    Return
    ------
    tangents: np.ndarray (N, 3)
        Unit tangents. Degenerate tangents (zero-length or non-finite
        difference) are set to the zero vector.
    valid: np.ndarray (N,) of bools
        False where the tangent is degenerate.
    """
    diffs = np.empty((len(points), 3))
    diffs[0] = points[1] - points[0]
    diffs[-1] = points[-1] - points[-2]
    diffs[1:-1] = points[2:] - points[:-2]

    with np.errstate(divide='ignore', invalid='ignore'):
        tangents = diffs / np.linalg.norm(diffs, axis=1, keepdims=True)

    valid = np.all(np.isfinite(tangents), axis=1)
    tangents[~valid] = 0.
    return tangents, valid


def repair_tangents(tangents, valid):
    """
    Replace degenerate tangents with the nearest valid tangent(s).

    For each invalid vertex, the nearest valid tangent is searched towards
    the start (left) and towards the end (right). The first vertex only
    searches right, the last one only left. Interior vertices average both
    found tangents (renormalized). If only one side has a valid tangent, it
    is used as is.

    Parameters
    ----------
    tangents: np.ndarray (N, 3)
    valid: np.ndarray (N,) of bools

    Return
    ------
    repaired: np.ndarray (N, 3)
        Unchanged if no tangent is valid (all vertices are superimposed).
    """
    repaired = tangents.copy()
    valid_idx = np.flatnonzero(valid)
    if len(valid_idx) == 0:
        return repaired

    last = len(tangents) - 1
    for i in np.flatnonzero(~valid):
        pos = np.searchsorted(valid_idx, i)
        left = valid_idx[pos - 1] if pos > 0 and i != 0 else None
        right = valid_idx[pos] if pos < len(valid_idx) and i != last \
            else None

        if left is not None and right is not None:
            mean_dir = tangents[left] + tangents[right]
            norm = np.linalg.norm(mean_dir)
            # Opposite neighbours: no mean direction, keep the left one.
            repaired[i] = mean_dir / norm if norm > 0 else tangents[left]
        elif left is not None:
            repaired[i] = tangents[left]
        elif right is not None:
            repaired[i] = tangents[right]

    return repaired


def compute_arc_length_matrix(segment_lengths):
    """
    Distance along the streamline between every pair of vertices.

    Each segment i adds its length to every pair (j, k) with j <= i < k,
    and symmetrically.

    Parameters
    ----------
    segment_lengths: np.ndarray (N - 1,)

    Return
    ------
    distances: np.ndarray (N, N)
        Symmetric, zero diagonal.
    """
    nb_points = len(segment_lengths) + 1
    distances = np.zeros((nb_points, nb_points))
    for i, step in enumerate(segment_lengths):
        distances[:i + 1, i + 1:] += step
        distances[i + 1:, :i + 1] += step
    return distances


def smooth_tangents(tangents, distances,
                    fwhm=CURVATURE_TRACK_SMOOTHING_FWHM):
    """
    Smooth tangents with a Gaussian kernel over the distance along the
    streamline. Every vertex contributes to every other vertex.

    Parameters
    ----------
    tangents: np.ndarray (N, 3)
    distances: np.ndarray (N, N)
        Arc length between vertices, see compute_arc_length_matrix.
    fwhm: float
        Full width at half maximum of the kernel, in mm.

    Return
    ------
    smoothed: np.ndarray (N, 3)
        Renormalized smoothed tangents. Nan where the weighted sum is null.
    """
    if not fwhm > 0:
        raise ValueError("The smoothing FWHM must be strictly positive, got "
                         "{}".format(fwhm))

    theta = fwhm / (2. * np.sqrt(2. * np.log(2.)))
    weights = np.exp(-distances ** 2 / (2. * theta ** 2))
    smoothed = np.dot(weights, tangents)

    with np.errstate(divide='ignore', invalid='ignore'):
        smoothed /= np.linalg.norm(smoothed, axis=1, keepdims=True)
    return smoothed


def curvature_from_tangents(tangents, distances):
    """
    Angle between the tangents of the neighbours of each vertex (i - 1 and
    i + 1, or the vertex and its only neighbour at both ends), divided by
    the distance along the streamline between those neighbours.

    Parameters
    ----------
    tangents: np.ndarray (N, 3)
        Unit tangents.
    distances: np.ndarray (N, N)
        Arc length between vertices.

    Return
    ------
    curvatures: np.ndarray (N,)
        In rad / mm. Degenerate values (nan tangents, zero distance) are 0.
    """
    nb_points = len(tangents)
    prev_idx = np.arange(nb_points) - 1
    next_idx = np.arange(nb_points) + 1
    prev_idx[0], next_idx[0] = 0, 1
    prev_idx[-1], next_idx[-1] = nb_points - 2, nb_points - 1

    dots = np.sum(tangents[next_idx] * tangents[prev_idx], axis=1)
    lengths = distances[next_idx, prev_idx]

    with np.errstate(divide='ignore', invalid='ignore'):
        curvatures = np.arccos(np.clip(dots, -1., 1.)) / lengths
        # No measurable angle change. Also avoids 0 / 0.
        curvatures[dots >= 1.] = 0.
    curvatures[~np.isfinite(curvatures)] = 0.
    return curvatures


def curvature_along_streamline(streamline,
                               fwhm=CURVATURE_TRACK_SMOOTHING_FWHM):
    """
    Estimate the curvature at each vertex of a streamline.

    Parameters
    ----------
    streamline: Streamline or np.ndarray (N, 3), N >= 2
        Vertices, in mm.
    fwhm: float
        FWHM (mm) of the Gaussian kernel used to smooth tangents along the
        streamline.

    Return
    ------
    curvatures: np.ndarray (N,)
        Curvature (rad / mm) at each vertex.
    """
    points = get_points(streamline)
    if len(points) < 2:
        raise ValueError("Cannot compute the curvature of a streamline with "
                         "less than 2 points.")

    tangents, valid = compute_raw_tangents(points)
    segment_lengths = np.linalg.norm(np.diff(points, axis=0), axis=1)
    tangents = repair_tangents(tangents, valid)

    distances = compute_arc_length_matrix(segment_lengths)
    smoothed = smooth_tangents(tangents, distances, fwhm)

    return curvature_from_tangents(smoothed, distances)
