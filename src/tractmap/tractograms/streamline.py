# -*- coding: utf-8 -*-
import logging

import numpy as np

DEFAULT_UPSAMPLE_RATIO = 0.1


class Streamline(object):
    """
    A single streamline: an ordered list of 3D points, in world (scanner)
    space, in mm.

    The points are copied at creation and the copy is flagged as read-only.
    The index is the position of the streamline in the tractogram it was
    generated in, so that mapping results can be traced back to it.
    """

    def __init__(self, points, index=0, weight=1.0):
        """
        Parameters
        ----------
        points: array-like of shape (N, 3)
            The vertices of the streamline.
        index: int
            Index of the streamline in its tractogram.
        weight: float
            Weight of the streamline (ex, SIFT2 weight). Carried through to
            the mapping results, never used in computations.
        """
        points = np.array(points, dtype=np.float64)
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError("A streamline must be an array of shape (N, 3), "
                             "got {}".format(points.shape))
        points.setflags(write=False)

        self._points = points
        self.index = int(index)
        self.weight = float(weight)

    @property
    def points(self):
        return self._points

    def __len__(self):
        return len(self._points)

    def __getitem__(self, item):
        return self._points[item]

    def __iter__(self):
        return iter(self._points)

    def __repr__(self):
        return "Streamline(index={}, nb_points={})".format(self.index,
                                                           len(self))

    def calc_length(self):
        """
        Length of the streamline: the sum of the norms of its segments.

        Return
        ------
        length: float
        """
        return compute_length(self._points)

    def reversed(self):
        """Same streamline, with the vertex order flipped."""
        return Streamline(self._points[::-1], index=self.index,
                          weight=self.weight)


def get_points(streamline):
    """
    Get the (N, 3) array of points of a streamline, whether it is a
    Streamline object or a plain array-like.
    """
    if isinstance(streamline, Streamline):
        return streamline.points
    return np.asarray(streamline, dtype=np.float64)


def compute_length(points):
    """
    Length of a polyline, as the sum of its segments' Euclidean norms.

    Parameters
    ----------
    points: np.ndarray (N, 3)

    Return
    ------
    length: float
        0 for a streamline with less than 2 points.
    """
    points = get_points(points)
    if len(points) < 2:
        return 0.
    return float(np.sum(np.linalg.norm(np.diff(points, axis=0), axis=1)))


def determine_upsample_ratio(voxel_sizes, step_size,
                             ratio=DEFAULT_UPSAMPLE_RATIO):
    """
    Find the upsampling ratio to use before mapping streamlines to an image,
    so that consecutive points are separated by at most a fraction `ratio`
    of the smallest voxel dimension.

    Parameters
    ----------
    voxel_sizes: array-like (3,)
        Voxel dimensions of the image on which streamlines are mapped (mm).
    step_size: float or None
        Step size of the streamlines (mm). If unknown (None, 0, nan), no
        upsampling is done.
    ratio: float
        Maximal step size, as a fraction of the smallest voxel dimension.

    Return
    ------
    upsample_ratio: int
        Number of points that each segment will be divided into (>= 1).
    """
    if not step_size or not np.isfinite(step_size):
        return 1
    if ratio <= 0:
        raise ValueError("The upsampling ratio must be strictly positive.")

    upsample_ratio = int(np.ceil(step_size / (np.min(voxel_sizes) * ratio)))
    upsample_ratio = max(1, upsample_ratio)
    logging.debug("Upsampling ratio for step size {}mm and voxel sizes {}: {}"
                  .format(step_size, tuple(voxel_sizes), upsample_ratio))
    return upsample_ratio


def upsample_streamline(points, upsample_ratio):
    """
    Upsample a streamline by dividing each of its segments into
    `upsample_ratio` parts of equal length (linear interpolation). The
    original vertices are all kept.

    Parameters
    ----------
    points: np.ndarray (N, 3) or Streamline
    upsample_ratio: int
        A ratio of 1 returns the points unchanged.

    Return
    ------
    upsampled: np.ndarray ((N - 1) * upsample_ratio + 1, 3)
    """
    points = get_points(points)
    upsample_ratio = int(upsample_ratio)
    if upsample_ratio < 1:
        raise ValueError("The upsampling ratio should be at least 1, got {}"
                         .format(upsample_ratio))
    if upsample_ratio == 1 or len(points) < 2:
        return points

    # Fraction of the segment for each new point, excluding the segment's
    # end (it is the start of the next segment).
    t = np.arange(upsample_ratio, dtype=np.float64)[None, :, None] / \
        upsample_ratio
    segments = np.diff(points, axis=0)[:, None, :]
    inner = points[:-1, None, :] + t * segments

    return np.vstack([inner.reshape((-1, 3)), points[-1:]])


def streamlines_from_sft(sft, weights_key=None):
    """
    Convert a StatefulTractogram to a list of Streamline objects, in world
    space (RASMM) with voxel centers at integer coordinates, which is the
    convention expected by the mappers.

    Careful: the sft is converted to rasmm / center in place.

    Parameters
    ----------
    sft: StatefulTractogram
    weights_key: str, optional
        Key of the data_per_streamline holding one weight per streamline.
        If None, all weights are 1.

    Return
    ------
    streamlines: list[Streamline]
    """
    sft.to_rasmm()
    sft.to_center()

    if weights_key is None:
        weights = np.ones(len(sft))
    elif weights_key not in sft.data_per_streamline:
        raise ValueError("Key {} not found in the data_per_streamline. "
                         "Available keys: {}".format(
                             weights_key,
                             list(sft.data_per_streamline.keys())))
    else:
        weights = np.asarray(
            sft.data_per_streamline[weights_key]).reshape(-1)

    return [Streamline(s, index=i, weight=w)
            for i, (s, w) in enumerate(zip(sft.streamlines, weights))]
