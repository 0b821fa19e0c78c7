# -*- coding: utf-8 -*-
from collections import namedtuple

import numpy as np

from tractmap.tractograms.streamline import get_points

Voxel = namedtuple('Voxel', ['i', 'j', 'k'])
Voxel.__doc__ = "Integer index of a voxel in the image grid."


def voxelise(streamline, geometry, ends_only=False):
    """
    Find the voxels visited by a streamline.

    Each vertex is transformed to voxel space and rounded to the nearest
    voxel. Segments between vertices are not interpolated: only voxels
    containing a vertex are registered. A coarsely sampled streamline may
    therefore skip voxels; upsample it first (see
    tractmap.tractograms.streamline.upsample_streamline) for a continuous
    coverage.

    Parameters
    ----------
    streamline: Streamline or np.ndarray (N, 3)
        Vertices, in world (scanner) coordinates.
    geometry: ImageGeometry
        Geometry of the image on which to map the streamline.
    ends_only: bool
        If set, only the first and last vertices are mapped.

    Return
    ------
    voxels: set[Voxel]
        Unique voxels visited. Vertices out of the image are skipped.
    """
    points = get_points(streamline)
    if len(points) == 0:
        return set()
    if ends_only:
        points = points[[0, -1]]

    indices = geometry.voxel_to_index(geometry.scanner_to_voxel(points))
    indices = indices[geometry.in_bounds_mask(indices)]

    return set(Voxel(*idx) for idx in np.unique(indices, axis=0).tolist())
