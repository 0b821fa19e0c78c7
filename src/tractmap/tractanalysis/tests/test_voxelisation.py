# -*- coding: utf-8 -*-
import numpy as np

from tractmap.image.volume_space_management import ImageGeometry
from tractmap.tractanalysis.voxelisation import Voxel, voxelise
from tractmap.tractograms.streamline import Streamline


def test_voxelise_line(geometry):
    points = np.array([[i, 2., 2.] for i in range(5)])
    voxels = voxelise(points, geometry)
    assert voxels == {Voxel(i, 2, 2) for i in range(5)}


def test_voxelise_duplicates(geometry):
    # Many points in the same voxel: registered once
    points = np.array([[1.1, 1, 1], [1.2, 1, 1], [0.9, 1.3, 0.8],
                       [1.6, 1, 1]])
    voxels = voxelise(points, geometry)
    assert voxels == {Voxel(1, 1, 1), Voxel(2, 1, 1)}


def test_voxelise_out_of_bounds_skipped(geometry):
    points = np.array([[-3, 2, 2], [0, 2, 2], [9, 2, 2], [12, 2, 2],
                       [9, 9, 9.6]])
    voxels = voxelise(points, geometry)
    assert voxels == {Voxel(0, 2, 2), Voxel(9, 2, 2)}

    points = np.array([[-3, 2, 2], [12, 2, 2]])
    assert voxelise(points, geometry) == set()


def test_voxelise_vertices_only(geometry):
    # Segments are not interpolated
    points = np.array([[0, 0, 0], [5, 0, 0]])
    assert voxelise(points, geometry) == {Voxel(0, 0, 0), Voxel(5, 0, 0)}


def test_voxelise_idempotent_and_order_independent(geometry):
    rng = np.random.default_rng(42)
    points = np.cumsum(rng.normal(scale=0.7, size=(40, 3)), axis=0) + 5.
    streamline = Streamline(points)

    voxels = voxelise(streamline, geometry)
    assert voxels == voxelise(streamline, geometry)
    assert voxels == voxelise(streamline.reversed(), geometry)


def test_voxelise_ends_only(geometry):
    points = np.array([[i, 2., 2.] for i in range(5)])
    voxels = voxelise(points, geometry, ends_only=True)
    assert voxels == {Voxel(0, 2, 2), Voxel(4, 2, 2)}


def test_voxelise_with_affine():
    affine = np.diag([2., 2., 2., 1.])
    geometry = ImageGeometry(affine, (5, 5, 5))

    points = np.array([[4.2, 0, 0], [4.9, 0.9, 0], [8, 8, 8.9]])
    voxels = voxelise(points, geometry)
    assert voxels == {Voxel(2, 0, 0), Voxel(4, 4, 4)}

    # Voxels are plain tuples of ints, sortable
    assert sorted(voxels)[0] == (2, 0, 0)
    assert all(isinstance(v, int) for v in sorted(voxels)[1])
