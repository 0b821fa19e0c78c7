# -*- coding: utf-8 -*-
import logging

from dipy.core.interpolation import trilinear_interpolate4d, \
    nearestneighbor_interpolate
from dipy.io.utils import get_reference_info
import nibabel as nib
from nibabel.affines import apply_affine, voxel_sizes
import numpy as np


class ImageGeometry(object):
    """
    Geometry of an image grid: the voxel to world (scanner) affine and the
    3D dimensions. Converts world coordinates (mm) to continuous voxel
    coordinates, where voxel centers lie on integer coordinates (nibabel's
    convention), and checks if voxels are inside the grid.
    """

    def __init__(self, affine, shape):
        """
        Parameters
        ----------
        affine: np.ndarray (4, 4)
            Voxel to world transformation.
        shape: tuple
            Dimensions of the image. Only the first three are used.
        """
        affine = np.asarray(affine, dtype=np.float64)
        if affine.shape != (4, 4):
            raise ValueError("Affine must be 4x4, got {}".format(affine.shape))
        if len(shape) < 3:
            raise ValueError("The image must be at least 3D, got shape {}"
                             .format(tuple(shape)))

        self.affine = affine
        self.shape = tuple(int(d) for d in shape[:3])
        self._inv_affine = np.linalg.inv(affine)

    @classmethod
    def from_reference(cls, reference):
        """
        Create the geometry from any reference accepted by dipy: a nibabel
        image, a filename (.nii, .nii.gz, .trk), a nifti or trk header, or a
        StatefulTractogram.
        """
        affine, dimensions, _, _ = get_reference_info(reference)
        return cls(affine, dimensions)

    @property
    def voxel_sizes(self):
        return tuple(float(v) for v in voxel_sizes(self.affine))

    def scanner_to_voxel(self, points):
        """
        Transform world coordinates to continuous voxel coordinates.

        Parameters
        ----------
        points: np.ndarray (3,) or (N, 3)

        Return
        ------
        coords: np.ndarray, same shape as points.
        """
        return apply_affine(self._inv_affine, points)

    @staticmethod
    def voxel_to_index(coords):
        """
        Nearest voxel of continuous voxel coordinates. Rounds half up,
        i.e. floor(x + 0.5), so that a voxel covers [i - 0.5, i + 0.5).
        """
        return np.floor(np.asarray(coords) + 0.5).astype(int)

    def in_bounds(self, voxel):
        """
        Test if an integer voxel index (i, j, k) is inside the grid.
        """
        return (0 <= voxel[0] < self.shape[0] and
                0 <= voxel[1] < self.shape[1] and
                0 <= voxel[2] < self.shape[2])

    def in_bounds_mask(self, indices):
        """
        Vectorized version of in_bounds.

        Parameters
        ----------
        indices: np.ndarray (N, 3) of ints

        Return
        ------
        mask: np.ndarray (N,) of bools
        """
        indices = np.asarray(indices)
        return np.all((indices >= 0) & (indices < np.array(self.shape)),
                      axis=-1)


class DataVolume(object):
    """
    Class to access / interpolate data from a 3D or 4D image at world
    coordinates.
    """

    def __init__(self, data, affine, interpolation='trilinear'):
        """
        Parameters
        ----------
        data: np.array
            The data, ex, loaded from nibabel img.get_fdata().
        affine: np.ndarray (4, 4)
            The voxel to world affine of the data.
        interpolation: str
            The interpolation choice amongst "trilinear" or "nearest".
        """
        if interpolation not in ['trilinear', 'nearest']:
            raise ValueError("Interpolation must be 'trilinear' or 'nearest',"
                             " got {}".format(interpolation))
        self.interpolation = interpolation

        if data.ndim not in [3, 4]:
            raise ValueError("Data should be 3D or 4D but data dimension is: "
                             "{}".format(data.ndim))
        self.is_4d = data.ndim == 4

        # Expand dimensionality to support uniform 4d interpolation.
        # Dipy's interpolation expects double (float64), writeable data.
        data = np.array(data, dtype=np.float64, order='C')
        if not self.is_4d:
            data = np.expand_dims(data, axis=3)
        self.data = data

        self.geometry = ImageGeometry(affine, data.shape)
        self.dim = self.data.shape[0:4]
        self.nb_coeffs = self.dim[3]

    @classmethod
    def from_image(cls, img, interpolation='trilinear'):
        """
        Parameters
        ----------
        img: nib.Nifti1Image or str
            The image, or its filename.
        interpolation: str
            'trilinear' or 'nearest'.
        """
        if isinstance(img, str):
            logging.debug("Loading image {}".format(img))
            img = nib.load(img)
        return cls(img.get_fdata(dtype=np.float64), img.affine,
                   interpolation=interpolation)

    def is_voxel_in_bound(self, x, y, z):
        """
        Test if the continuous voxel coordinate is in the dataset range.
        Voxel 0 spans [-0.5, 0.5[.
        """
        return (-0.5 <= x < self.dim[0] - 0.5 and
                -0.5 <= y < self.dim[1] - 0.5 and
                -0.5 <= z < self.dim[2] - 0.5)

    def _nan_value(self):
        if self.is_4d:
            return np.full(self.nb_coeffs, np.nan)
        return np.nan

    def get_value_at_voxel(self, x, y, z):
        """
        Get the interpolated value at continuous voxel coordinates x, y, z.

        Return
        ------
        value: ndarray (self.dim[-1],) or float
            Interpolated value. If the data is 3D, returns a scalar. If the
            position is out of the image, returns nan(s).
        """
        if not self.is_voxel_in_bound(x, y, z):
            return self._nan_value()

        coord = np.array((x, y, z), dtype=np.float64)
        if self.interpolation == 'nearest':
            result = nearestneighbor_interpolate(self.data, coord)
        else:
            result = trilinear_interpolate4d(self.data, coord)

        if self.is_4d:
            return np.asarray(result, dtype=np.float64)
        return float(np.squeeze(result))

    def get_value_at_scanner(self, point):
        """
        Get the interpolated value at world coordinate `point` (mm).
        """
        return self.get_value_at_voxel(
            *self.geometry.scanner_to_voxel(np.asarray(point)))

    def get_values_at_scanner(self, points):
        """
        Get the interpolated values at every world coordinate of points.

        Parameters
        ----------
        points: np.ndarray (N, 3)

        Return
        ------
        values: np.ndarray (N,) for 3D data, (N, C) for 4D data.
        """
        coords = self.geometry.scanner_to_voxel(np.asarray(points))
        return np.array([self.get_value_at_voxel(*c) for c in coords],
                        dtype=np.float64)
