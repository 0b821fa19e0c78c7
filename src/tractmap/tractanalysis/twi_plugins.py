# -*- coding: utf-8 -*-
import logging

from dipy.core.sphere import Sphere
from dipy.reconst.shm import sh_to_sf_matrix
import numpy as np

from tractmap.tractanalysis.track_statistics import TrackStatistic
from tractmap.tractograms.streamline import get_points

SH_BASIS_CHOICES = ['descoteaux07', 'tournier07']


def find_order_from_nb_coeff(nb_coeffs):
    """
    Get the order of a symmetric SH basis from its number of coefficients.
    """
    order = (-3. + np.sqrt(1. + 8. * nb_coeffs)) / 2.
    if not order.is_integer() or order % 2 != 0:
        raise ValueError("Invalid number of coefficients for a symmetric SH "
                         "basis: {}".format(nb_coeffs))
    return int(order)


class AbstractTWIImagePlugin(object):
    """
    Abstract class for the image plugins of the track-weighted mappers. A
    plugin samples an image along a streamline and returns one value per
    sampled point. Those values are then reduced to one factor per
    streamline by the mapper's track statistic.

    Plugins only read their image: the same plugin may be copied to many
    worker processes.
    """
    # Kind of image, checked against the mapper's contrast.
    kind = None

    def __init__(self, volume):
        """
        Parameters
        ----------
        volume: tractmap.image.volume_space_management.DataVolume
            The image to sample.
        """
        self.volume = volume

    def load_factors(self, streamline):
        """
        Sample the image along the streamline.

        Parameters
        ----------
        streamline: Streamline or np.ndarray (N, 3)
            Vertices in world coordinates (mm).

        Return
        ------
        factors: np.ndarray
            One value per sampled point. Nan for points out of the image.
        """
        raise NotImplementedError


class TWIScalarImagePlugin(AbstractTWIImagePlugin):
    """
    Samples a 3D scalar image (ex, FA) at the streamline vertices. With an
    endpoint statistic, only the two endpoints are sampled.
    """
    kind = 'scalar'

    def __init__(self, volume, statistic):
        """
        Parameters
        ----------
        volume: DataVolume
            A 3D image.
        statistic: TrackStatistic or str
            The statistic of the mapper using this plugin.
        """
        if volume.is_4d:
            raise ValueError("The scalar image for track-weighted mapping "
                             "must be 3D, got shape {}".format(volume.dim))
        super().__init__(volume)
        self.statistic = TrackStatistic.from_string(statistic)

    def load_factors(self, streamline):
        points = get_points(streamline)
        if self.statistic.is_endpoints:
            points = points[[0, -1]]
        return self.volume.get_values_at_scanner(points)


class TWIFODImagePlugin(AbstractTWIImagePlugin):
    """
    Samples the amplitude of a fODF image (SH coefficients) at each vertex,
    in the local direction of the streamline.
    """
    kind = 'fod'

    def __init__(self, volume, sh_basis='descoteaux07', is_legacy=True):
        """
        Parameters
        ----------
        volume: DataVolume
            A 4D image of SH coefficients, with shape (X, Y, Z, #coeffs).
        sh_basis: str
            Has to be descoteaux07 or tournier07.
        is_legacy: bool
            Whether or not the SH basis is in its legacy form.
        """
        if not volume.is_4d:
            raise ValueError("The fODF image for track-weighted mapping must "
                             "be 4D.")
        if sh_basis not in SH_BASIS_CHOICES:
            raise ValueError("SH basis should be one of {}, got {}"
                             .format(SH_BASIS_CHOICES, sh_basis))
        super().__init__(volume)
        self.sh_order = find_order_from_nb_coeff(volume.nb_coeffs)
        self.sh_basis = sh_basis
        self.is_legacy = is_legacy
        logging.debug("fODF plugin: SH order {}, basis {} (legacy: {})"
                      .format(self.sh_order, sh_basis, is_legacy))

    @staticmethod
    def get_directions(points):
        """
        Local direction at each vertex: P[i+1] - P[i-1], normalized. The
        first and last vertices use their only neighbour.

        Return
        ------
        directions: np.ndarray (N, 3)
            Nan where the direction is degenerate.
        """
        nb_points = len(points)
        next_idx = np.minimum(np.arange(nb_points) + 1, nb_points - 1)
        prev_idx = np.maximum(np.arange(nb_points) - 1, 0)
        directions = points[next_idx] - points[prev_idx]

        with np.errstate(divide='ignore', invalid='ignore'):
            directions /= np.linalg.norm(directions, axis=1, keepdims=True)
        return directions

    def load_factors(self, streamline):
        points = get_points(streamline)
        factors = np.full(len(points), np.nan)
        if len(points) < 2:
            return factors

        directions = self.get_directions(points)
        coeffs = self.volume.get_values_at_scanner(points)

        valid = np.logical_and(np.all(np.isfinite(directions), axis=1),
                               np.all(np.isfinite(coeffs), axis=1))
        if not np.any(valid):
            return factors

        sphere = Sphere(xyz=directions[valid])
        b_matrix = sh_to_sf_matrix(sphere, sh_order_max=self.sh_order,
                                   basis_type=self.sh_basis,
                                   legacy=self.is_legacy, return_inv=False)
        factors[valid] = np.sum(coeffs[valid] * b_matrix.T, axis=1)
        return factors
