# -*- coding: utf-8 -*-
"""
Mapping of streamlines to an image grid.

For each streamline, a mapper gives the set of voxels it visits and one
factor (track-weighted imaging, TWI): 1 for track density, the length of
the streamline, or a statistic (mean, max, ...) of values sampled along it
(scalar map, fODF amplitude, curvature). Accumulating those results into
volumes is left to the caller.

Mappers hold a scratch array that is overwritten at each call: use one
mapper per worker. map_streamlines does this for you.
"""

from enum import Enum
import itertools
import logging
import multiprocessing

import numpy as np

from tractmap.image.volume_space_management import (DataVolume,
                                                    ImageGeometry)
from tractmap.tractanalysis.curvature import (CURVATURE_TRACK_SMOOTHING_FWHM,
                                              curvature_along_streamline)
from tractmap.tractanalysis.track_statistics import (TrackStatistic,
                                                     get_statistic_function)
from tractmap.tractanalysis.twi_plugins import (TWIFODImagePlugin,
                                                TWIScalarImagePlugin)
from tractmap.tractanalysis.voxelisation import voxelise
from tractmap.tractograms.streamline import (Streamline, compute_length,
                                             get_points, upsample_streamline)


class TWIContrast(Enum):
    """
    What quantity the factor of a streamline represents.
    """
    TRACK_DENSITY = 'tdi'
    LENGTH = 'length'
    INVERSE_LENGTH = 'invlength'
    SCALAR_MAP = 'scalar_map'
    # Binary version of scalar_map: 1 if the statistic is non-zero, else 0.
    SCALAR_MAP_BINARY = 'scalar_map_count'
    FOD_AMPLITUDE = 'fod_amp'
    CURVATURE = 'curvature'

    @classmethod
    def from_string(cls, name):
        if isinstance(name, cls):
            return name
        try:
            return cls(name.lower())
        except (ValueError, AttributeError):
            raise ValueError("Unknown TWI contrast '{}'. Choices are: {}"
                             .format(name, TWI_CONTRAST_CHOICES))


TWI_CONTRAST_CHOICES = [c.value for c in TWIContrast]

# Kind of image plugin needed by each contrast.
PLUGIN_KIND_PER_CONTRAST = {
    TWIContrast.SCALAR_MAP: TWIScalarImagePlugin.kind,
    TWIContrast.SCALAR_MAP_BINARY: TWIScalarImagePlugin.kind,
    TWIContrast.FOD_AMPLITUDE: TWIFODImagePlugin.kind,
}


class MappedStreamline(object):
    """
    Result of the mapping of one streamline: the voxels it visits and its
    factor. The index and weight are those of the input streamline.
    """

    def __init__(self, index, voxels, factor=1.0, weight=1.0):
        self.index = index
        self.voxels = voxels
        self.factor = factor
        self.weight = weight

    def __eq__(self, other):
        if not isinstance(other, MappedStreamline):
            return NotImplemented
        return (self.index == other.index and self.voxels == other.voxels
                and self.factor == other.factor
                and self.weight == other.weight)

    def __repr__(self):
        return ("MappedStreamline(index={}, nb_voxels={}, factor={}, "
                "weight={})".format(self.index, len(self.voxels),
                                    self.factor, self.weight))


class TrackMapperBase(object):
    """
    Maps streamlines to the voxels they visit, with a factor of 1 for every
    streamline (track density).
    """

    def __init__(self, geometry, upsample_ratio=1, ends_only=False):
        """
        Parameters
        ----------
        geometry: ImageGeometry or reference
            The grid on which streamlines are mapped. Anything accepted by
            dipy's get_reference_info (nibabel image, filename, header)
            also works.
        upsample_ratio: int
            Each segment is divided into that many parts before voxelisation
            (see determine_upsample_ratio). Does not change the factors.
        ends_only: bool
            If set, only map the voxels containing the endpoints.
        """
        if not isinstance(geometry, ImageGeometry):
            geometry = ImageGeometry.from_reference(geometry)
        if int(upsample_ratio) < 1:
            raise ValueError("The upsampling ratio should be at least 1, got "
                             "{}".format(upsample_ratio))

        self.geometry = geometry
        self.upsample_ratio = int(upsample_ratio)
        self.ends_only = ends_only

    def voxelise(self, streamline):
        """
        Set of voxels visited by the streamline (after upsampling).
        """
        points = get_points(streamline)
        if not self.ends_only:
            points = upsample_streamline(points, self.upsample_ratio)
        return voxelise(points, self.geometry, ends_only=self.ends_only)

    def compute_factor(self, streamline):
        return 1.0

    def _should_map(self, factor):
        return True

    def __call__(self, streamline):
        """
        Map one streamline.

        Parameters
        ----------
        streamline: Streamline or np.ndarray (N, 3)
            Vertices in world coordinates (mm). Plain arrays get index 0.

        Return
        ------
        mapped: MappedStreamline
        """
        if not isinstance(streamline, Streamline):
            streamline = Streamline(streamline)

        factor = self.compute_factor(streamline)
        if self._should_map(factor):
            voxels = self.voxelise(streamline)
        else:
            voxels = set()

        return MappedStreamline(streamline.index, voxels, factor=factor,
                                weight=streamline.weight)


def _track_density_factor(mapper, points):
    return 1.0


def _length_factor(mapper, points):
    return compute_length(points)


def _inverse_length_factor(mapper, points):
    with np.errstate(divide='ignore'):
        return np.float64(1.) / compute_length(points)


def _image_factors(mapper, points):
    if mapper.image_plugin is None:
        raise ValueError("Contrast '{}' needs an associated image: use "
                         "add_scalar_image or add_fod_image before mapping."
                         .format(mapper.contrast.value))
    return np.asarray(mapper.image_plugin.load_factors(points),
                      dtype=np.float64)


def _curvature_factors(mapper, points):
    return curvature_along_streamline(points, fwhm=mapper.curvature_fwhm)


# Contrasts giving one value for the whole streamline.
TRACK_FACTOR_FUNCTIONS = {
    TWIContrast.TRACK_DENSITY: _track_density_factor,
    TWIContrast.LENGTH: _length_factor,
    TWIContrast.INVERSE_LENGTH: _inverse_length_factor,
}

# Contrasts giving values along the streamline, to be reduced by the
# track statistic.
VERTEX_FACTOR_FUNCTIONS = {
    TWIContrast.SCALAR_MAP: _image_factors,
    TWIContrast.SCALAR_MAP_BINARY: _image_factors,
    TWIContrast.FOD_AMPLITUDE: _image_factors,
    TWIContrast.CURVATURE: _curvature_factors,
}

# Contrasts able to give only the endpoint values, for the ENDS_*
# statistics. The others give one value per vertex.
ENDPOINTS_CONTRASTS = (TWIContrast.SCALAR_MAP, TWIContrast.SCALAR_MAP_BINARY)


class TrackMapperTWI(TrackMapperBase):
    """
    Track-weighted mapper: each streamline gets a factor computed from its
    contrast and track statistic.

    Configuration errors (unknown contrast or statistic, wrong or missing
    image) raise a ValueError when setting up the mapper or at the first
    streamline, never silently. Numerical problems in a streamline are not
    errors: the factor is always finite (nan and inf become 0).
    """

    def __init__(self, geometry, contrast, statistic, upsample_ratio=1,
                 ends_only=False, map_zero=False,
                 curvature_fwhm=CURVATURE_TRACK_SMOOTHING_FWHM):
        """
        Parameters
        ----------
        geometry: ImageGeometry or reference
            The grid on which streamlines are mapped.
        contrast: TWIContrast or str
            One of TWI_CONTRAST_CHOICES.
        statistic: TrackStatistic or str
            One of TRACK_STATISTIC_CHOICES, except 'gaussian'. Unused (and
            not checked) by the tdi, length and invlength contrasts. The
            ends_* statistics need a scalar_map or scalar_map_count
            contrast.
        upsample_ratio: int
            See TrackMapperBase.
        ends_only: bool
            See TrackMapperBase.
        map_zero: bool
            If set, streamlines with a factor of 0 are still voxelised.
            Else, their voxel set is empty.
        curvature_fwhm: float
            FWHM (mm) of the tangent smoothing for the curvature contrast.
        """
        super().__init__(geometry, upsample_ratio=upsample_ratio,
                         ends_only=ends_only)
        self.contrast = TWIContrast.from_string(contrast)
        self.statistic = TrackStatistic.from_string(statistic)

        self._reduce = None
        if self.contrast in VERTEX_FACTOR_FUNCTIONS:
            self._reduce = get_statistic_function(self.statistic)
            if self.statistic.is_endpoints and \
                    self.contrast not in ENDPOINTS_CONTRASTS:
                raise ValueError(
                    "Statistic '{}' needs the endpoint values only, which "
                    "contrast '{}' cannot give. Use it with: {}".format(
                        self.statistic.value, self.contrast.value,
                        [c.value for c in ENDPOINTS_CONTRASTS]))

        if not curvature_fwhm > 0:
            raise ValueError("The curvature smoothing FWHM must be strictly "
                             "positive, got {}".format(curvature_fwhm))
        self.curvature_fwhm = curvature_fwhm
        self.map_zero = map_zero

        self.image_plugin = None
        # Values along the last streamline. Reset at each call.
        self.factors = np.zeros(0)

        logging.debug("TWI mapper: contrast {}, statistic {}, upsampling {}, "
                      "ends only: {}, map zero: {}".format(
                          self.contrast.value, self.statistic.value,
                          self.upsample_ratio, ends_only, map_zero))

    def _check_plugin(self, kind):
        if self.image_plugin is not None:
            raise ValueError("Cannot add more than one associated image to "
                             "the TWI mapper (a {} image is already set)."
                             .format(self.image_plugin.kind))
        expected = PLUGIN_KIND_PER_CONTRAST.get(self.contrast)
        if kind != expected:
            raise ValueError("Cannot add a {} image to the TWI mapper with "
                             "contrast '{}'. Expected image: {}.".format(
                                 kind, self.contrast.value, expected))

    def set_image_plugin(self, plugin):
        """
        Associate an image plugin to the mapper. Only one is allowed, and it
        must match the contrast.
        """
        self._check_plugin(plugin.kind)
        if plugin.kind == TWIScalarImagePlugin.kind and \
                plugin.statistic != self.statistic:
            raise ValueError("The scalar image plugin uses statistic '{}' "
                             "but the mapper uses '{}'.".format(
                                 plugin.statistic.value,
                                 self.statistic.value))
        self.image_plugin = plugin
        logging.debug("Added {} image to the TWI mapper.".format(plugin.kind))

    def add_scalar_image(self, img, interpolation='trilinear'):
        """
        Parameters
        ----------
        img: nib.Nifti1Image, str or DataVolume
            A 3D scalar image, ex, FA.
        interpolation: str
            'trilinear' or 'nearest'. Unused if img is a DataVolume.
        """
        self._check_plugin(TWIScalarImagePlugin.kind)
        if not isinstance(img, DataVolume):
            img = DataVolume.from_image(img, interpolation=interpolation)
        self.set_image_plugin(TWIScalarImagePlugin(img, self.statistic))

    def add_fod_image(self, img, sh_basis='descoteaux07', is_legacy=True):
        """
        Parameters
        ----------
        img: nib.Nifti1Image, str or DataVolume
            A 4D image of SH coefficients.
        sh_basis: str
            Has to be descoteaux07 or tournier07.
        is_legacy: bool
            Whether or not the SH basis is in its legacy form.
        """
        self._check_plugin(TWIFODImagePlugin.kind)
        if not isinstance(img, DataVolume):
            img = DataVolume.from_image(img)
        self.set_image_plugin(TWIFODImagePlugin(img, sh_basis=sh_basis,
                                                is_legacy=is_legacy))

    def load_factors(self, streamline):
        """
        Values along the streamline for the per-vertex contrasts. Also
        stored in self.factors.
        """
        points = get_points(streamline)
        if self.contrast not in VERTEX_FACTOR_FUNCTIONS:
            raise ValueError("Contrast '{}' has no values along streamlines."
                             .format(self.contrast.value))
        self.factors = VERTEX_FACTOR_FUNCTIONS[self.contrast](self, points)
        return self.factors

    def compute_factor(self, streamline):
        """
        Factor of one streamline.

        Parameters
        ----------
        streamline: Streamline or np.ndarray (N, 3), N >= 2

        Return
        ------
        factor: float
            Always finite.
        """
        points = get_points(streamline)
        if len(points) < 2:
            raise ValueError("Cannot compute the factor of a streamline with "
                             "less than 2 points.")
        self.factors = np.zeros(0)

        if self.contrast in TRACK_FACTOR_FUNCTIONS:
            factor = TRACK_FACTOR_FUNCTIONS[self.contrast](self, points)
        elif self.contrast in VERTEX_FACTOR_FUNCTIONS:
            factors = self.load_factors(points)
            if self.statistic.is_endpoints and len(factors) != 2:
                raise ValueError(
                    "Statistic '{}' needs exactly 2 values (the endpoints) "
                    "but contrast '{}' gave {}.".format(
                        self.statistic.value, self.contrast.value,
                        len(factors)))
            factor = self._reduce(factors)
        else:
            raise ValueError("Unsupported TWI contrast: {}"
                             .format(self.contrast))

        if self.contrast == TWIContrast.SCALAR_MAP_BINARY:
            factor = 1.0 if factor else 0.0

        if not np.isfinite(factor):
            factor = 0.0
        return float(factor)

    def _should_map(self, factor):
        return self.map_zero or factor != 0


def _map_streamlines_parallel(args):
    (mapper, streamlines) = args
    return [mapper(s) for s in streamlines]


def map_streamlines(mapper, streamlines, nbr_processes=None):
    """
    Map many streamlines. Can use parallel processing: each process works
    with its own copy of the mapper.

    Parameters
    ----------
    mapper: TrackMapperBase
        A configured mapper (ex, TrackMapperTWI with its image, if any).
    streamlines: list
        Streamline objects or arrays (N, 3). Arrays get their position in
        the list as index.
    nbr_processes: int, optional
        The number of subprocesses to use.
        Default: multiprocessing.cpu_count()

    Returns
    -------
    results: list[MappedStreamline]
        In the same order as the streamlines.
    """
    streamlines = [s if isinstance(s, Streamline) else Streamline(s, index=i)
                   for i, s in enumerate(streamlines)]

    nbr_processes = multiprocessing.cpu_count() \
        if nbr_processes is None or nbr_processes <= 0 \
        else nbr_processes
    nbr_processes = max(1, min(nbr_processes, len(streamlines)))
    logging.info("Mapping {} streamlines using {} process(es)."
                 .format(len(streamlines), nbr_processes))

    if nbr_processes == 1:
        return [mapper(s) for s in streamlines]

    chunk_size = int(np.ceil(len(streamlines) / nbr_processes))
    chunks = [streamlines[i:i + chunk_size]
              for i in range(0, len(streamlines), chunk_size)]
    pool = multiprocessing.Pool(nbr_processes)
    results = pool.map(_map_streamlines_parallel,
                       zip(itertools.repeat(mapper), chunks))
    pool.close()
    pool.join()

    return list(itertools.chain.from_iterable(results))
