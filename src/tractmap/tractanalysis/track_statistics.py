# -*- coding: utf-8 -*-
from enum import Enum

import numpy as np


class TrackStatistic(Enum):
    """
    How the values sampled along a streamline are combined into a single
    value per streamline.
    """
    SUM = 'sum'
    MIN = 'min'
    MEAN = 'mean'
    MAX = 'max'
    MEDIAN = 'median'
    MEAN_NONZERO = 'mean_nonzero'
    # Smoothing of values along the streamline. Not a reduction: not
    # supported by the track-wise mappers.
    GAUSSIAN = 'gaussian'
    ENDS_MIN = 'ends_min'
    ENDS_MEAN = 'ends_mean'
    ENDS_MAX = 'ends_max'
    ENDS_PROD = 'ends_prod'

    @classmethod
    def from_string(cls, name):
        if isinstance(name, cls):
            return name
        try:
            return cls(name.lower())
        except (ValueError, AttributeError):
            raise ValueError("Unknown track statistic '{}'. Choices are: {}"
                             .format(name, TRACK_STATISTIC_CHOICES))

    @property
    def is_endpoints(self):
        return self in ENDPOINTS_STATISTICS


TRACK_STATISTIC_CHOICES = [s.value for s in TrackStatistic]
ENDPOINTS_STATISTICS = (TrackStatistic.ENDS_MIN, TrackStatistic.ENDS_MEAN,
                        TrackStatistic.ENDS_MAX, TrackStatistic.ENDS_PROD)


def _finite(values):
    return values[np.isfinite(values)]


def track_sum(values):
    """Sum of the finite values."""
    return float(np.sum(_finite(values)))


def track_min(values):
    """Minimum of the finite values. +inf if there is none."""
    finite = _finite(values)
    return float(np.min(finite)) if len(finite) else np.inf


def track_max(values):
    """Maximum of the finite values. -inf if there is none."""
    finite = _finite(values)
    return float(np.max(finite)) if len(finite) else -np.inf


def track_mean(values):
    """Mean of the finite values. 0 if there is none."""
    finite = _finite(values)
    return float(np.mean(finite)) if len(finite) else 0.


def track_median(values):
    """
    Element at position N // 2 once values are partitioned (partial sort).

    With an even number of values, this is the upper of the two middle
    values, not their average: [1, 5, 3, 2] gives 3. Non-finite values are
    not removed (nans are sorted last). 0 if there are no values.
    """
    if len(values) == 0:
        return 0.
    middle = len(values) // 2
    return float(np.partition(values, middle)[middle])


def track_mean_nonzero(values):
    """Mean of the finite, non-zero values. 0 if there is none."""
    finite = _finite(values)
    nonzero = finite[finite != 0]
    return float(np.mean(nonzero)) if len(nonzero) else 0.


def _check_endpoints(values):
    if len(values) != 2:
        raise ValueError("Endpoint statistics need exactly 2 values (one "
                         "per endpoint), got {}.".format(len(values)))


def track_ends_min(values):
    """Endpoint value with the smallest absolute value."""
    _check_endpoints(values)
    return float(values[0] if abs(values[0]) < abs(values[1])
                 else values[1])


def track_ends_mean(values):
    """Mean of both endpoint values."""
    _check_endpoints(values)
    return float(0.5 * (values[0] + values[1]))


def track_ends_max(values):
    """Endpoint value with the largest absolute value."""
    _check_endpoints(values)
    return float(values[0] if abs(values[0]) > abs(values[1])
                 else values[1])


def track_ends_prod(values):
    """
    Product of both endpoint values, only if they have the same sign.
    Endpoints of opposite sign (or a zero endpoint) give 0.
    """
    _check_endpoints(values)
    if (values[0] < 0. and values[1] < 0.) or \
            (values[0] > 0. and values[1] > 0.):
        return float(values[0] * values[1])
    return 0.


STATISTIC_FUNCTIONS = {
    TrackStatistic.SUM: track_sum,
    TrackStatistic.MIN: track_min,
    TrackStatistic.MEAN: track_mean,
    TrackStatistic.MAX: track_max,
    TrackStatistic.MEDIAN: track_median,
    TrackStatistic.MEAN_NONZERO: track_mean_nonzero,
    TrackStatistic.ENDS_MIN: track_ends_min,
    TrackStatistic.ENDS_MEAN: track_ends_mean,
    TrackStatistic.ENDS_MAX: track_ends_max,
    TrackStatistic.ENDS_PROD: track_ends_prod,
}


def get_statistic_function(statistic):
    """
    Get the reduction function of a track statistic.

    Raises
    ------
    ValueError
        If the statistic is not a track-wise reduction (ex, gaussian).
    """
    statistic = TrackStatistic.from_string(statistic)
    if statistic not in STATISTIC_FUNCTIONS:
        raise ValueError("Track statistic '{}' is not supported for "
                         "track-wise factors. Supported: {}".format(
                             statistic.value,
                             [s.value for s in STATISTIC_FUNCTIONS]))
    return STATISTIC_FUNCTIONS[statistic]


def reduce_factors(values, statistic):
    """
    Combine the values sampled along a streamline into one value.

    Parameters
    ----------
    values: array-like (N,)
        Values along the streamline. May contain nans or infs.
    statistic: TrackStatistic or str

    Return
    ------
    factor: float
        Not necessarily finite (ex, min of only nans is +inf).
    """
    return get_statistic_function(statistic)(
        np.asarray(values, dtype=np.float64))
