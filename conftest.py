import nibabel as nib
import numpy as np
import pytest

from tractmap.image.volume_space_management import ImageGeometry


@pytest.fixture
def reference_img():
    """Empty 10x10x10 image, 1mm isotropic, identity affine."""
    return nib.Nifti1Image(np.zeros((10, 10, 10), dtype=np.float32),
                           np.eye(4))


@pytest.fixture
def geometry():
    return ImageGeometry(np.eye(4), (10, 10, 10))


@pytest.fixture
def x_gradient_img():
    """10x10x10 image where each voxel's value is its x index."""
    data = np.zeros((10, 10, 10))
    data += np.arange(10)[:, None, None]
    return nib.Nifti1Image(data, np.eye(4))
