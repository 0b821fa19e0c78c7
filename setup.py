from setuptools import find_packages, setup


# This is the function that is executed
setup(
    name='tractmap',
    version='0.1.0',
    description='Streamline voxelisation and track-weighted imaging factors',
    python_requires='>=3.9',

    package_dir={'': 'src'},
    packages=find_packages(where='src'),

    install_requires=['numpy', 'nibabel', 'dipy>=1.9'],
    extras_require={'tests': ['pytest']},
)
