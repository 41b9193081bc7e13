from setuptools import setup, find_packages

setup(
    name='vsp',
    version='0.1.0',
    description='Tools for simulating virtual species distributions and sampling occurrences',
    author='Matthew Whittle',
    author_email='matthewjwhittle@gmail.com',
    url='https://github.com/matthewjwhittle/sheffield-bats',
    packages=find_packages(exclude=['tests', 'tests.*']),
    package_data={'vsp': ['config/*.yaml']},
    python_requires='>=3.11',
    install_requires=[
        'numpy',
        'pandas',
        'scipy',
        'scikit-learn',
        'xarray',
        'rioxarray',
        'rasterio',
        'affine<3',  # affine 3.x breaks rioxarray's transform (Affine * Affine)
        'geopandas',
        'shapely',
        'matplotlib',
        'seaborn',
        'pyyaml',
    ],
    extras_require={
        'test': ['pytest'],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Science/Research',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
    ],
)
