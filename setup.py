#!/bin/env python

# Copyright 2024, picscatter contributors
# License: 3-Clause-BSD-LBNL
import re
from setuptools import setup, find_packages

# Extract the version number (without importing the package,
# which requires numba at build time)
with open('./picscatter/__init__.py') as f:
    version = re.search( r"__version__ = '(.*)'", f.read() ).group(1)

# Obtain the long description from README.md
with open('./README.md') as f:
    long_description = f.read()
# Get the package requirements from the requirements.txt file
with open('requirements.txt') as f:
    install_requires = [ line.strip('\n') for line in f.readlines()
                         if line.strip() ]

setup(
    name='picscatter',
    version=version,
    description='Particle-to-grid deposition and PEC boundaries '
                'for Particle-In-Cell codes, on CPU and GPU',
    long_description=long_description,
    long_description_content_type='text/markdown',
    license='BSD-3-Clause-LBNL',
    packages=find_packages('.', exclude=['tests']),
    install_requires=install_requires,
    extras_require = {
        'cuda': ['cupy'],
        'test': ['pytest'],
    },
    include_package_data=True,
    platforms='any',
    classifiers=[
        'Programming Language :: Python',
        'Development Status :: 3 - Alpha',
        'Natural Language :: English',
        'Environment :: Console',
        'Intended Audience :: Science/Research',
        'Operating System :: OS Independent',
        'Topic :: Scientific/Engineering :: Physics',
        'Programming Language :: Python :: 3'],
    )
