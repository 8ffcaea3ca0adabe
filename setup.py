# File: aseflow/setup.py
# Location: aseflow/aseflow/setup.py
"""
Setup script for aseflow.

This file configures how the package is built, installed, and what
dependencies are required.
"""

import os
from setuptools import setup, find_packages

# Load version from version.py without importing the module
version = {}
with open(os.path.join("aseflow", "version.py")) as f:
    exec(f.read(), version)

# Read the README for the long description
this_dir = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(this_dir, "README.md"), encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="aseflow",
    version=version["__version__"],
    description="File-system driven scheduler for an allele-specific expression pipeline.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["aseflow", "aseflow.*"]),
    python_requires=">=3.8",
    install_requires=[
        "pandas>=1.5",
        "numpy",
    ],
    extras_require={"test": ["pytest"]},
    entry_points={
        "console_scripts": [
            "aseflow=aseflow.cli:main",
            "aseflow-asemap=aseflow.aggregation.ase_map:main",
        ]
    },
    include_package_data=True,
    package_data={"aseflow": ["config.json"]},
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)
