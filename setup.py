#!/usr/bin/env python

from __future__ import annotations

from setuptools import setup

install_requires = [
    "dask >= 2024.1.0",
    "distributed >= 2024.1.0",
    "numpy >= 1.24",
    "pyyaml >= 5.4",
    "toolz >= 0.10.0",
]

extras_require = {"test": ["pytest"]}

setup(
    name="ddarray",
    version="0.1.0",
    description="Elementwise operations over numpy arrays partitioned across dask workers",
    license="BSD",
    packages=["ddarray", "ddarray.tests"],
    package_data={"ddarray": ["ddarray.yaml"]},
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=install_requires,
    extras_require=extras_require,
    classifiers=[
        "Development Status :: 3 - Alpha",
        "License :: OSI Approved :: BSD License",
        "Programming Language :: Python :: 3",
        "Topic :: Scientific/Engineering",
        "Topic :: System :: Distributed Computing",
    ],
    zip_safe=False,
)
