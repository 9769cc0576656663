#!/usr/bin/env python

import re

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("src/neptune_sigv4/_version.py", "r", encoding="utf-8") as fh:
    version = re.search(r"__version__ = \"([^\"]+)\"", fh.read()).group(1)

setup(
    name="neptune-sigv4",
    version=version,
    description="SigV4-signed WebSocket connections for Amazon Neptune and other IAM-authenticated graph endpoints",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
        "Intended Audience :: Developers",
        "Topic :: Database",
        "Topic :: Internet :: WWW/HTTP",
        "Topic :: Software Development :: Libraries",
    ],
    python_requires=">=3.8",
    install_requires=[
        "botocore>=1.29.0",
        "idna>=2.0.0",
        "certifi",
    ],
    extras_require={
        "msgpack": ["msgpack>=1.0.4"],
        "cbor": ["cbor2>=5.4.6"],
        "all": [
            "msgpack>=1.0.4",
            "cbor2>=5.4.6",
        ],
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "msgpack>=1.0.4",
            "cbor2>=5.4.6",
        ],
    },
)
