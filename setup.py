#!/usr/bin/env python3
"""
Setup script for envelop
"""

from setuptools import setup, find_packages

setup(
    name="envelop",
    version="1.0.0",
    description="Signable, optionally compressed message envelopes with an HMAC-SHA256 codec",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "cryptography==43.0.1",
        "click==8.1.7",
        "typer==0.12.3",
        "rich==13.9.2",
        "PyYAML==6.0.2",
    ],
    extras_require={
        "test": [
            "pytest==8.4.2",
        ],
    },
    python_requires=">=3.9",
    entry_points={
        'console_scripts': [
            'envelop=envelop_cli.cli:main',
        ],
    },
)
