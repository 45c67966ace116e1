#!/usr/bin/env python3
"""Dockhand - Setup"""

from setuptools import setup, find_packages

with open("requirements.txt") as f:
    requirements = f.read().splitlines()

setup(
    name="dockhand",
    version="1.0.0",
    description="Deployment orchestration and Docker host control plane for self-hosted infrastructure",
    author="Dockhand Team",
    packages=find_packages(include=["dockhand", "dockhand.*"]),
    install_requires=requirements,
    extras_require={
        "test": [
            "pytest>=7.4",
        ],
    },
    entry_points={
        "console_scripts": [
            "dockhand=dockhand.main:main",
        ],
    },
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
