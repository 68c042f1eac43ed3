#!/usr/bin/env python3
"""Setup script for credvault."""

from pathlib import Path

from setuptools import find_packages
from setuptools import setup


# Read the README file
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text()

setup(
    name="credvault",
    version="0.1.0",
    author="credvault contributors",
    description="Local-first encrypted vault for long-term AWS credentials with a temporary credential cache",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "aiohttp>=3.8.0",
        "argon2-cffi>=23.1.0",
        "boto3>=1.28.0",
        "click>=8.1.0",
        "cryptography>=41.0.0",
        "psutil>=5.9.7",
        "pyyaml>=6.0",
        "returns>=0.22.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "mypy>=1.5.0",
            "ruff>=0.1.0",
            "black>=23.0.0",
            "pre-commit>=3.3.0",
        ],
        "test": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "hypothesis>=6.100.0",
            "freezegun>=1.2.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "credvault=credvault.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Security :: Cryptography",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
    ],
)
