#!/usr/bin/env python
"""
Setup script for CAIRN
This file is optional - modern pip can install directly from pyproject.toml
Included for compatibility with older tooling; all metadata lives in pyproject.toml
"""
import tomllib
from pathlib import Path

from setuptools import setup
from setuptools.command.install import install

this_directory = Path(__file__).parent

# Read version from pyproject.toml
with open(this_directory / "pyproject.toml", "rb") as f:
    version = tomllib.load(f)["project"]["version"]


class VerboseInstall(install):
    """Custom install command with better user feedback"""

    def run(self):
        print("\n" + "=" * 60)
        print(f"CAIRN {version} INSTALLATION")
        print("=" * 60)

        install.run(self)

        print("\nInstallation complete!")
        print("Next: Run 'cairn config' to check the effective configuration")
        print("Then: 'cairn search chunks.jsonl \"your query\"'")
        print("=" * 60 + "\n")


setup(
    cmdclass={
        'install': VerboseInstall,
    },
)
