"""Command line interface for the LFS builder."""

from importlib.metadata import version as get_package_version

__version__ = get_package_version("lfs-builder")
