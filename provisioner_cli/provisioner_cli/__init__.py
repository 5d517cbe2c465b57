"""Command line front end for the Puerts provisioner."""

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_package_version

try:
    __version__ = get_package_version("puerts-provisioner")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = ["__version__"]
