"""LakeIce simulates the energy and mass balance of the snow and ice layer covering lakes in a land-surface hydrology model."""

import faulthandler
from importlib.metadata import PackageNotFoundError, version

try:
    __version__: str = version("lakeice")
except PackageNotFoundError:
    # running from a source checkout that was not installed
    __version__ = "0.0.0"

faulthandler.enable()
