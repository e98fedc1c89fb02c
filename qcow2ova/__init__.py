"""Convert qcow2 cloud images into PowerVS-ready OVA bundles."""

from .__version__ import __version__


__all__ = ["__version__"]
