"""HTTP image asset service with pluggable storage disks and cached variants."""

__version__ = "2.0.0"
