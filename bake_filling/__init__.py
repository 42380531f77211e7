"""bake-filling - Flash a Raspberry Pi SD card from Buildroot output.

This package partitions and formats an SD card, copies the firmware and
kernel onto the boot partition and unpacks the root filesystem archive
onto the second partition.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
