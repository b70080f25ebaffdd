"""
Work-efficient exclusive scan and stream compaction for GPGPU devices.

.. autofunction:: scan

.. autofunction:: compact
"""

VERSION = (0, 1, 0)

from .errors import ConsistencyError, DeviceError, InvalidInputError, KompaktError
from .runtime import compact, device_status_check, scan
