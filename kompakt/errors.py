class KompaktError(Exception):
    """Base class for the errors raised by the host-level operations."""


class InvalidInputError(KompaktError, ValueError):
    """
    Raised when the input violates the preconditions of an operation
    (wrong number of dimensions, non-integer dtype, or a size outside ``[0, len(input)]``).
    Always raised before any work is sent to the device.
    """


class DeviceError(KompaktError, RuntimeError):
    """
    Raised when the device backend fails to allocate memory, transfer data,
    compile or launch a kernel.
    The original backend exception is available as ``__cause__``.
    """


class ConsistencyError(KompaktError, AssertionError):
    """
    Raised when a result violates an internal invariant
    (e.g. the number of compacted elements is outside ``[0, n]``).
    Indicates a bug, not a user error.
    """
