"""
Host-level operations: take host arrays, run the computations on a device
and return host arrays.
All the device arrays are owned by a single call.
"""

import logging
import operator
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import numpy
from grunnur import API, Array, Queue, cuda_api_id, dtypes

from .algorithms import Compact, Scan
from .errors import ConsistencyError, DeviceError, InvalidInputError

logger = logging.getLogger(__name__)


def backend_errors(api: API) -> tuple[type[Exception], ...]:
    """Returns the exception types the backend of ``api`` reports failures with."""
    if api.id == cuda_api_id():
        import pycuda.driver

        return (pycuda.driver.Error,)

    import pyopencl

    return (pyopencl.Error,)


@contextmanager
def device_status_check(queue: Queue, operation: str) -> Iterator[None]:
    """
    Converts backend failures inside the block into :py:class:`~kompakt.errors.DeviceError`,
    logging them on the way.
    There is no recovery: the failed call produces no result.
    """
    errors = backend_errors(queue.device.context.api)
    try:
        yield
    except errors as exc:
        logger.error("%s failed on %s: %s", operation, queue.device, exc)
        raise DeviceError(f"{operation} failed: {exc}") from exc


def _prepare_input(input_: Any, n: int | None) -> numpy.ndarray:
    arr = numpy.asarray(input_)
    if arr.size == 0 and not hasattr(input_, "dtype"):
        # An empty sequence has no dtype of its own
        arr = arr.astype(numpy.int64)

    if arr.ndim != 1:
        raise InvalidInputError(f"Expected a one-dimensional array, got shape {arr.shape}")
    if not dtypes.is_integer(arr.dtype):
        raise InvalidInputError(f"Expected an integer array, got {arr.dtype}")

    if n is None:
        n = arr.shape[0]
    else:
        if isinstance(n, bool | numpy.bool_):
            raise InvalidInputError(f"Size must be an integer, got {n!r}")
        n = operator.index(n)
        if n < 0 or n > arr.shape[0]:
            raise InvalidInputError(f"Size must lie in [0, {arr.shape[0]}], got {n}")

    return numpy.ascontiguousarray(arr[:n])


def scan(
    queue: Queue, input_: Any, n: int | None = None, max_work_group_size: int | None = None
) -> numpy.ndarray:
    """
    Returns the exclusive prefix sum of the first ``n`` elements of ``input_``
    (all of them if ``n`` is ``None``).

    :param queue: a :py:class:`grunnur.Queue` object to run the computation on.
    :param input_: a one-dimensional integer array (or a sequence of integers).
    :param n: the number of elements to scan.
    :param max_work_group_size: see :py:class:`~kompakt.algorithms.Scan`.
    """
    arr = _prepare_input(input_, n)
    logger.debug("scan: %d elements of %s", arr.size, arr.dtype)

    if arr.size == 0:
        return numpy.empty(0, arr.dtype)

    with device_status_check(queue, "scan"):
        scanc = Scan(arr, max_work_group_size=max_work_group_size).compile(queue.device)

        input_dev = Array.from_host(queue, arr)
        output_dev = Array.empty(queue.device, arr.shape, arr.dtype)
        scanc(queue, output_dev, input_dev)
        return output_dev.get(queue)


def compact(
    queue: Queue, input_: Any, n: int | None = None, max_work_group_size: int | None = None
) -> tuple[numpy.ndarray, int]:
    """
    Removes zero elements from the first ``n`` elements of ``input_``
    (all of them if ``n`` is ``None``), preserving the order of the rest.
    Returns a tuple of the compacted array and the number of its elements.

    :param queue: a :py:class:`grunnur.Queue` object to run the computation on.
    :param input_: a one-dimensional integer array (or a sequence of integers).
    :param n: the number of elements to compact.
    :param max_work_group_size: see :py:class:`~kompakt.algorithms.Scan`.
    """
    arr = _prepare_input(input_, n)
    logger.debug("compact: %d elements of %s", arr.size, arr.dtype)

    if arr.size == 0:
        return numpy.empty(0, arr.dtype), 0

    with device_status_check(queue, "compact"):
        compactc = Compact(arr, max_work_group_size=max_work_group_size).compile(queue.device)

        input_dev = Array.from_host(queue, arr)
        output_dev = Array.empty(queue.device, arr.shape, arr.dtype)
        count_dev = Array.empty(queue.device, (1,), compactc.parameter.count.dtype)
        compactc(queue, output_dev, count_dev, input_dev)

        count = int(count_dev.get(queue)[0])
        output = output_dev.get(queue)

    if not 0 <= count <= arr.size:
        raise ConsistencyError(f"Compacted {count} elements out of {arr.size}")

    return output[:count], count
