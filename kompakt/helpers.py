"""Various auxiliary functions which are used throughout the library."""

from collections.abc import Iterable

import numpy


def min_blocks(length: int, block: int) -> int:
    """
    Returns minimum number of blocks with length ``block``
    necessary to cover the array with length ``length``.
    """
    return (length - 1) // block + 1


def log2(num: int) -> int:
    """
    Integer-valued logarigthm with base 2.
    If ``n`` is not a power of 2, the result is rounded to the smallest number.
    """
    pos = 0
    for pow_ in [16, 8, 4, 2, 1]:
        if num >= 2**pow_:
            num //= 2**pow_
            pos += pow_
    return pos


def bounding_power_of_2(num: int) -> int:
    """Returns the minimal number of the form ``2**m`` such that it is greater or equal to ``n``."""
    if num == 1:
        return 1
    result: int = 2 ** (log2(num - 1) + 1)
    return result


def is_power_of_2(num: int) -> bool:
    return num >= 1 and num == 2 ** log2(num)


def wrap_in_tuple(seq_or_elem: None | int | Iterable[int]) -> tuple[int, ...]:
    """
    If ``seq_or_elem`` is a sequence, converts it to a ``tuple``,
    otherwise returns a tuple with a single element ``seq_or_elem``.
    """
    if seq_or_elem is None:
        return tuple()
    if isinstance(seq_or_elem, int | numpy.integer):
        return (int(seq_or_elem),)
    return tuple(int(elem) for elem in seq_or_elem)


def index_dtype(size: int) -> numpy.dtype:
    """
    Returns the integer dtype wide enough to hold any index (or count)
    of an array with ``size`` elements.
    """
    if size < 2**31:
        return numpy.dtype(numpy.int32)
    return numpy.dtype(numpy.int64)
