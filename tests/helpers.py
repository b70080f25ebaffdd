import numpy
from grunnur import dtypes

from kompakt.helpers import wrap_in_tuple


def get_test_array(shape, dtype, low=-100, high=100, *, zeros_fraction=None, no_zeros=False):
    """
    Returns a random integer array.
    If ``zeros_fraction`` is given, approximately this fraction of elements is set to zero;
    if ``no_zeros`` is ``True``, the array contains no zeros.
    """
    shape = wrap_in_tuple(shape)
    dtype = numpy.dtype(dtype)
    if not dtypes.is_integer(dtype):
        raise NotImplementedError("Only integer test arrays are supported")

    rng = numpy.random.default_rng()
    result = rng.integers(low, high, shape, dtype=dtype)

    if no_zeros:
        result[result == 0] = 1
    elif zeros_fraction is not None:
        result[result == 0] = 1
        result[rng.uniform(size=shape) < zeros_fraction] = 0

    return result


def get_test_array_like(arr, **kwds):
    return get_test_array(arr.shape, arr.dtype, **kwds)


def diff_is_negligible(m, m_ref, *, verbose=True):
    assert m.dtype == m_ref.dtype
    assert m.shape == m_ref.shape

    close = m == m_ref
    if close.all():
        return True

    if verbose:
        far_idxs = numpy.vstack(numpy.where(~close)).T
        print(  # noqa: T201
            f"diff_is_negligible() found {far_idxs.shape[0]} differences, first ones are:"
        )
        for idx in far_idxs[:10]:
            t_idx = tuple(idx)
            print(f"idx: {t_idx}, test: {m[t_idx]}, ref: {m_ref[t_idx]}")  # noqa: T201

    return False


def ref_scan(arr):
    """Exclusive prefix sum."""
    res = numpy.cumsum(arr, dtype=arr.dtype)
    res -= arr
    return res


def ref_compact(arr):
    return arr[arr != 0]
