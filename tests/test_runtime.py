from types import SimpleNamespace

import numpy
import pytest

import kompakt
import kompakt.runtime
from helpers import get_test_array, ref_compact, ref_scan
from kompakt import ConsistencyError, DeviceError, InvalidInputError
from kompakt.algorithms import Compact


class FakeBackendError(Exception):
    pass


@pytest.fixture
def fake_backend(monkeypatch):
    """
    Replaces the backend error types with ``FakeBackendError``,
    and returns a queue-like object sufficient for the status check.
    """
    monkeypatch.setattr(kompakt.runtime, "backend_errors", lambda _api: (FakeBackendError,))
    device = SimpleNamespace(context=SimpleNamespace(api=None))
    return SimpleNamespace(device=device)


def test_scan_scenarios(queue):
    assert kompakt.scan(queue, [1, 0, 0, 3, 0, 1]).tolist() == [0, 1, 1, 1, 4, 4]
    assert kompakt.scan(queue, [0]).tolist() == [0]
    assert kompakt.scan(queue, [4, 2, 1, 6, 5, 1, 3, 2]).tolist() == [0, 4, 6, 7, 13, 18, 19, 22]


def test_compact_scenarios(queue):
    output, count = kompakt.compact(queue, [1, 0, 0, 3, 0, 1])
    assert output.tolist() == [1, 3, 1]
    assert count == 3

    output, count = kompakt.compact(queue, [0])
    assert count == 0
    assert output.size == 0

    output, count = kompakt.compact(queue, [5])
    assert output.tolist() == [5]
    assert count == 1

    arr = [4, 2, 1, 6, 5, 1, 3, 2]
    output, count = kompakt.compact(queue, arr)
    assert output.tolist() == arr
    assert count == 8


@pytest.mark.parametrize("size", [5, 1000, 3000], ids=str)
def test_scan_random(queue, size):
    arr = get_test_array(size, numpy.int32)
    res = kompakt.scan(queue, arr, max_work_group_size=8)
    assert res.dtype == arr.dtype
    assert (res == ref_scan(arr)).all()


@pytest.mark.parametrize("size", [5, 1000, 3000], ids=str)
def test_compact_random(queue, size):
    arr = get_test_array(size, numpy.int64, zeros_fraction=0.4)
    output, count = kompakt.compact(queue, arr, max_work_group_size=8)
    assert output.dtype == arr.dtype
    assert count == numpy.count_nonzero(arr)
    assert (output == ref_compact(arr)).all()


def test_partial_size(queue):
    arr = numpy.array([3, 0, 2, 5, 0, 7], numpy.int32)
    assert kompakt.scan(queue, arr, n=4).tolist() == [0, 3, 3, 5]

    output, count = kompakt.compact(queue, arr, n=4)
    assert output.tolist() == [3, 2, 5]
    assert count == 3


def test_empty_input(fake_backend):
    # No device work is done for empty inputs, so a fake queue is enough
    res = kompakt.scan(fake_backend, numpy.empty(0, numpy.int32))
    assert res.size == 0
    assert res.dtype == numpy.int32

    output, count = kompakt.compact(fake_backend, [])
    assert output.size == 0
    assert count == 0

    output, count = kompakt.compact(fake_backend, [1, 2, 3], n=0)
    assert count == 0


@pytest.mark.parametrize(
    ("input_", "n", "message"),
    [
        ([1, 2, 3], -1, "Size must lie in"),
        ([1, 2, 3], 4, "Size must lie in"),
        ([[1, 2], [3, 4]], None, "Expected a one-dimensional array"),
        ([1.5, 2.5], None, "Expected an integer array"),
        ([1, 0, 2], True, "Size must be an integer"),
    ],
    ids=["negative size", "size too large", "2d input", "float input", "boolean size"],
)
def test_invalid_input(fake_backend, input_, n, message):
    with pytest.raises(InvalidInputError, match=message):
        kompakt.scan(fake_backend, input_, n=n)
    with pytest.raises(InvalidInputError, match=message):
        kompakt.compact(fake_backend, input_, n=n)


def test_invalid_input_is_value_error(fake_backend):
    with pytest.raises(ValueError):
        kompakt.scan(fake_backend, [1, 2], n=3)


def test_device_status_check(fake_backend, caplog):
    with pytest.raises(DeviceError, match="copy failed: out of memory") as excinfo:
        with kompakt.device_status_check(fake_backend, "copy"):
            raise FakeBackendError("out of memory")

    assert isinstance(excinfo.value.__cause__, FakeBackendError)
    assert "copy failed" in caplog.text


def test_device_status_check_passes_other_errors(fake_backend):
    with pytest.raises(KeyError):
        with kompakt.device_status_check(fake_backend, "copy"):
            raise KeyError("not a device error")


def test_compact_device_failure(fake_backend, monkeypatch):
    def failing_compile(self, *args, **kwds):
        raise FakeBackendError("launch failed")

    monkeypatch.setattr(Compact, "compile", failing_compile)

    with pytest.raises(DeviceError, match="compact failed: launch failed"):
        kompakt.compact(fake_backend, [1, 0, 2])


def test_consistency_error_type():
    # Internal errors are not input errors
    assert not issubclass(ConsistencyError, ValueError)
    assert issubclass(ConsistencyError, kompakt.KompaktError)
