"""
This example illustrates how to:
- compile a stream compaction computation once and call it on device arrays;
- use the host-level functions for one-off calls.
"""

import numpy
from grunnur import API, Array, Context, Queue

import kompakt
from kompakt.algorithms import Compact, Scan

# Pick the first available GPGPU API and make a queue on it.
context = Context.from_devices([API.any().platforms[0].devices[0]])
queue = Queue(context.device)


# Test array: roughly a third of the elements are zeros.
rng = numpy.random.default_rng()
arr = rng.integers(1, 1000, 20000, dtype=numpy.int32)
arr[rng.uniform(size=arr.size) < 0.3] = 0


# Compile the computations for arrays with the attributes of `arr`.
compact = Compact(arr).compile(queue.device)
scan = Scan(arr).compile(queue.device)


# Run them
arr_dev = Array.from_host(queue, arr)
compacted_dev = Array.empty(queue.device, arr.shape, arr.dtype)
count_dev = Array.empty(queue.device, (1,), compact.parameter.count.dtype)
scanned_dev = Array.empty(queue.device, arr.shape, arr.dtype)

compact(queue, compacted_dev, count_dev, arr_dev)
scan(queue, scanned_dev, arr_dev)

count = int(count_dev.get(queue)[0])
compacted = compacted_dev.get(queue)[:count]
scanned = scanned_dev.get(queue)

assert count == numpy.count_nonzero(arr)
assert (compacted == arr[arr != 0]).all()
assert (scanned == numpy.cumsum(arr, dtype=arr.dtype) - arr).all()


# The same, in one call each (the device arrays only live for the duration of the call).
compacted, count = kompakt.compact(queue, arr)
assert (compacted == arr[arr != 0]).all()
assert (kompakt.scan(queue, arr) == scanned).all()
