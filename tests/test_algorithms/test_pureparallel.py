import numpy
import pytest
from grunnur import Array

from helpers import diff_is_negligible, get_test_array
from kompakt.algorithms import PureParallel
from kompakt.core import Annotation, Computation, Parameter, Type


class NestedPureParallel(Computation):
    def __init__(self, size, dtype):
        Computation.__init__(
            self,
            [
                Parameter("output", Annotation(Type.array(dtype, size), "o")),
                Parameter("input", Annotation(Type.array(dtype, size), "i")),
            ],
        )

        self._p = PureParallel(
            [
                Parameter("output", Annotation(Type.array(dtype, size), "o")),
                Parameter("i1", Annotation(Type.array(dtype, size), "i")),
                Parameter("i2", Annotation(Type.array(dtype, size), "i")),
            ],
            "${output}[${idx}] = ${i1}[${idx}] + ${i2}[${idx}];",
        )

    def _build_plan(self, plan_factory, _device_params, args):
        plan = plan_factory()
        plan.computation_call(self._p, args.output, args.input, args.input)
        return plan


def test_nested(queue):
    size = 1000
    dtype = numpy.int32

    p = NestedPureParallel(size, dtype)

    a = get_test_array(size, dtype)
    a_dev = Array.from_host(queue, a)
    res_dev = Array.empty(queue.device, (size,), dtype)

    pc = p.compile(queue.device)
    pc(queue, res_dev, a_dev)

    assert diff_is_negligible(res_dev.get(queue), a + a)


def test_guiding_input(queue):
    size = 1000
    dtype = numpy.int64

    p = PureParallel(
        [
            Parameter("output", Annotation(Type.array(dtype, 2 * size), "o")),
            Parameter("input", Annotation(Type.array(dtype, size), "i")),
        ],
        """
        const ${input.ctype} t = ${input}[${idx}];
        ${output}[${idx}] = t;
        ${output}[${idx} + ${size}] = t * 2;
        """,
        guiding_array="input",
        render_kwds=dict(size=size),
    )

    a = get_test_array(size, dtype)
    a_dev = Array.from_host(queue, a)
    res_dev = Array.empty(queue.device, (2 * size,), dtype)

    pc = p.compile(queue.device)
    pc(queue, res_dev, a_dev)

    assert diff_is_negligible(res_dev.get(queue), numpy.concatenate([a, a * 2]))


def test_guiding_size(queue):
    size = 1000
    dtype = numpy.int32

    p = PureParallel(
        [
            Parameter("output", Annotation(Type.array(dtype, size), "o")),
            Parameter("input", Annotation(Type.array(dtype, size), "i")),
            Parameter("coeff", Annotation(Type.scalar(dtype))),
        ],
        "${output}[${idx}] = ${input}[${idx}] * ${coeff};",
        guiding_array=size // 2,
    )

    a = get_test_array(size, dtype)
    a_dev = Array.from_host(queue, a)
    res_dev = Array.from_host(queue, numpy.zeros(size, dtype))

    pc = p.compile(queue.device)
    pc(queue, res_dev, a_dev, 3)

    res_ref = numpy.zeros(size, dtype)
    res_ref[: size // 2] = a[: size // 2] * 3
    assert diff_is_negligible(res_dev.get(queue), res_ref)


def test_scalar_guiding_array():
    with pytest.raises(ValueError, match="cannot be a scalar"):
        PureParallel(
            [Parameter("coeff", Annotation(Type.scalar(numpy.int32)))],
            "",
            guiding_array="coeff",
        )
