from collections.abc import Callable
from typing import Any

from grunnur import DeviceParameters, dtypes

from .. import helpers
from ..core import (
    Annotation,
    Computation,
    ComputationPlan,
    KernelArguments,
    Parameter,
    Type,
)
from .pureparallel import PureParallel
from .scan import Scan


def _check_array(type_: Type) -> None:
    if type_.is_scalar() or len(type_.shape) != 1:
        raise ValueError("Only one-dimensional arrays are supported")
    if type_.size == 0:
        raise ValueError("The array must not be empty")
    if not dtypes.is_integer(type_.dtype):
        raise ValueError("Only integer arrays are supported, got " + str(type_.dtype))


class MapToBoolean(PureParallel):
    """
    Bases: :py:class:`~kompakt.algorithms.PureParallel`

    Marks non-zero elements of an array:
    ``mask[i]`` is ``1`` if ``input[i] != 0`` and ``0`` otherwise.

    :param arr_t: an array-like defining the initial array.
    :param mask_dtype: the dtype of the mask.
        Defaults to the index dtype suitable for the size of ``arr_t``
        (so that the mask can be scanned in place of a counter).

    .. py:method:: compiled_signature(mask:o, input:i)

        :param mask: an array with the shape of ``arr_t`` and the dtype ``mask_dtype``.
        :param input: an array with the attributes of ``arr_t``.
    """

    def __init__(self, arr_t: Any, mask_dtype: Any = None):
        type_ = Type.from_value(arr_t)
        _check_array(type_)

        if mask_dtype is None:
            mask_dtype = helpers.index_dtype(type_.size)

        PureParallel.__init__(
            self,
            [
                Parameter("mask", Annotation(Type.array(mask_dtype, type_.shape), "o")),
                Parameter("input", Annotation(type_, "i")),
            ],
            "${mask}[${idx}] = (${input}[${idx}] != 0) ? 1 : 0;",
        )


class Scatter(PureParallel):
    """
    Bases: :py:class:`~kompakt.algorithms.PureParallel`

    Moves the marked elements to the positions given by the scanned mask:
    ``output[scanned[i]] = input[i]`` for every ``i`` with ``mask[i] == 1``.
    Since ``scanned`` is the exclusive scan of ``mask``,
    the destinations are distinct and the writes are independent.
    The total number of moved elements, ``mask[n-1] + scanned[n-1]``,
    is written to ``count[0]``.

    :param arr_t: an array-like defining the initial array.
    :param mask_t: an array-like defining the mask and the scanned mask.

    .. py:method:: compiled_signature(output:o, count:o, input:i, mask:i, scanned:i)

        :param output: an array with the attributes of ``arr_t``;
            only the first ``count[0]`` elements are written.
        :param count: a one-element array with the dtype of ``mask_t``.
        :param input: an array with the attributes of ``arr_t``.
        :param mask: an array with the attributes of ``mask_t``.
        :param scanned: an array with the attributes of ``mask_t``.
    """

    def __init__(self, arr_t: Any, mask_t: Any):
        type_ = Type.from_value(arr_t)
        mask_type = Type.from_value(mask_t)
        _check_array(type_)
        if mask_type.shape != type_.shape:
            raise ValueError(
                f"The mask must have the shape {type_.shape}, got {mask_type.shape}"
            )

        PureParallel.__init__(
            self,
            [
                Parameter("output", Annotation(type_, "o")),
                Parameter("count", Annotation(Type.array(mask_type.dtype, 1), "o")),
                Parameter("input", Annotation(type_, "i")),
                Parameter("mask", Annotation(mask_type, "i")),
                Parameter("scanned", Annotation(mask_type, "i")),
            ],
            """
            if (${mask}[${idx}])
                ${output}[${scanned}[${idx}]] = ${input}[${idx}];

            if (${idx} == ${size - 1})
                ${count}[0] = ${mask}[${idx}] + ${scanned}[${idx}];
            """,
            guiding_array="input",
            render_kwds=dict(size=type_.size),
        )


class Compact(Computation):
    """
    Bases: :py:class:`~kompakt.core.Computation`

    Stream compaction: removes zero elements from an array,
    preserving the relative order of the remaining ones.
    Composed of :py:class:`MapToBoolean`, :py:class:`Scan` (applied to the mask)
    and :py:class:`Scatter`.

    :param arr_t: an array-like defining the initial array.
    :param max_work_group_size: passed to the :py:class:`Scan` of the mask.

    .. py:method:: compiled_signature(output:o, count:o, input:i)

        :param output: an array with the attributes of ``arr_t``.
            Only the first ``count[0]`` elements are meaningful,
            the rest are left undefined.
        :param count: a one-element integer array receiving the number of non-zero elements.
        :param input: an array with the attributes of ``arr_t``.
    """

    def __init__(self, arr_t: Any, max_work_group_size: int | None = None):
        type_ = Type.from_value(arr_t)
        _check_array(type_)

        self._mask_type = Type.array(helpers.index_dtype(type_.size), type_.shape)
        self._max_work_group_size = max_work_group_size

        Computation.__init__(
            self,
            [
                Parameter("output", Annotation(type_, "o")),
                Parameter("count", Annotation(Type.array(self._mask_type.dtype, 1), "o")),
                Parameter("input", Annotation(type_, "i")),
            ],
        )

    def _build_plan(
        self,
        plan_factory: Callable[[], ComputationPlan],
        _device_params: DeviceParameters,
        args: KernelArguments,
    ) -> ComputationPlan:
        plan = plan_factory()

        mask = plan.temp_array_like(self._mask_type)
        scanned = plan.temp_array_like(self._mask_type)

        map_to_boolean = MapToBoolean(args.input, mask_dtype=self._mask_type.dtype)
        scan = Scan(self._mask_type, max_work_group_size=self._max_work_group_size)
        scatter = Scatter(args.input, self._mask_type)

        plan.computation_call(map_to_boolean, mask, args.input)
        plan.computation_call(scan, scanned, mask)
        plan.computation_call(scatter, args.output, args.count, args.input, mask, scanned)

        return plan
