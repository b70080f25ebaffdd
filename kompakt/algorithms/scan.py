import logging
from collections.abc import Callable
from typing import Any

from grunnur import DeviceParameters, Template, VirtualSizeError, dtypes

from .. import helpers
from ..core import (
    Annotation,
    Computation,
    ComputationPlan,
    KernelArgument,
    KernelArguments,
    Parameter,
    Type,
)
from .pureparallel import PureParallel

TEMPLATE = Template.from_associated_file(__file__)

logger = logging.getLogger(__name__)


class Scan(Computation):
    """
    Bases: :py:class:`~kompakt.core.Computation`

    Performs an exclusive scan (prefix sum) of a one-dimensional integer array.
    Namely, from an array ``[a, b, c, d, ...]``
    produces ``[0, a, a+b, a+b+c, ...]``.

    Every work group scans its own block of ``2 * wg_size`` elements with the
    work-efficient (up-sweep/down-sweep) tree algorithm in local memory.
    If the array spans several blocks, the block totals are scanned recursively
    and the resulting offsets are added to the elements of each block.

    :param arr_t: an array-like defining the initial array.
    :param max_work_group_size: the maximum workgroup size to be used for the scan kernel
        (must be a power of 2).
        If not given, the maximum supported by the device is used.

    .. py:method:: compiled_signature(output:o, input:i)

        :param input: an array with the attributes of ``arr_t``.
        :param output: an array with the attributes of ``arr_t``.
    """

    def __init__(self, arr_t: Any, max_work_group_size: int | None = None):
        type_ = Type.from_value(arr_t)

        if type_.is_scalar() or len(type_.shape) != 1:
            raise ValueError("Only one-dimensional arrays can be scanned")
        if type_.size == 0:
            raise ValueError("Cannot scan an empty array")
        if not dtypes.is_integer(type_.dtype):
            raise ValueError("Scan is only defined for integer arrays, got " + str(type_.dtype))
        if max_work_group_size is not None and not helpers.is_power_of_2(max_work_group_size):
            raise ValueError(
                "Maximum workgroup size must be a power of 2, got " + str(max_work_group_size)
            )

        self._max_work_group_size = max_work_group_size

        Computation.__init__(
            self,
            [
                Parameter("output", Annotation(type_, "o")),
                Parameter("input", Annotation(type_, "i")),
            ],
        )

    def _build_plan_for_wg_size(
        self,
        plan_factory: Callable[[], ComputationPlan],
        wg_size: int,
        output: KernelArgument,
        input_: KernelArgument,
    ) -> ComputationPlan:
        plan = plan_factory()

        scan_size = output.size
        block_size = wg_size * 2
        num_blocks = helpers.min_blocks(scan_size, block_size)
        last_block_size = scan_size - (num_blocks - 1) * block_size

        block_totals = plan.temp_array(num_blocks, output.dtype)

        if num_blocks > 1:
            temp_output = plan.temp_array_like(output)
        else:
            temp_output = output

        plan.kernel_call(
            TEMPLATE.get_def("scan_blocks"),
            [temp_output, input_, block_totals],
            kernel_name="kernel_scan_blocks",
            global_size=(num_blocks * wg_size,),
            local_size=(wg_size,),
            render_kwds=dict(
                wg_size=wg_size,
                block_size=block_size,
                num_blocks=num_blocks,
                last_block_size=last_block_size,
                last_block_padded_size=helpers.bounding_power_of_2(last_block_size),
            ),
        )

        logger.debug(
            "scan of %d elements: %d block(s) of %d, workgroup size %d",
            scan_size,
            num_blocks,
            block_size,
            wg_size,
        )

        if num_blocks > 1:
            sub_scan = Scan(block_totals, max_work_group_size=wg_size)
            scanned_totals = plan.temp_array_like(block_totals)
            plan.computation_call(sub_scan, scanned_totals, block_totals)

            add_totals = PureParallel(
                [
                    Parameter("output", Annotation(output, "o")),
                    Parameter("partial", Annotation(output, "i")),
                    Parameter("totals", Annotation(block_totals, "i")),
                ],
                "${output}[${idx}] = ${partial}[${idx}] + ${totals}[${idx} / ${block_size}];",
                render_kwds=dict(block_size=block_size),
            )
            plan.computation_call(add_totals, output, temp_output, scanned_totals)

        return plan

    def _build_plan(
        self,
        plan_factory: Callable[[], ComputationPlan],
        device_params: DeviceParameters,
        args: KernelArguments,
    ) -> ComputationPlan:
        output = args.output
        input_ = args.input

        if self._max_work_group_size is None:
            max_wg_size = device_params.max_total_local_size
        else:
            max_wg_size = min(self._max_work_group_size, device_params.max_total_local_size)

        # The block algorithm requires workgroup size to be a power of 2.
        max_wg_size = 2 ** helpers.log2(max_wg_size)

        # Every thread keeps two elements in local memory.
        while max_wg_size > 1 and max_wg_size * 2 * output.dtype.itemsize > (
            device_params.local_mem_size
        ):
            max_wg_size //= 2

        # No need for more threads than there are pairs of elements.
        wg_size = min(max_wg_size, helpers.bounding_power_of_2(helpers.min_blocks(output.size, 2)))

        while wg_size >= 1:
            try:
                return self._build_plan_for_wg_size(plan_factory, wg_size, output, input_)
            except VirtualSizeError:
                logger.debug("workgroup size %d is not supported by the scan kernel", wg_size)
                wg_size //= 2

        raise ValueError("Could not find suitable call parameters for the scan kernel")
