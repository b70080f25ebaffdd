from collections.abc import Callable, Iterable, Mapping
from typing import Any

from grunnur import DefTemplate, DeviceParameters

from ..core import Computation, ComputationPlan, KernelArguments, Parameter


class PureParallel(Computation):
    """
    A general class for pure parallel computations
    (i.e. with no interaction between threads).
    One thread is started for every element of the guiding array.

    :param parameters: a list of :py:class:`~kompakt.core.Parameter` objects.
    :param code: a source code for the computation, a Mako template string.
        It can refer to ``${idx}`` (the name of the flat thread index variable),
        and to the parameters by their names, which render as
        :py:class:`~kompakt.core.KernelParameter` objects
        (so ``${output}[${idx}] = ${input}[${idx}];`` is a valid snippet).
    :param guiding_array: the size of the thread grid,
        or the name of one of ``parameters`` (its total size will be used).
        By default, the first parameter is chosen.
    :param render_kwds: a dictionary with render keywords for the ``code``.

    .. py:function:: compiled_signature(*args)

        :param args: corresponds to the given ``parameters``.
    """

    def __init__(
        self,
        parameters: Iterable[Parameter],
        code: str,
        guiding_array: str | int | None = None,
        render_kwds: Mapping[str, Any] = {},
    ):
        Computation.__init__(self, parameters)

        self._root_parameters = list(self.signature.parameters.keys())
        self._code = code
        self._render_kwds = dict(render_kwds)

        if guiding_array is None:
            guiding_array = self._root_parameters[0]
        if isinstance(guiding_array, str):
            annotation = self.signature.kompakt_parameters[guiding_array].annotation
            if annotation.is_scalar():
                raise ValueError("The parameter serving as a guiding array cannot be a scalar")
            self._guiding_size = annotation.size
        else:
            self._guiding_size = guiding_array

        if self._guiding_size < 1:
            raise ValueError("The guiding array must not be empty")

    def _build_plan(
        self,
        plan_factory: Callable[[], ComputationPlan],
        _device_params: DeviceParameters,
        args: KernelArguments,
    ) -> ComputationPlan:
        plan = plan_factory()

        template = DefTemplate.from_string(
            "pure_parallel",
            ["kernel_declaration", *self._root_parameters],
            """
            ${kernel_declaration}
            {
                if (${static.skip}()) return;
                const VSIZE_T ${idx} = ${static.global_id}(0);
            """
            + self._code
            + """
            }
            """,
        )

        plan.kernel_call(
            template,
            args.all(),
            kernel_name="kernel_pure_parallel",
            global_size=(self._guiding_size,),
            render_kwds=dict(self._render_kwds, idx="_idx"),
        )

        return plan
