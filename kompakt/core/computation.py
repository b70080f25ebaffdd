import logging
import weakref
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, cast

import numpy
from grunnur import Array, Queue, StaticKernel

from .signature import Annotation, Parameter, Signature, Type

if TYPE_CHECKING:
    from grunnur import BoundDevice, DefTemplate, DeviceParameters


logger = logging.getLogger(__name__)


class ComputationParameter(Type):
    """
    Represents a typed computation parameter.
    Can be used as a substitute of an array for functions
    which are only interested in array metadata.
    """

    def __init__(self, computation: "ComputationCallable | Computation", name: str, type_: Type):
        """__init__()"""  # hide the signature from Sphinx
        super().__init__(type_.dtype, shape=type_.shape)
        self._computation = weakref.ref(computation)
        self._name = name

    def belongs_to(self, comp: "ComputationCallable | Computation") -> bool:
        return self._computation() is comp

    def __str__(self) -> str:
        return self._name


class Translator:
    """
    A callable that translates strings from the known list, and prefixes unknown ones.
    Used to introduce parameter names from a nested computation to the parent namespace.
    """

    def __init__(self, known_old: Sequence[str], known_new: Sequence[str], prefix: str):
        self._mapping = dict(zip(known_old, known_new, strict=True))
        self._prefix = prefix

    def __call__(self, name: str) -> str:
        if name in self._mapping:
            return self._mapping[name]
        return (self._prefix + "_" if self._prefix != "" else "") + name

    def get_nested(
        self, known_old: Sequence[str], known_new: Sequence[str], prefix: str
    ) -> "Translator":
        """Returns a new ``Translator`` with an extended prefix."""
        return Translator(known_old, known_new, self(prefix))

    @classmethod
    def identity(cls) -> "Translator":
        return cls([], [], "")


def check_external_parameter_name(name: str) -> None:
    """
    Checks that a user-supplied parameter name meets the special criteria.
    Basically, we do not want such names start with underscores
    to prevent them from conflicting with internal names.
    """
    if name.startswith("_"):
        raise ValueError("External parameter name cannot start with the underscore.")


class ParameterContainer:
    """A convenience object with ``ComputationParameter`` attributes."""

    def __init__(
        self, parent: "ComputationCallable | Computation", parameters: Iterable[Parameter]
    ):
        self._param_objs = {
            param.name: ComputationParameter(parent, param.name, param.annotation)
            for param in parameters
        }

    def __getattr__(self, name: str) -> ComputationParameter:
        try:
            return self._param_objs[name]
        except KeyError as exc:
            raise AttributeError(name) from exc


class Computation:
    """
    A base class for computations, intended to be subclassed.

    :param root_parameters: a list of :py:class:`~kompakt.core.Parameter` objects.

    .. py:attribute:: signature

        A :py:class:`~kompakt.core.Signature` object representing the computation signature.

    .. py:attribute:: parameter

        A container of :py:class:`~kompakt.core.computation.ComputationParameter` objects
        corresponding to parameters from :py:attr:`signature`.
    """

    def __init__(self, root_parameters: Iterable[Parameter]):
        root_parameters = list(root_parameters)
        for param in root_parameters:
            check_external_parameter_name(param.name)

        self.signature = Signature(root_parameters)
        self.parameter = ParameterContainer(self, root_parameters)

    def _get_plan(
        self,
        translator: Translator,
        bound_device: "BoundDevice",
        compiler_options: Iterable[str],
        *,
        fast_math: bool,
        keep: bool,
    ) -> "ComputationPlan":
        parameters = self.signature.kompakt_parameters
        root_annotations = {
            translator(name): cast(Annotation, param.annotation)
            for name, param in parameters.items()
        }

        def plan_factory() -> ComputationPlan:
            return ComputationPlan(
                root_annotations,
                translator,
                bound_device,
                compiler_options,
                fast_math=fast_math,
                keep=keep,
            )

        args = KernelArguments(
            {
                name: KernelArgument(translator(name), param.annotation)
                for name, param in parameters.items()
            }
        )
        return self._build_plan(plan_factory, bound_device.params, args)

    def compile(
        self,
        bound_device: "BoundDevice",
        compiler_options: Iterable[str] = (),
        *,
        fast_math: bool = False,
        keep: bool = False,
    ) -> "ComputationCallable":
        """
        Compiles the computation with the given :py:class:`grunnur.BoundDevice` object
        and returns a :py:class:`~kompakt.core.computation.ComputationCallable` object.
        ``compiler_options`` can be used to pass a list of strings as arguments
        to the backend compiler.
        If ``keep`` is ``True``, the generated kernels and binaries will be preserved
        in temporary directories.
        """
        return self._get_plan(
            Translator.identity(),
            bound_device,
            compiler_options,
            fast_math=fast_math,
            keep=keep,
        ).finalize(self.signature)

    def _build_plan(
        self,
        plan_factory: Callable[[], "ComputationPlan"],
        device_params: "DeviceParameters",
        args: "KernelArguments",
    ) -> "ComputationPlan":
        """
        Derived classes override this method.
        It is called by :py:meth:`compile` and
        supposed to return a :py:class:`~kompakt.core.computation.ComputationPlan` object.

        :param plan_factory: a callable returning a new
            :py:class:`~kompakt.core.computation.ComputationPlan` object.
        :param device_params: a :py:class:`grunnur.DeviceParameters` object corresponding
            to the device the computation is being compiled for.
        :param args: :py:class:`~kompakt.core.computation.KernelArgument` objects,
            corresponding to ``parameters`` specified during the creation
            of this computation object.
        """
        raise NotImplementedError


class KernelArguments:
    def __init__(self, args: "Mapping[str, KernelArgument]"):
        self._args = dict(args)

    def all(self) -> "Iterable[KernelArgument]":
        return self._args.values()

    def __getattr__(self, name: str) -> "KernelArgument":
        try:
            return self._args[name]
        except KeyError as exc:
            raise AttributeError(name) from exc


class IdGen:
    """Encapsulates a simple ID generator."""

    def __init__(self, prefix: str, counter: int = 0):
        self._counter = counter
        self._prefix = prefix

    def __call__(self) -> str:
        self._counter += 1
        return self._prefix + str(self._counter)


class KernelArgument(Type):
    """Represents an argument suitable to pass to planned kernel or computation call."""

    def __init__(self, name: str, type_: Type):
        """__init__()"""  # hide the signature from Sphinx
        super().__init__(type_.dtype, shape=type_.shape)
        self.name = name

    def __repr__(self) -> str:
        return "KernelArgument(" + self.name + ")"


class KernelParameter(Type):
    """
    Represents a kernel parameter inside a kernel template.
    Renders as the name of the corresponding C variable,
    so it can be indexed directly: ``${output}[idx] = ${input}[idx];``.

    .. py:attribute:: ctype

        The C type of the array element (or of the scalar).
    """

    def __init__(self, cname: str, annotation: Annotation):
        """__init__()"""  # hide the signature from Sphinx
        super().__init__(annotation.dtype, shape=annotation.shape)
        self._cname = cname
        self.annotation = annotation

    def declaration(self) -> str:
        if self.is_scalar():
            return f"{self.ctype} {self._cname}"
        const = "const " if not self.annotation.output else ""
        return f"GLOBAL_MEM {const}{self.ctype} *{self._cname}"

    def __str__(self) -> str:
        return self._cname


def kernel_declaration(kernel_name: str, kernel_params: Iterable[KernelParameter]) -> str:
    return (
        "KERNEL void "
        + kernel_name
        + "("
        + ", ".join(param.declaration() for param in kernel_params)
        + ")"
    )


class ComputationPlan:
    """Computation plan recorder."""

    def __init__(
        self,
        root_annotations: Mapping[str, Annotation],
        translator: Translator,
        bound_device: "BoundDevice",
        compiler_options: Iterable[str],
        *,
        fast_math: bool,
        keep: bool,
    ):
        """__init__()"""  # hide the signature from Sphinx
        self._bound_device = bound_device
        self._translator = translator
        self._fast_math = fast_math
        self._compiler_options = list(compiler_options)
        self._keep = keep

        self._nested_comp_idgen = IdGen("_nested")
        self._temp_array_idgen = IdGen("_temp")

        self._annotations: dict[str, Annotation] = dict(root_annotations)
        self._temp_arrays: dict[str, Type] = {}
        self._kernels: list[PlannedKernelCall] = []

    def temp_array(self, shape: Sequence[int] | int, dtype: Any) -> KernelArgument:
        """
        Adds a temporary GPU array to the plan, and returns the corresponding
        :py:class:`KernelArgument`.
        Temporary arrays are allocated when the compiled computation is called,
        and released when the call finishes.
        """
        name = self._translator(self._temp_array_idgen())
        ann = Annotation(Type.array(dtype, shape), "io")
        self._annotations[name] = ann
        self._temp_arrays[name] = Type.from_value(ann)
        return KernelArgument(name, ann)

    def temp_array_like(self, arr: Any) -> KernelArgument:
        """
        Same as :py:meth:`temp_array`, taking the array properties
        from array or array-like object ``arr``.
        """
        type_ = Type.from_value(arr)
        if type_.is_scalar():
            raise ValueError("Cannot create a temporary array like a scalar")
        return self.temp_array(type_.shape, type_.dtype)

    def _process_kernel_arguments(
        self, args: Iterable[KernelArgument | numpy.generic]
    ) -> tuple[list[tuple[str, Annotation]], dict[str, numpy.generic]]:
        """
        Scan through kernel arguments passed by the user, check types,
        and wrap ad hoc values if necessary.

        Does not change the plan state.
        """
        processed_args = []
        adhoc_idgen = IdGen("_adhoc")
        adhoc_values = {}

        for arg in args:
            if isinstance(arg, KernelArgument):
                processed_args.append((arg.name, self._annotations[arg.name]))
            elif isinstance(arg, numpy.generic):
                arg_name = self._translator(adhoc_idgen())
                adhoc_values[arg_name] = arg
                processed_args.append((arg_name, Annotation(Type.scalar(arg.dtype))))
            elif hasattr(arg, "shape") and hasattr(arg, "dtype"):
                raise ValueError("Arrays are not allowed as ad hoc arguments")
            else:
                raise TypeError("Unknown argument type: " + str(type(arg)))

        return processed_args, adhoc_values

    def kernel_call(
        self,
        template_def: "DefTemplate",
        args: Iterable[KernelArgument | numpy.generic],
        global_size: Sequence[int],
        local_size: Sequence[int] | None = None,
        render_kwds: Mapping[str, Any] = {},
        kernel_name: str = "_kernel_func",
    ) -> None:
        """
        Adds a kernel call to the plan.

        :param template_def: Mako template def for the kernel.
            Its first parameter receives the kernel declaration,
            the rest receive :py:class:`KernelParameter` objects corresponding to ``args``.
        :param args: a list consisting of
            :py:class:`~kompakt.core.computation.KernelArgument` objects,
            or ``numpy`` scalars, that are going to be passed to the kernel during execution.
        :param global_size: global size to use for the call, in **row-major** order.
        :param local_size: local size to use for the call, in **row-major** order.
            If ``None``, the local size will be picked automatically.
        :param render_kwds: dictionary with additional values used to render the template.
        :param kernel_name: the name of the kernel function.
        """
        processed_args, adhoc_values = self._process_kernel_arguments(args)

        kernel_params = [
            KernelParameter(f"_leaf{i}", annotation)
            for i, (_name, annotation) in enumerate(processed_args)
        ]
        declaration = kernel_declaration(kernel_name, kernel_params)

        kernel = StaticKernel(
            [self._bound_device],
            template_def,
            kernel_name,
            global_size,
            local_size=local_size,
            render_args=[declaration, *kernel_params],
            render_globals=dict(render_kwds),
            fast_math=self._fast_math,
            compiler_options=self._compiler_options,
            keep=self._keep,
        )

        argnames = [name for name, _annotation in processed_args]
        logger.debug(
            "planned %s(%s): global size %s, local size %s",
            kernel_name,
            ", ".join(argnames),
            tuple(global_size),
            None if local_size is None else tuple(local_size),
        )
        self._kernels.append(PlannedKernelCall(kernel, argnames, adhoc_values))

    def computation_call(self, computation: Computation, *args: Any, **kwds: Any) -> None:
        """
        Adds a nested computation call.
        The ``computation`` value must be a :py:class:`~kompakt.core.Computation` object.
        ``args`` and ``kwds`` are :py:class:`KernelArgument` objects
        (or scalar values) to be passed to the computation.
        """
        signature = computation.signature
        argnames = self._process_computation_arguments(signature, args, kwds)

        translator = self._translator.get_nested(
            list(signature.parameters), argnames, self._nested_comp_idgen()
        )
        self._append_plan(
            computation._get_plan(  # noqa: SLF001
                translator,
                self._bound_device,
                self._compiler_options,
                fast_math=self._fast_math,
                keep=self._keep,
            )
        )

    def _process_computation_arguments(
        self, signature: Signature, args: tuple[Any, ...], kwds: Mapping[str, Any]
    ) -> list[str]:
        bound_args = signature.bind_with_defaults(args, kwds, cast=False)

        argnames = []
        for arg, param in zip(
            bound_args.args, signature.kompakt_parameters.values(), strict=True
        ):
            if not isinstance(arg, KernelArgument):
                raise TypeError(
                    f"Nested computation parameter '{param.name}' must be a kernel argument"
                )

            annotation = self._annotations[arg.name]
            if not annotation.can_be_argument_for(param.annotation):
                raise TypeError(f"Got {annotation} for '{param.name}', expected {param.annotation}")

            argnames.append(arg.name)

        return argnames

    def _append_plan(self, plan: "ComputationPlan") -> None:
        self._kernels += plan._kernels  # noqa: SLF001
        self._temp_arrays.update(plan._temp_arrays)  # noqa: SLF001
        # The nested plan refers to our arrays with its own roles,
        # those must not override the roles known here.
        for name, annotation in plan._annotations.items():  # noqa: SLF001
            self._annotations.setdefault(name, annotation)

    def finalize(self, signature: Signature) -> "ComputationCallable":
        return ComputationCallable(
            self._bound_device,
            list(signature.kompakt_parameters.values()),
            self._kernels,
            self._temp_arrays,
        )


class PlannedKernelCall:
    def __init__(
        self,
        kernel: StaticKernel,
        argnames: Sequence[str],
        adhoc_values: Mapping[str, numpy.generic],
    ):
        self._kernel = kernel
        self.argnames = argnames
        self._adhoc_values = adhoc_values

    def finalize(self) -> "KernelCall":
        args: list[Array | numpy.generic | None] = [None] * len(self.argnames)
        external_arg_positions = []

        for i, name in enumerate(self.argnames):
            if name in self._adhoc_values:
                args[i] = self._adhoc_values[name]
            else:
                external_arg_positions.append((name, i))

        return KernelCall(self._kernel, self.argnames, args, external_arg_positions)


class ComputationCallable:
    """
    A result of calling :py:meth:`~kompakt.core.Computation.compile` on a computation.
    Represents a callable opaque GPGPU computation.

    .. py:attribute:: device

        A :py:class:`grunnur.BoundDevice` object used to compile the computation.

    .. py:attribute:: signature

        A :py:class:`~kompakt.core.Signature` object.

    .. py:attribute:: parameter

        A container of :py:class:`~kompakt.core.Type` objects corresponding
        to the callable's parameters.
    """

    def __init__(
        self,
        bound_device: "BoundDevice",
        parameters: Sequence[Parameter],
        kernel_calls: Iterable[PlannedKernelCall],
        temp_arrays: Mapping[str, Type],
    ):
        self.device = bound_device
        self.signature = Signature(parameters)
        self.parameter = ParameterContainer(self, parameters)
        self._kernel_calls = [kernel_call.finalize() for kernel_call in kernel_calls]
        self._temp_arrays = dict(temp_arrays)

    @contextmanager
    def _acquire_temp_arrays(self, queue: Queue) -> Iterator[dict[str, Array]]:
        """
        Allocates the temporary arrays of the plan for the duration of one call.
        The arrays are released on every exit path,
        after the queue has finished all the kernels using them.
        """
        arrays: dict[str, Array] = {}
        try:
            for name, type_ in self._temp_arrays.items():
                arrays[name] = Array.empty(queue.device, type_.shape, type_.dtype)
            yield arrays
        finally:
            if arrays:
                queue.synchronize()
            arrays.clear()

    def __call__(
        self, queue: Queue, *args: Array | numpy.generic, **kwds: Array | numpy.generic
    ) -> list[Any]:
        """
        Execute the computation.
        In case of the OpenCL backend, returns a list of ``pyopencl.Event`` objects
        from nested kernel calls.
        """
        bound_args = self.signature.bind_with_defaults(args, kwds, cast=True)
        with self._acquire_temp_arrays(queue) as temp_arrays:
            known_args = dict(bound_args.arguments)
            known_args.update(temp_arrays)
            return [kernel_call(queue, known_args) for kernel_call in self._kernel_calls]


class KernelCall:
    def __init__(
        self,
        kernel: StaticKernel,
        argnames: Sequence[str],
        args: Iterable[Array | numpy.generic | None],
        external_arg_positions: Iterable[tuple[str, int]],
    ):
        self._argnames = argnames  # primarily for debugging purposes
        self._kernel = kernel
        self._args = list(args)
        self._external_arg_positions = list(external_arg_positions)

    def __call__(self, queue: Queue, known_args: Mapping[str, Array | numpy.generic]) -> Any:
        for name, pos in self._external_arg_positions:
            self._args[pos] = known_args[name]

        try:
            return self._kernel(queue, *cast(list[Array | numpy.generic], self._args))
        finally:
            # releasing references to arrays
            for _name, pos in self._external_arg_positions:
                self._args[pos] = None
