import inspect
from collections.abc import Mapping, Sequence
from typing import Any, cast

import numpy
from grunnur import dtypes
from numpy.typing import DTypeLike

from ..helpers import wrap_in_tuple


class Type:
    """
    Represents an array or, as a degenerate case, scalar type of a computation parameter.

    .. py:attribute:: shape

        A tuple of integers, or ``None`` for scalars.

    .. py:attribute:: dtype

        A ``numpy.dtype`` instance.

    .. py:attribute:: ctype

        A string with the name of C type corresponding to :py:attr:`dtype`.
    """

    def __init__(self, dtype: DTypeLike, shape: Sequence[int] | int | None = None):
        self.dtype = numpy.dtype(dtype)
        self.shape = None if shape is None else wrap_in_tuple(shape)
        self.ctype = dtypes.ctype(self.dtype)

    @classmethod
    def array(cls, dtype: DTypeLike, shape: Sequence[int] | int) -> "Type":
        return cls(dtype, shape=shape)

    @classmethod
    def scalar(cls, dtype: DTypeLike) -> "Type":
        return cls(dtype)

    @classmethod
    def from_value(cls, val: Any) -> "Type":
        """Creates a :py:class:`Type` object corresponding to the given value."""
        if isinstance(val, Type):
            # Creating a new object, because ``val`` may be some derivative of Type,
            # and we do not want its extra attributes to follow it around.
            return cls(val.dtype, shape=val.shape)
        if isinstance(val, type) and issubclass(val, numpy.generic):
            return cls(numpy.dtype(val))
        if isinstance(val, numpy.dtype):
            return cls(val)
        if hasattr(val, "dtype") and hasattr(val, "shape"):
            if len(val.shape) == 0:
                return cls(val.dtype)
            return cls(val.dtype, shape=val.shape)
        return cls(numpy.asarray(val).dtype)

    @property
    def size(self) -> int:
        if self.shape is None:
            raise ValueError("This is a scalar type")
        return int(numpy.prod(self.shape, dtype=numpy.int64))

    def is_scalar(self) -> bool:
        return self.shape is None

    def is_array(self) -> bool:
        return not self.is_scalar()

    def compatible_with(self, other: "Type") -> bool:
        return self.dtype == other.dtype and self.shape == other.shape

    def cast_scalar(self, val: Any) -> numpy.generic:
        """Casts the given value to this type."""
        if not self.is_scalar():
            raise ValueError("Can only cast scalars to a scalar type, this is an array")
        return cast("numpy.generic", numpy.asarray(val, dtype=self.dtype).flat[0])

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Type) and self.compatible_with(other)

    def __hash__(self) -> int:
        return hash((self.dtype, self.shape))

    def __repr__(self) -> str:
        if self.is_scalar():
            return f"Type({self.dtype})"
        return f"Type({self.dtype}, shape={self.shape})"


class Annotation(Type):
    """
    Computation parameter annotation,
    in the same sense as it is used for functions in the standard library.

    :param type_: a :py:class:`~kompakt.core.Type` object, or anything
        :py:meth:`~kompakt.core.Type.from_value` accepts.
    :param role: any of ``'i'`` (input), ``'o'`` (output),
        ``'io'`` (input/output), ``'s'`` (scalar).
        Defaults to ``'s'`` for scalars and ``'io'`` for arrays.
    """

    def __init__(self, type_: Any, role: str | None = None):
        type_ = Type.from_value(type_)
        super().__init__(type_.dtype, shape=type_.shape)

        if role is None:
            role = "s" if self.is_scalar() else "io"

        if role not in ("i", "o", "io", "s"):
            raise ValueError(f"Invalid role: {role}")
        if (role == "s") != self.is_scalar():
            raise ValueError("Only scalars can have the scalar role, and they cannot have others")

        self.role = role
        self.input = "i" in role
        self.output = "o" in role

    def can_be_argument_for(self, annotation: "Annotation") -> bool:
        if not self.compatible_with(annotation):
            return False

        if self.role == annotation.role:
            return True

        return self.role == "io" and annotation.is_array()

    def __repr__(self) -> str:
        return f"Annotation({Type.__repr__(self)}, role={self.role})"


class Parameter(inspect.Parameter):
    """
    Computation parameter,
    in the same sense as it is used for functions in the standard library.
    All computation parameters have kind ``POSITIONAL_OR_KEYWORD``.

    :param name: parameter name.
    :param annotation: an :py:class:`~kompakt.core.Annotation` object.
    :param default: default value for the parameter, can only be specified for scalars.
    """

    def __init__(
        self,
        name: str,
        annotation: Annotation,
        default: Any = inspect.Parameter.empty,
    ):
        if default is not inspect.Parameter.empty:
            if annotation.is_array():
                raise ValueError("Array parameters cannot have default values")
            default = annotation.cast_scalar(default)

        inspect.Parameter.__init__(
            self,
            name,
            annotation=annotation,
            kind=inspect.Parameter.POSITIONAL_OR_KEYWORD,
            default=default,
        )


class Signature(inspect.Signature):
    """
    Computation signature,
    in the same sense as it is used for functions in the standard library.

    :param parameters: a list of :py:class:`~kompakt.core.Parameter` objects.
    """

    def __init__(self, parameters: Sequence[Parameter]):
        inspect.Signature.__init__(self, parameters)

    @property
    def kompakt_parameters(self) -> Mapping[str, Parameter]:
        return cast("Mapping[str, Parameter]", self.parameters)

    def bind_with_defaults(
        self, args: tuple[Any, ...], kwds: Mapping[str, Any], *, cast: bool = False
    ) -> inspect.BoundArguments:
        """
        Binds passed positional and keyword arguments to parameters in the signature and
        returns the resulting ``BoundArguments`` object.
        If ``cast`` is ``True``, scalar arguments are cast to the parameter types,
        and array arguments are checked against the declared shape and dtype.
        """
        bound_args = self.bind(*args, **kwds)
        for param in self.kompakt_parameters.values():
            if param.name not in bound_args.arguments:
                bound_args.arguments[param.name] = param.default
                continue

            if not cast:
                continue

            value = bound_args.arguments[param.name]
            if param.annotation.is_scalar():
                bound_args.arguments[param.name] = param.annotation.cast_scalar(value)
            else:
                value_type = Type.from_value(value)
                if not value_type.compatible_with(param.annotation):
                    raise TypeError(
                        f"Got {value_type} for '{param.name}', expected {param.annotation}"
                    )
        return bound_args
