"""
Core classes used to build and run computations.

.. autoclass:: Type
    :members:

.. autoclass:: Annotation
    :members:

.. autoclass:: Parameter
    :members:

.. autoclass:: Signature
    :members:

.. autoclass:: Computation
    :members:

.. autoclass:: ComputationPlan
    :members:
"""

from .computation import (
    Computation,
    ComputationCallable,
    ComputationParameter,
    ComputationPlan,
    KernelArgument,
    KernelArguments,
    KernelParameter,
)
from .signature import Annotation, Parameter, Signature, Type
