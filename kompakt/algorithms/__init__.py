"""
Scan and stream compaction algorithms.


Pure parallel computations
^^^^^^^^^^^^^^^^^^^^^^^^^^

.. autoclass:: PureParallel
    :members:


Scan
^^^^

.. autoclass:: Scan
    :members:


Stream compaction
^^^^^^^^^^^^^^^^^

.. autoclass:: MapToBoolean
    :members:

.. autoclass:: Scatter
    :members:

.. autoclass:: Compact
    :members:
"""

from .pureparallel import PureParallel
from .scan import Scan
from .compact import Compact, MapToBoolean, Scatter
