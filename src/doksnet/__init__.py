"""doksnet package root."""

from doksnet.exceptions import DoksnetError
from doksnet.partition import PartitionRef, parse_partition, render_partition

__all__ = [
    "__version__",
    "DoksnetError",
    "PartitionRef",
    "parse_partition",
    "render_partition",
]

__version__ = "0.1.0"
