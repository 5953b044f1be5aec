"""
Result values returned by every produce path.

Broker-reported errors are never raised to the caller; they come back as a
``Failure`` carrying the first error encountered.
"""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Success:
    """All sends for the call completed."""

    @property
    def ok(self) -> bool:
        return True

    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """The first error encountered; later sends were not attempted."""

    reason: BaseException

    @property
    def ok(self) -> bool:
        return False

    def __bool__(self) -> bool:
        return False


ProduceResult = Union[Success, Failure]

SUCCESS = Success()
