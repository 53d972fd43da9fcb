"""
Error types shared across the package.

Precondition violations raise InvalidArgumentError. Recoverable
insufficient-data situations are reported through explicit result states
(see CorrespondenceSet.is_sufficient and ICPStatus) rather than exceptions.
"""

from pathlib import Path
from typing import Optional, Union


class InvalidArgumentError(ValueError):
    """A caller passed an argument that violates a local precondition."""


class ScanLoadError(RuntimeError):
    """A scan required by the batch pipeline could not be loaded."""

    def __init__(self, path: Union[str, Path], index: Optional[int] = None, reason: str = "empty or unreadable"):
        self.path = Path(path)
        self.index = index
        self.reason = reason
        label = f"scan {index} " if index is not None else "scan "
        super().__init__(f"Failed to load {label}({self.path}): {reason}")
