"""Application errors shared by services, routers and the realtime gateway."""

from __future__ import annotations


class StoreError(Exception):
    """The backing store was unreachable or rejected an operation.

    The driver exception is chained as ``__cause__``.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
