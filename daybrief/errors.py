#!/usr/bin/env python3
"""
Error types for daybrief.

Nothing raised from here is meant to be process-fatal. Adapter failures are
folded into SourceResult values, delivery failures prune the dead target.
"""

from typing import Optional


class DaybriefError(Exception):
    """Base class for all daybrief errors."""


class ConfigError(DaybriefError):
    """Settings file could not be read or has the wrong shape."""


class AdapterError(DaybriefError):
    """A data source adapter failed."""

    def __init__(self, source: str, cause: BaseException):
        super().__init__(f"{source}: {cause}")
        self.source = source
        self.cause = cause


class DeliveryError(DaybriefError):
    """Out-of-band push delivery failed.

    ``gone`` is True when the remote side reports the registration as
    permanently unreachable and it should be pruned.
    """

    def __init__(self, message: str, status: Optional[int] = None, gone: bool = False):
        super().__init__(message)
        self.status = status
        self.gone = gone
