"""
Error taxonomy for the scan engine.

A dedup conflict is deliberately absent: losing a claim is an expected
outcome and is reported through ``ClaimResult`` rather than raised.
"""


class NudgeError(Exception):
    """Base class for engine errors."""


class ValidationError(NudgeError):
    """Input for a unit is unusable (no transactions, no phone number). Skip the unit."""


class DataInconsistencyError(NudgeError):
    """Stored data contradicts itself (non-positive interval, extreme outlier)."""


class DeliveryFailure(NudgeError):
    """The SMS transport rejected or timed out on a message."""


class InfrastructureError(NudgeError):
    """The data store is unreachable; the remaining units of the run are aborted."""
