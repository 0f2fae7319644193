# src/correlator/errors.py
"""Exception types raised by the correlation pipeline."""


class CorrelatorError(Exception):
    """Base class for all correlator errors."""


class BatchDecodeError(CorrelatorError):
    """A transport payload could not be decoded into a log batch.

    The whole batch is rejected; no entry of it is processed.
    """


class CoordinatorClosedError(CorrelatorError):
    """The coordinator has been shut down and accepts no new batches."""
