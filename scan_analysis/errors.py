"""Exceptions raised by the offline analysis pipeline."""


class AnalysisError(Exception):
    """Base class for analysis errors. Aborts the whole pipeline invocation."""


class NoData(AnalysisError):
    """A recording, a run group or a required column holds no usable data."""
