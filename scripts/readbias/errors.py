"""
Exception types raised by the readbias pipeline.

Every failure is terminal for a run. The CLI turns any ReadbiasError into a
one-line message on stderr and a non-zero exit status.
"""

from typing import Optional


class ReadbiasError(Exception):
    """Base class for all readbias failures."""


class ConfigError(ReadbiasError):
    """Invalid or incomplete configuration."""


class ChannelError(ReadbiasError):
    """The communication channel to the aligner could not be created."""


class AlignerError(ReadbiasError):
    """The aligner could not be started or exited with a failure status."""

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class HeaderError(ReadbiasError):
    """The alignment stream header could not be read."""


class StreamDecodeError(ReadbiasError):
    """The alignment stream was corrupt or truncated mid-read."""

    def __init__(self, message: str, records_read: int = 0):
        super().__init__(message)
        self.records_read = records_read
