"""
Alignment stream decoding on top of pysam.

pysam (htslib) does the actual SAM/BAM parsing. With ``io_threads > 1`` htslib
spreads decompression over a worker pool; records still arrive in stream
order. The pool belongs to the open file and is released when it is closed.
"""

import logging
from typing import Iterator, Optional

import pysam

from .errors import HeaderError, StreamDecodeError

logger = logging.getLogger(__name__)


class AlignmentStream:
    """Open alignment stream: header plus a one-shot record iterator."""

    def __init__(self, samfile: pysam.AlignmentFile, io_threads: int = 1):
        self.samfile = samfile
        self.io_threads = io_threads
        self.records_read = 0
        self._closed = False

    @property
    def header(self) -> pysam.AlignmentHeader:
        return self.samfile.header

    def records(self) -> Iterator[pysam.AlignedSegment]:
        """
        Yield records in stream order.

        Ends normally at end of stream.

        Raises:
            StreamDecodeError: If htslib reports a corrupt or truncated record
        """
        iterator = self.samfile.fetch(until_eof=True)
        while True:
            try:
                record = next(iterator)
            except StopIteration:
                return
            except (OSError, ValueError) as e:
                raise StreamDecodeError(
                    f"Failed to read data after {self.records_read} records: {e}",
                    records_read=self.records_read,
                ) from e
            self.records_read += 1
            yield record

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self.samfile.close()
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to close alignment stream: {e}")

    def __enter__(self) -> "AlignmentStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def open_alignment_stream(source, io_threads: int = 1, name: Optional[str] = None) -> AlignmentStream:
    """
    Open a SAM/BAM stream and read its header.

    Args:
        source: File path, FIFO path, or binary file object (e.g. a pipe)
        io_threads: Decoder worker threads; a pool is created only when > 1
        name: Label for error messages

    Returns:
        AlignmentStream positioned at the first record

    Raises:
        HeaderError: If the stream cannot be opened or has no readable header
    """
    label = name or str(getattr(source, "name", source))
    kwargs = {"check_sq": False}
    if io_threads > 1:
        kwargs["threads"] = io_threads
        logger.info(f"Decoding with {io_threads} worker threads")

    try:
        samfile = pysam.AlignmentFile(source, "r", **kwargs)
    except (OSError, ValueError) as e:
        raise HeaderError(f"Failed to read header from {label}: {e}") from e
    return AlignmentStream(samfile, io_threads)
