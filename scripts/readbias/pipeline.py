"""
Streaming Read-Mapping Bias Pipeline

Runs HISAT2 as a subprocess, decodes its SAM output as it is produced,
classifies every record by its flags, and writes one summary row per window
of ``bin_size`` records.

Flow:
    launch_aligner -> open_alignment_stream -> BinCounter.feed -> output sink

Teardown:
    Each resource is registered on an ExitStack as soon as it is acquired, so
    cleanup runs on normal return, on ReadbiasError, and on interrupts. A
    resource that was never acquired has nothing registered. Individual
    cleanup steps log their failures and never stop the remaining steps.

    Cleanup order: kill aligner -> close decoder (header, file handle,
    worker pool) -> remove channel.
"""

import logging
import sys
from contextlib import ExitStack
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, TextIO

from .aligner import AlignerProcess, ChannelKind, build_hisat2_command, launch_aligner
from .binning import BinCounter, OutputLayout, format_header, format_row
from .config_parser import ReadbiasSettings
from .decoder import open_alignment_stream
from .errors import AlignerError, HeaderError, StreamDecodeError
from .flags import MappingCategory, ReadMode

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """Outcome of one pass over an alignment stream."""
    records: int  # records counted (READ1 only in paired mode)
    windows: int
    pending: int  # records in the trailing window that was not emitted
    aligner_returncode: Optional[int] = None


def write_bins(
    records: Iterable,
    mode: ReadMode,
    bin_size: int,
    out: TextIO,
    layout: OutputLayout = OutputLayout.FIXED
) -> RunSummary:
    """
    Write the summary table for a stream of records.

    The header line is written before the first record is pulled, so an
    empty stream still produces a header.

    Args:
        records: Iterable of records with an integer ``flag`` attribute
        mode: Read mode of the run
        bin_size: Records per window
        out: Text sink for the table
        layout: Column layout

    Returns:
        RunSummary (aligner_returncode left as None)
    """
    counter = BinCounter(bin_size, mode)
    out.write(format_header(mode, layout) + "\n")

    windows = 0
    for row in counter.feed(records):
        unclassified = row.get(MappingCategory.UNCLASSIFIED)
        if unclassified and layout is OutputLayout.FIXED:
            logger.warning(
                f"Window ending at record {row.records} has {unclassified} "
                f"unclassified records (counted, no column in fixed layout)"
            )
        out.write(format_row(row, mode, layout) + "\n")
        windows += 1
    out.flush()

    if counter.pending:
        logger.info(f"Trailing window of {counter.pending} records not reported")
    logger.info(f"Processed {counter.records} records in {windows} windows")
    return RunSummary(records=counter.records, windows=windows, pending=counter.pending)


def _describe_exit(aligner: AlignerProcess, grace: float) -> str:
    status = aligner.exit_status(grace)
    if status is None:
        return "aligner still running"
    return f"aligner exited with status {status}"


def _best_effort(description: str, step: Callable[[], None]) -> Callable[[], None]:
    def run() -> None:
        try:
            step()
        except Exception as e:
            logger.warning(f"Teardown step '{description}' failed: {e}")
    return run


def run_readbias(settings: ReadbiasSettings, out: TextIO = sys.stdout) -> RunSummary:
    """
    Run one readbias pass: align, classify, bin, and tear down.

    Args:
        settings: Resolved run settings
        out: Text sink for the summary table

    Returns:
        RunSummary of the completed pass

    Raises:
        ChannelError: If the FIFO channel cannot be created
        AlignerError: If the aligner cannot be started or exits non-zero
        HeaderError: If the SAM header cannot be read
        StreamDecodeError: If the stream is corrupt or truncated
    """
    mode = settings.mode
    fifo_output = settings.fifo_path if settings.channel is ChannelKind.FIFO else None
    command = build_hisat2_command(
        settings.index,
        settings.reads_1,
        settings.reads_2,
        threads=settings.aligner_threads,
        output=fifo_output,
        executable=settings.executable,
        extra_args=settings.extra_args,
    )
    logger.info(
        f"readbias: {mode.value}-end reads, bin size {settings.bin_size}, "
        f"{settings.io_threads} decoder threads"
    )

    with ExitStack() as stack:
        aligner = stack.enter_context(
            launch_aligner(command, settings.channel, settings.fifo_path)
        )

        try:
            stream = stack.enter_context(
                open_alignment_stream(aligner.stream_source, settings.io_threads, name="aligner output")
            )
        except HeaderError as e:
            raise HeaderError(f"{e} ({_describe_exit(aligner, settings.exit_status_grace)})") from e
        aligner.stop_watching()

        # Kill the aligner before the decoder is closed.
        stack.callback(_best_effort("kill aligner", aligner.terminate))

        try:
            summary = write_bins(stream.records(), mode, settings.bin_size, out, settings.layout)
        except StreamDecodeError as e:
            raise StreamDecodeError(
                f"{e} ({_describe_exit(aligner, settings.exit_status_grace)})",
                records_read=e.records_read,
            ) from e

        returncode = aligner.exit_status(settings.exit_status_grace)
        summary.aligner_returncode = returncode
        if returncode:
            raise AlignerError(f"Aligner exited with status {returncode}", returncode)
        if returncode is None:
            logger.warning("Aligner still running after end of stream; it will be killed")

    return summary
