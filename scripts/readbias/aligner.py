"""
HISAT2 Subprocess Launcher

Starts the aligner as a child process and connects its SAM output to a
one-directional channel that the record decoder reads from.

Channel kinds:
    PIPE  anonymous OS pipe on the child's stdout (default, no file on disk)
    FIFO  named pipe at a fixed path; HISAT2 writes to it via ``-S``.
          Any stale file at the path is removed before the FIFO is created.
          Only one run may use a given FIFO path at a time. An aligner that
          exits before opening the FIFO shows up as end of stream.

The launcher never waits for the child. The child runs in its own session so
that teardown can kill the whole process group (the ``hisat2`` wrapper and
the ``hisat2-align`` binary it spawns).
"""

import errno
import logging
import os
import signal
import subprocess
import threading
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .errors import AlignerError, ChannelError

logger = logging.getLogger(__name__)

DEFAULT_EXECUTABLE = "hisat2"
DEFAULT_FIFO_PATH = "_____temp2.sam"

# Report one alignment per read, in input order
HISAT2_FIXED_ARGS = ["--reorder", "--no-temp-splicesite", "--mm", "--new-summary"]

# Seconds between checks of the aligner while a FIFO reader may still be waiting
FIFO_WATCH_INTERVAL = 0.05


class ChannelKind(Enum):
    PIPE = "pipe"
    FIFO = "fifo"


def build_hisat2_command(
    index: str,
    reads_1: str,
    reads_2: Optional[str] = None,
    threads: int = 4,
    output: Optional[Union[str, Path]] = None,
    executable: str = DEFAULT_EXECUTABLE,
    extra_args: Sequence[str] = ()
) -> List[str]:
    """
    Build the HISAT2 argument list.

    Args:
        index: HISAT2 index basename (``-x``)
        reads_1: First (or only) reads file
        reads_2: Second reads file for paired-end input
        threads: Aligner thread count (``-p``)
        output: SAM output path (``-S``); None writes SAM to stdout
        executable: Aligner executable name or path
        extra_args: Additional arguments appended after the fixed ones

    Returns:
        Argument list suitable for subprocess.Popen

    Examples:
        >>> build_hisat2_command("ref/idx", "r1.fq")
        ['hisat2', '-p', '4', '-k', '1', '-x', 'ref/idx', '-U', 'r1.fq', '--reorder', '--no-temp-splicesite', '--mm', '--new-summary']
    """
    cmd = [executable, "-p", str(threads), "-k", "1"]
    if output is not None:
        cmd += ["-S", str(output)]
    cmd += ["-x", str(index)]
    if reads_2:
        cmd += ["-1", str(reads_1), "-2", str(reads_2)]
    else:
        cmd += ["-U", str(reads_1)]
    cmd += HISAT2_FIXED_ARGS
    cmd += list(extra_args)
    return cmd


def create_fifo(path: Union[str, Path]) -> Path:
    """
    Create a named pipe at ``path``, replacing any stale file there.

    Raises:
        ChannelError: If the stale file cannot be removed or mkfifo fails
    """
    path = Path(path)
    try:
        if path.exists() or path.is_symlink():
            logger.info(f"Removing stale channel file: {path}")
            path.unlink()
        os.mkfifo(path, 0o600)
    except OSError as e:
        raise ChannelError(f"Failed to create fifo {path}: {e}") from e
    logger.info(f"Created fifo: {path}")
    return path


class AlignerProcess:
    """
    Handle on a running aligner and the channel it writes to.

    Usable as a context manager; leaving the block kills the aligner if it is
    still running and removes the FIFO, if any. Both steps are safe to repeat.

    Opening a FIFO for reading blocks until a writer opens it. If the aligner
    exits before it ever opens its output, watch_fifo() opens and closes the
    write end on its behalf so the reader sees end of stream.
    """

    def __init__(
        self,
        process: subprocess.Popen,
        command: List[str],
        channel: ChannelKind,
        fifo_path: Optional[Path] = None
    ):
        self.process = process
        self.command = command
        self.channel = channel
        self.fifo_path = fifo_path
        self._stop_watch = threading.Event()
        self._watcher: Optional[threading.Thread] = None

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def stream_source(self):
        """What the record decoder should open: the stdout pipe or the FIFO path."""
        if self.channel is ChannelKind.PIPE:
            return self.process.stdout
        return str(self.fifo_path)

    def exit_status(self, grace: float = 0.0) -> Optional[int]:
        """
        Return the aligner's exit status, waiting up to ``grace`` seconds.

        Returns None if it is still running afterwards.
        """
        if grace <= 0:
            return self.process.poll()
        try:
            return self.process.wait(timeout=grace)
        except subprocess.TimeoutExpired:
            return None

    def watch_fifo(self) -> None:
        """Start the background FIFO watcher (no-op for PIPE channels)."""
        if self.fifo_path is None or self._watcher is not None:
            return
        self._watcher = threading.Thread(
            target=self._release_fifo_reader,
            name=f"fifo-watch-{self.pid}",
            daemon=True,
        )
        self._watcher.start()

    def stop_watching(self) -> None:
        """Stop the FIFO watcher; called once the reader has the stream open."""
        self._stop_watch.set()
        if self._watcher is not None and self._watcher is not threading.current_thread():
            self._watcher.join(timeout=1.0)

    def _release_fifo_reader(self) -> None:
        while not self._stop_watch.wait(FIFO_WATCH_INTERVAL):
            if self.process.poll() is None:
                continue
            try:
                fd = os.open(str(self.fifo_path), os.O_WRONLY | os.O_NONBLOCK)
            except OSError as e:
                if e.errno == errno.ENXIO:
                    # no reader on the FIFO yet
                    continue
                logger.warning(f"Could not release fifo reader on {self.fifo_path}: {e}")
                return
            os.close(fd)
            logger.info(
                f"Aligner exited with status {self.process.returncode} "
                f"before the stream was open; closed fifo {self.fifo_path}"
            )
            return

    def terminate(self) -> None:
        """Kill the aligner's process group if still running, then reap it."""
        if self.process.poll() is None:
            logger.info(f"Killing aligner (pid {self.pid})")
            try:
                os.killpg(self.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
            self.process.wait()
        if self.process.stdout is not None and not self.process.stdout.closed:
            self.process.stdout.close()

    def remove_channel(self) -> None:
        """Remove the FIFO from the filesystem (no-op for PIPE channels)."""
        if self.fifo_path is None:
            return
        if self.fifo_path.exists() or self.fifo_path.is_symlink():
            self.fifo_path.unlink()
            logger.info(f"Removed fifo: {self.fifo_path}")

    def close(self) -> None:
        for step in (self.stop_watching, self.terminate, self.remove_channel):
            try:
                step()
            except OSError as e:
                logger.warning(f"Aligner cleanup step {step.__name__} failed: {e}")

    def __enter__(self) -> "AlignerProcess":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def launch_aligner(
    command: List[str],
    channel: ChannelKind = ChannelKind.PIPE,
    fifo_path: Optional[Union[str, Path]] = None
) -> AlignerProcess:
    """
    Create the channel and start the aligner without waiting for it.

    For FIFO channels, ``command`` must already direct the aligner's output
    to ``fifo_path`` (see build_hisat2_command ``output``).

    Raises:
        ChannelError: If the FIFO cannot be created
        AlignerError: If the executable cannot be started
    """
    path = None
    if channel is ChannelKind.FIFO:
        path = create_fifo(fifo_path or DEFAULT_FIFO_PATH)

    stdout = subprocess.PIPE if channel is ChannelKind.PIPE else subprocess.DEVNULL
    logger.info(f"Starting aligner: {' '.join(command)}")
    try:
        process = subprocess.Popen(
            command,
            stdin=subprocess.DEVNULL,
            stdout=stdout,
            start_new_session=True,
        )
    except OSError as e:
        if path is not None and (path.exists() or path.is_symlink()):
            path.unlink()
        raise AlignerError(f"Failed to start aligner {command[0]}: {e}") from e

    logger.info(f"Aligner started (pid {process.pid}, channel {channel.value})")
    aligner = AlignerProcess(process, command, channel, path)
    aligner.watch_fifo()
    return aligner
