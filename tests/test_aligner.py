"""
Tests for HISAT2 command building, channel creation and process lifecycle.
"""

import stat
import sys
import threading
from pathlib import Path

import pytest

# Add scripts directory to path for imports
scripts_dir = Path(__file__).parent.parent / "scripts"
sys.path.insert(0, str(scripts_dir))

from readbias.aligner import (
    HISAT2_FIXED_ARGS,
    ChannelKind,
    build_hisat2_command,
    create_fifo,
    launch_aligner,
)
from readbias.errors import AlignerError, ChannelError


# ============================================================================
# Tests: Command Line
# ============================================================================

class TestBuildCommand:

    def test_single_end(self):
        cmd = build_hisat2_command("ref/idx", "r1.fq", threads=11)
        assert cmd[:5] == ["hisat2", "-p", "11", "-k", "1"]
        assert "-U" in cmd and cmd[cmd.index("-U") + 1] == "r1.fq"
        assert "-1" not in cmd and "-2" not in cmd
        assert "-S" not in cmd
        assert cmd[cmd.index("-x") + 1] == "ref/idx"

    def test_paired_end(self):
        cmd = build_hisat2_command("ref/idx", "r1.fq", "r2.fq")
        assert cmd[cmd.index("-1") + 1] == "r1.fq"
        assert cmd[cmd.index("-2") + 1] == "r2.fq"
        assert "-U" not in cmd

    def test_fixed_arguments_present(self):
        cmd = build_hisat2_command("ref/idx", "r1.fq")
        assert cmd[-len(HISAT2_FIXED_ARGS):] == HISAT2_FIXED_ARGS

    def test_output_path(self):
        cmd = build_hisat2_command("ref/idx", "r1.fq", output="_____temp2.sam")
        assert cmd[cmd.index("-S") + 1] == "_____temp2.sam"

    def test_executable_and_extra_args(self):
        cmd = build_hisat2_command(
            "ref/idx", "r1.fq", executable="/opt/hisat2/hisat2",
            extra_args=["--no-spliced-alignment"],
        )
        assert cmd[0] == "/opt/hisat2/hisat2"
        assert cmd[-1] == "--no-spliced-alignment"


# ============================================================================
# Tests: FIFO Channel
# ============================================================================

class TestCreateFifo:

    def test_creates_fifo(self, temp_dir):
        path = create_fifo(temp_dir / "channel.sam")
        assert stat.S_ISFIFO(path.stat().st_mode)

    def test_replaces_stale_file(self, temp_dir):
        stale = temp_dir / "channel.sam"
        stale.write_text("left over from a previous run")
        path = create_fifo(stale)
        assert stat.S_ISFIFO(path.stat().st_mode)

    def test_missing_directory(self, temp_dir):
        with pytest.raises(ChannelError):
            create_fifo(temp_dir / "no_such_dir" / "channel.sam")


# ============================================================================
# Tests: Process Lifecycle
# ============================================================================

class TestLaunchAligner:

    def test_missing_executable(self, temp_dir):
        cmd = build_hisat2_command("idx", "r1.fq", executable=str(temp_dir / "no-hisat2"))
        with pytest.raises(AlignerError):
            launch_aligner(cmd)

    def test_missing_executable_removes_fifo(self, temp_dir):
        fifo = temp_dir / "channel.sam"
        cmd = build_hisat2_command(
            "idx", "r1.fq", output=fifo, executable=str(temp_dir / "no-hisat2")
        )
        with pytest.raises(AlignerError):
            launch_aligner(cmd, ChannelKind.FIFO, fifo)
        assert not fifo.exists()

    def test_pipe_channel_source(self, fake_aligner):
        cmd = build_hisat2_command("idx", "r1.fq", executable=fake_aligner("hello"))
        with launch_aligner(cmd) as aligner:
            assert aligner.stream_source is aligner.process.stdout
            assert aligner.stream_source.read() == b"hello"
            assert aligner.exit_status(grace=5.0) == 0
        assert aligner.process.stdout.closed

    def test_exit_status_reported(self, fake_aligner):
        cmd = build_hisat2_command("idx", "r1.fq", executable=fake_aligner("", exit_code=3))
        with launch_aligner(cmd) as aligner:
            aligner.stream_source.read()
            assert aligner.exit_status(grace=5.0) == 3

    def test_terminate_kills_running_aligner(self, fake_aligner):
        cmd = build_hisat2_command("idx", "r1.fq", executable=fake_aligner("", hang=True))
        aligner = launch_aligner(cmd)
        assert aligner.exit_status() is None
        aligner.terminate()
        assert aligner.process.returncode is not None
        assert aligner.process.returncode != 0
        # second call is a no-op
        aligner.terminate()

    def test_close_removes_fifo(self, fake_aligner, temp_dir):
        fifo = temp_dir / "channel.sam"
        cmd = build_hisat2_command("idx", "r1.fq", output=fifo, executable=fake_aligner("x"))
        aligner = launch_aligner(cmd, ChannelKind.FIFO, fifo)
        assert aligner.stream_source == str(fifo)
        assert fifo.exists()
        aligner.close()
        assert not fifo.exists()
        aligner.close()

    def test_fifo_reader_released_when_aligner_exits(self, temp_dir):
        script = temp_dir / "failing_hisat2"
        script.write_text("#!/bin/sh\nexit 2\n")
        script.chmod(0o755)
        fifo = temp_dir / "channel.sam"
        cmd = build_hisat2_command("idx", "r1.fq", output=fifo, executable=str(script))

        received = {}

        def read_fifo():
            with open(fifo, "rb") as f:
                received["data"] = f.read()

        with launch_aligner(cmd, ChannelKind.FIFO, fifo) as aligner:
            reader = threading.Thread(target=read_fifo, daemon=True)
            reader.start()
            reader.join(timeout=20.0)
            assert not reader.is_alive()
            assert received["data"] == b""
            assert aligner.exit_status(grace=5.0) == 2
        assert not fifo.exists()
