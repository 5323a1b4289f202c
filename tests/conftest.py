"""
Pytest configuration and fixtures for readbias tests.
"""

import os
import stat
import sys
import tempfile
from collections import namedtuple
from pathlib import Path

import pytest

# Add scripts directory to path for imports
scripts_dir = Path(__file__).parent.parent / "scripts"
sys.path.insert(0, str(scripts_dir))

from readbias.aligner import ChannelKind
from readbias.binning import OutputLayout
from readbias.config_parser import ReadbiasSettings


# ============================================================================
# Path Fixtures
# ============================================================================

@pytest.fixture
def project_root():
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ============================================================================
# Record Fixtures
# ============================================================================

FlagRecord = namedtuple("FlagRecord", ["flag"])


@pytest.fixture
def flag_records():
    """Factory: turn a list of flag values into minimal record objects."""
    def _make(flags):
        return [FlagRecord(f) for f in flags]
    return _make


# ============================================================================
# SAM Fixtures
# ============================================================================

SAM_HEADER = "@HD\tVN:1.6\tSO:unsorted\n@SQ\tSN:chr1\tLN:1000\n"


def sam_line(name, flag, tags=""):
    """One SAM record; unmapped records get no position."""
    if flag & 0x4:
        placement = "*\t0\t0\t*"
    else:
        placement = "chr1\t1\t60\t4M"
    line = f"{name}\t{flag}\t{placement}\t*\t0\t0\tACGT\tIIII"
    if tags:
        line += f"\t{tags}"
    return line + "\n"


def sam_text(flags):
    """Header plus one record per flag value."""
    body = "".join(sam_line(f"read{i}", flag) for i, flag in enumerate(flags))
    return SAM_HEADER + body


@pytest.fixture
def write_sam(temp_dir):
    """Factory: write SAM text for the given flags and return its path."""
    def _write(flags, name="reads.sam"):
        path = temp_dir / name
        path.write_text(sam_text(flags))
        return path
    return _write


# ============================================================================
# Stand-in Aligner
# ============================================================================

FAKE_ALIGNER = '''\
import os
import sys
import time

args = sys.argv[1:]
with open({data_path!r}, "rb") as f:
    data = f.read()
if "-S" in args:
    with open(args[args.index("-S") + 1], "wb") as out:
        out.write(data)
else:
    sys.stdout.buffer.write(data)
    sys.stdout.flush()
    if {hang!r}:
        os.close(1)
if {hang!r}:
    time.sleep(60)
sys.exit({exit_code!r})
'''


@pytest.fixture
def fake_aligner(temp_dir):
    """
    Factory: executable that ignores HISAT2 arguments and emits fixed output.

    Writes ``data`` to stdout, or to the ``-S`` path when one is given, then
    exits with ``exit_code``. With ``hang`` it closes its output and sleeps.
    """
    counter = {"n": 0}

    def _make(data, exit_code=0, hang=False):
        counter["n"] += 1
        data_path = temp_dir / f"aligner_output_{counter['n']}"
        if isinstance(data, str):
            data = data.encode()
        data_path.write_bytes(data)

        script = temp_dir / f"fake_hisat2_{counter['n']}"
        interpreter = sys.executable if len(sys.executable) < 100 else "/usr/bin/env python3"
        script.write_text(
            f"#!{interpreter}\n"
            + FAKE_ALIGNER.format(data_path=str(data_path), hang=hang, exit_code=exit_code)
        )
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(script)

    return _make


@pytest.fixture
def make_settings(temp_dir):
    """Factory for ReadbiasSettings pointing at a stand-in aligner."""
    def _make(executable, paired=False, **overrides):
        values = dict(
            index="ref_index/basename",
            reads_1="r1.fastq",
            reads_2="r2.fastq" if paired else None,
            bin_size=1,
            channel=ChannelKind.PIPE,
            fifo_path=str(temp_dir / "channel.sam"),
            exit_status_grace=5.0,
            layout=OutputLayout.FIXED,
            executable=executable,
        )
        values.update(overrides)
        return ReadbiasSettings(**values)
    return _make


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config():
    """Provide a sample configuration dictionary."""
    return {
        "aligner": {
            "executable": "hisat2",
            "index": "/data/ref/grch38/genome",
            "threads": 8,
            "extra_args": ["--no-spliced-alignment"],
        },
        "decoder": {
            "io_threads": 4,
        },
        "binning": {
            "bin_size": 5000,
        },
        "channel": {
            "kind": "fifo",
            "fifo_path": "run.sam",
        },
        "output": {
            "layout": "compact",
        },
    }


@pytest.fixture
def clean_env(monkeypatch):
    """Remove READBIAS_* variables from the environment."""
    for key in list(os.environ):
        if key.startswith("READBIAS_"):
            monkeypatch.delenv(key)
    return monkeypatch
