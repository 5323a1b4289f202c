#!/usr/bin/env python3
"""
readbias Configuration Parser

Loads YAML configuration files, applies READBIAS_* environment overrides, and
builds the settings used by a readbias run.

Precedence (highest first):
    1. Command line flags
    2. Environment variables (READBIAS_ALIGNER_THREADS, READBIAS_BINNING_BIN_SIZE, ...)
    3. YAML configuration file
    4. Built-in defaults (DEFAULT_CONFIG)

Usage:
    # Get single value
    readbias-config config.yaml --get aligner.threads

    # Export all as shell variables
    readbias-config config.yaml --export

    # Validate configuration
    readbias-config config.yaml --validate

    # As Python module
    from readbias.config_parser import load_config, get_nested
    config = load_config("config.yaml")
    bin_size = get_nested(config, "binning.bin_size")
"""

import argparse
import copy
import json
import os
import shlex
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .aligner import DEFAULT_EXECUTABLE, DEFAULT_FIFO_PATH, ChannelKind
from .binning import OutputLayout
from .errors import ConfigError
from .flags import ReadMode

ENV_PREFIX = "READBIAS_"
PLACEHOLDER_PREFIX = "/path/to"

# Distinguishes an absent key from one set to null
_MISSING = object()

DEFAULT_CONFIG: Dict[str, Any] = {
    "aligner": {
        "executable": DEFAULT_EXECUTABLE,
        "index": None,
        "threads": 4,
        "extra_args": [],
    },
    "decoder": {
        "io_threads": 1,
    },
    "binning": {
        "bin_size": 1,
    },
    "channel": {
        "kind": ChannelKind.PIPE.value,
        "fifo_path": DEFAULT_FIFO_PATH,
        "exit_status_grace": 1.0,
    },
    "output": {
        "layout": OutputLayout.FIXED.value,
    },
}


@dataclass(frozen=True)
class ReadbiasSettings:
    """Resolved, validated settings for one readbias run."""
    index: str
    reads_1: str
    reads_2: Optional[str] = None
    aligner_threads: int = 4
    io_threads: int = 1
    bin_size: int = 1
    channel: ChannelKind = ChannelKind.PIPE
    fifo_path: str = DEFAULT_FIFO_PATH
    exit_status_grace: float = 1.0
    layout: OutputLayout = OutputLayout.FIXED
    executable: str = DEFAULT_EXECUTABLE
    extra_args: Tuple[str, ...] = ()

    @property
    def mode(self) -> ReadMode:
        return ReadMode.from_inputs(self.reads_2)


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Dictionary containing configuration values

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML parsing fails
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path, 'r') as f:
        config = yaml.safe_load(f)

    if config is None:
        return {}

    return config


def get_nested(config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """
    Get a nested value from config using dot notation.

    Examples:
        >>> config = {"aligner": {"threads": 8}}
        >>> get_nested(config, "aligner.threads")
        8
        >>> get_nested(config, "aligner.missing", "default")
        'default'
    """
    keys = key_path.split('.')
    value = config

    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return value


def set_nested(config: Dict[str, Any], key_path: str, value: Any) -> None:
    """Set a nested value using dot notation, creating sections as needed."""
    keys = key_path.split('.')
    section = config
    for key in keys[:-1]:
        section = section.setdefault(key, {})
    section[keys[-1]] = value


def merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep-merge ``override`` onto a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def flatten_config(config: Dict[str, Any], prefix: str = "") -> Dict[str, str]:
    """
    Flatten nested config into flat dictionary with dot-notation keys.

    Examples:
        >>> flatten_config({"binning": {"bin_size": 5000}})
        {'binning.bin_size': '5000'}
    """
    flat = {}

    for key, value in config.items():
        full_key = f"{prefix}.{key}" if prefix else key

        if isinstance(value, dict):
            flat.update(flatten_config(value, full_key))
        else:
            # Convert to string for shell compatibility
            if value is None:
                flat[full_key] = ""
            elif isinstance(value, bool):
                flat[full_key] = "true" if value else "false"
            elif isinstance(value, (list, tuple)):
                flat[full_key] = " ".join(shlex.quote(str(v)) for v in value)
            else:
                flat[full_key] = str(value)

    return flat


def to_env_var_name(key_path: str) -> str:
    """
    Convert dot-notation key to environment variable name.

    Examples:
        >>> to_env_var_name("decoder.io_threads")
        'READBIAS_DECODER_IO_THREADS'
    """
    return ENV_PREFIX + key_path.upper().replace(".", "_").replace("-", "_")


def apply_env_overrides(
    config: Dict[str, Any],
    environ: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """
    Return a copy of config with READBIAS_* environment values applied.

    Only keys present in DEFAULT_CONFIG are recognised. Values stay strings;
    build_settings converts and validates them.
    """
    environ = os.environ if environ is None else environ
    result = copy.deepcopy(config)
    for key_path in flatten_config(DEFAULT_CONFIG):
        var_name = to_env_var_name(key_path)
        if var_name in environ:
            set_nested(result, key_path, environ[var_name])
    return result


def export_as_shell(config: Dict[str, Any]) -> str:
    """Export config as shell variable assignments."""
    flat = flatten_config(config)
    lines = []

    for key, value in sorted(flat.items()):
        var_name = to_env_var_name(key)
        # Escape single quotes in value
        escaped_value = str(value).replace("'", "'\"'\"'")
        lines.append(f"export {var_name}='{escaped_value}'")

    return "\n".join(lines)


def _positive_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(value)
    number = value if isinstance(value, int) else int(str(value).strip())
    if number < 1:
        raise ValueError(value)
    return number


def _extra_args(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return shlex.split(value)
    return [str(v) for v in value]


def validate_config(config: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate configuration for required fields.

    Args:
        config: Configuration dictionary (usually merged onto DEFAULT_CONFIG)

    Returns:
        Tuple of (is_valid, list of error messages)
    """
    errors = []

    index = get_nested(config, "aligner.index")
    if not index or str(index).startswith(PLACEHOLDER_PREFIX):
        errors.append("Missing or placeholder: aligner index (aligner.index)")

    executable = get_nested(config, "aligner.executable")
    if not executable:
        errors.append("Missing aligner executable (aligner.executable)")

    # Validate numeric ranges
    for key_path in ("aligner.threads", "decoder.io_threads", "binning.bin_size"):
        value = get_nested(config, key_path)
        try:
            _positive_int(value)
        except (ValueError, TypeError):
            errors.append(f"{key_path} must be a positive integer, got {value!r}")

    grace = get_nested(config, "channel.exit_status_grace", 0)
    try:
        if float(grace) < 0:
            errors.append(f"channel.exit_status_grace must be >= 0, got {grace}")
    except (ValueError, TypeError):
        errors.append(f"channel.exit_status_grace must be a number, got {grace!r}")

    kind = get_nested(config, "channel.kind")
    if kind not in [item.value for item in ChannelKind]:
        errors.append(f"channel.kind must be one of pipe, fifo; got {kind!r}")

    layout = get_nested(config, "output.layout")
    if layout not in [item.value for item in OutputLayout]:
        errors.append(f"output.layout must be one of fixed, compact; got {layout!r}")

    try:
        _extra_args(get_nested(config, "aligner.extra_args"))
    except (ValueError, TypeError) as e:
        errors.append(f"aligner.extra_args could not be parsed: {e}")

    return len(errors) == 0, errors


def build_settings(
    config: Dict[str, Any],
    reads_1: str,
    reads_2: Optional[str] = None
) -> ReadbiasSettings:
    """
    Turn a configuration dictionary into ReadbiasSettings.

    Missing keys fall back to DEFAULT_CONFIG.

    Raises:
        ConfigError: If validation fails; the message lists every problem
    """
    merged = merge_config(DEFAULT_CONFIG, config)
    is_valid, errors = validate_config(merged)
    if not is_valid:
        raise ConfigError("; ".join(errors))

    return ReadbiasSettings(
        index=str(get_nested(merged, "aligner.index")),
        reads_1=str(reads_1),
        reads_2=str(reads_2) if reads_2 else None,
        aligner_threads=_positive_int(get_nested(merged, "aligner.threads")),
        io_threads=_positive_int(get_nested(merged, "decoder.io_threads")),
        bin_size=_positive_int(get_nested(merged, "binning.bin_size")),
        channel=ChannelKind(get_nested(merged, "channel.kind")),
        fifo_path=str(get_nested(merged, "channel.fifo_path")),
        exit_status_grace=float(get_nested(merged, "channel.exit_status_grace")),
        layout=OutputLayout(get_nested(merged, "output.layout")),
        executable=str(get_nested(merged, "aligner.executable")),
        extra_args=tuple(_extra_args(get_nested(merged, "aligner.extra_args"))),
    )


def print_config_summary(config: Dict[str, Any]) -> None:
    """Print a human-readable config summary."""
    print("=" * 60)
    print("readbias Configuration Summary")
    print("=" * 60)

    sections = [
        ("Aligner", [
            ("aligner.executable", "Executable"),
            ("aligner.index", "Index"),
            ("aligner.threads", "Threads"),
        ]),
        ("Decoder", [
            ("decoder.io_threads", "Worker Threads"),
        ]),
        ("Binning", [
            ("binning.bin_size", "Bin Size"),
        ]),
        ("Channel", [
            ("channel.kind", "Kind"),
            ("channel.fifo_path", "FIFO Path"),
        ]),
        ("Output", [
            ("output.layout", "Layout"),
        ]),
    ]

    for section_name, fields in sections:
        print(f"\n{section_name}:")
        for key_path, label in fields:
            value = get_nested(config, key_path, "not set")
            print(f"  {label}: {value}")

    print("\n" + "=" * 60)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="readbias Configuration Parser",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument(
        "config",
        help="Path to YAML configuration file"
    )

    parser.add_argument(
        "--get",
        metavar="KEY",
        help="Get single value using dot notation (e.g., aligner.threads)"
    )

    parser.add_argument(
        "--export",
        action="store_true",
        help="Export all config as shell variable assignments"
    )

    parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate configuration and report errors"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON (for --get with complex values)"
    )

    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except yaml.YAMLError as e:
        print(f"Error parsing YAML: {e}", file=sys.stderr)
        return 1

    config = apply_env_overrides(merge_config(DEFAULT_CONFIG, config))

    if args.get:
        value = get_nested(config, args.get, _MISSING)
        if value is _MISSING:
            print(f"Key not found: {args.get}", file=sys.stderr)
            return 1
        if args.json:
            print(json.dumps(value))
        else:
            # null values print as an empty line, like --export
            print("" if value is None else value)

    elif args.export:
        print(export_as_shell(config))

    elif args.validate:
        is_valid, errors = validate_config(config)
        if not is_valid:
            print("Configuration errors:", file=sys.stderr)
            for error in errors:
                print(f"  - {error}", file=sys.stderr)
            return 1
        print("Configuration is valid!")

    else:
        print_config_summary(config)

    return 0


if __name__ == "__main__":
    sys.exit(main())
