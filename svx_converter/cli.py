"""Command-line interface for the 8SVX sample converter.

WHY: Users need a single command that turns WAV/AIFF/FLAC/etc. into
IFF 8SVX files an Amiga tracker can load. The CLI wires together
probing, plan building, size estimation, the SoX engine and the
container writer behind the flags the classic shell tool offered.

HOW: Uses argparse. Single-file mode converts one input to an explicit
or derived output name. Batch mode (-b) converts every input into an
output directory, optionally on a thread pool, with serialized
collision-free naming. Preview (-p) prints the plan without converting;
--self-test runs the oracle in a temp directory. Status messages go to
stderr.

RULES:
- Positional arguments: input file(s), plus an optional output in single mode
- Derived names: spaces → "_", first 24 characters, ".iff"
- Batch collisions get _2, _3, ... suffixes; missing inputs are skipped
- Rates outside 2000-28867 Hz are allowed but warned about
- Errors print "Error: ..." to stderr and exit 1; batch keeps going and
  exits 1 if any file failed
- --self-test exits with the number of failed checks (capped at 255)
"""

from __future__ import annotations

import argparse
import json
import sys
import tempfile
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional

from svx_converter.config import (
    AMIGA_RATES,
    DEFAULT_DITHER,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_SAMPLE_RATE,
    check_rate_range,
    configure_logging,
)
from svx_converter.container.models import MalformedContainer
from svx_converter.core.converter import (
    ConversionOptions,
    ConversionResult,
    convert_file,
    plan_for,
    preview_lines,
)
from svx_converter.core.naming import OutputPathAllocator, default_output_path
from svx_converter.core.plan import InvalidConfig, plan_to_dict
from svx_converter.engine.base import AudioEngine, EngineFailure
from svx_converter.engine.sox import SoxEngine
from svx_converter.selftest import CheckResult, SelfTestOracle

_CONVERSION_ERRORS = (InvalidConfig, EngineFailure, MalformedContainer, OSError)


def _status(msg: str) -> None:
    """Print a status message to stderr.

    WHY: Status output must not pollute stdout so --preview --json can
    be piped.
    """
    print(msg, file=sys.stderr, flush=True)


def _warn(msg: str) -> None:
    _status("Warning: {}".format(msg))


def make_engine() -> AudioEngine:
    """Engine used by the CLI. Tests replace this with a fake."""
    return SoxEngine()


def _options_from_args(args: argparse.Namespace) -> ConversionOptions:
    return ConversionOptions(
        target_rate=args.rate,
        normalize=args.normalize,
        gain_db=args.gain,
        lowpass_hz=args.lowpass,
        amiga_lowpass=args.amiga_lowpass,
        trim_silence=args.trim_silence,
        dither=args.dither,
    )


def _report_result(result: ConversionResult) -> None:
    _status("  → {} ({:.1f} KB, {:.2f}s, {} samples)".format(
        result.output_path, result.file_size / 1024, result.duration_s, result.sample_count,
    ))
    _status("  ✓ Done")


def _convert_one(
    engine: AudioEngine,
    input_path: Path,
    output_path: Path,
    options: ConversionOptions,
) -> ConversionResult:
    _status("→ Converting: {}".format(input_path.name))
    _status("→   → {} Hz, 8-bit signed mono".format(options.target_rate))
    result = convert_file(engine, input_path, output_path, options)
    _report_result(result)
    return result


def _preview(
    engine: AudioEngine,
    input_path: Path,
    options: ConversionOptions,
    as_json: bool,
) -> None:
    """Print file info and the conversion plan without converting."""
    source, config, stages, estimate = plan_for(engine, input_path, options)
    if as_json:
        document = plan_to_dict(config, stages)
        document["source"] = str(source.path)
        document["estimated_samples"] = estimate.sample_count
        document["estimated_bytes"] = estimate.byte_count
        print(json.dumps(document, indent=2))
    else:
        for line in preview_lines(source, config, stages, estimate):
            print(line)


def _run_single(engine: AudioEngine, args: argparse.Namespace, options: ConversionOptions) -> int:
    input_path = Path(args.inputs[0])
    if args.preview:
        _preview(engine, input_path, options, args.json)
        return 0

    if not input_path.is_file():
        raise FileNotFoundError("Input file not found: {}".format(input_path))

    if len(args.inputs) == 2:
        output_path = Path(args.inputs[1])
    else:
        output_path = default_output_path(input_path)

    _convert_one(engine, input_path, output_path, options)
    return 0


def _run_batch(engine: AudioEngine, args: argparse.Namespace, options: ConversionOptions) -> int:
    """Convert every input into the output directory.

    RULES:
    - Missing inputs are skipped with a warning, not treated as failures
    - One failing file does not stop the rest
    - Returns 1 if any conversion failed, else 0
    """
    output_dir = Path(args.output_dir)
    inputs = []
    for raw in args.inputs:
        path = Path(raw)
        if not path.is_file():
            _warn("Skipping (not found): {}".format(raw))
            continue
        inputs.append(path)

    if args.preview:
        for path in inputs:
            _preview(engine, path, options, args.json)
            print("")
        return 0

    output_dir.mkdir(parents=True, exist_ok=True)
    allocator = OutputPathAllocator(output_dir)
    _status("→ Batch converting {} files → {}/".format(len(inputs), output_dir))
    _status("")

    def _job(path: Path) -> bool:
        try:
            _convert_one(engine, path, allocator.allocate(path), options)
        except _CONVERSION_ERRORS as e:
            _status("Error: {}: {}".format(path.name, e))
            return False
        return True

    if args.jobs > 1:
        with ThreadPoolExecutor(max_workers=args.jobs) as pool:
            outcomes = list(pool.map(_job, inputs))
    else:
        outcomes = [_job(path) for path in inputs]

    converted = sum(outcomes)
    _status("")
    _status("Converted {} file(s) to {}/".format(converted, output_dir))
    return 0 if converted == len(outcomes) else 1


def _print_check(result: CheckResult) -> None:
    mark = "✓" if result.passed else "✗"
    _status("  {} {}".format(mark, result.name))


def run_self_test(engine: AudioEngine) -> int:
    """Run the self-test oracle in a throwaway directory.

    Returns:
        Number of failed checks.
    """
    _status("Running self-tests...")
    _status("")
    with tempfile.TemporaryDirectory(prefix="svx-selftest-") as tmpdir:
        oracle = SelfTestOracle(engine, Path(tmpdir), reporter=_print_check)
        failures = oracle.run()
        total = len(oracle.results)

    _status("────────────────────────────")
    if failures == 0:
        _status("All {} tests passed ✓".format(total))
    else:
        _status("{}/{} tests failed".format(failures, total))
    return failures


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    WHY: Separating parser construction from main() makes the CLI
    testable; tests can inspect the parser without running anything.
    """
    rate_help = "; ".join("{} = {}".format(rate, desc) for rate, desc in sorted(AMIGA_RATES.items()))
    parser = argparse.ArgumentParser(
        prog="svx-convert",
        description="Convert WAV/AIFF/etc. to IFF 8SVX (8-bit signed mono PCM) "
                    "for OctaMED and other Amiga trackers.",
    )

    parser.add_argument(
        "inputs",
        nargs="*",
        metavar="input",
        help="Input audio file(s). In single-file mode an optional second "
             "argument names the output file.",
    )
    parser.add_argument(
        "-r", "--rate",
        type=int,
        default=DEFAULT_SAMPLE_RATE,
        help="Target sample rate in Hz (default: %(default)s). Common rates: " + rate_help,
    )
    parser.add_argument(
        "-n", "--normalize",
        action="store_true",
        help="Normalize audio to 0 dBFS before conversion.",
    )
    parser.add_argument(
        "-g", "--gain",
        type=float,
        default=None,
        help="Apply gain in dB before conversion (e.g. -3, +6). Ignored with -n.",
    )
    parser.add_argument(
        "-f", "--lowpass",
        type=float,
        default=None,
        metavar="FREQ",
        help="Manual low-pass cutoff in Hz (applied after resampling).",
    )
    parser.add_argument(
        "-l", "--amiga-lowpass",
        action="store_true",
        help="Apply light Amiga-style low-pass at 3.3 kHz (emulates A500 output).",
    )
    parser.add_argument(
        "-t", "--trim-silence",
        action="store_true",
        help="Trim silence from start and end (threshold: -48 dB).",
    )
    parser.add_argument(
        "-d", "--dither",
        dest="dither",
        action="store_true",
        default=DEFAULT_DITHER,
        help="Use TPDF dither when reducing to 8-bit (default: on).",
    )
    parser.add_argument(
        "-D", "--no-dither",
        dest="dither",
        action="store_false",
        help="Disable dither (truncate to 8-bit).",
    )
    parser.add_argument(
        "-p", "--preview",
        action="store_true",
        help="Print file info and conversion plan, don't convert.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="With --preview, print the plan as JSON on stdout.",
    )
    parser.add_argument(
        "-b", "--batch",
        action="store_true",
        help="Batch mode: treat all positional arguments as input files.",
    )
    parser.add_argument(
        "-o", "--output-dir",
        default=DEFAULT_OUTPUT_DIR,
        help="Output directory for batch mode (default: %(default)s).",
    )
    parser.add_argument(
        "-j", "--jobs",
        type=int,
        default=1,
        help="Parallel conversions in batch mode (default: %(default)s).",
    )
    parser.add_argument(
        "--self-test",
        action="store_true",
        help="Run smoke tests to verify the conversion pipeline.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    - Always exits via sys.exit with the run's status code
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    engine = make_engine()

    if args.self_test:
        sys.exit(min(run_self_test(engine), 255))

    if not args.inputs:
        parser.error("No input file(s) specified. Use -h for help.")
    if args.jobs < 1:
        parser.error("--jobs must be at least 1")

    rate_advisory = check_rate_range(args.rate)
    if rate_advisory:
        _warn(rate_advisory)

    options = _options_from_args(args)
    batch = args.batch or len(args.inputs) > 2

    try:
        if batch:
            code = _run_batch(engine, args, options)
        else:
            code = _run_single(engine, args, options)
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)
    except _CONVERSION_ERRORS as e:
        print("Error: {}".format(e), file=sys.stderr)
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
