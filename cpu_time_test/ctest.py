#!/usr/bin/env python3
"""
JFR CPU-Time Sampler Test Harness

Starts JFR recordings in Renaissance runs for every combination of sampler
configuration, GC, max chunk size, heap size and recording duration, and
checks whether the jdk.CPUTimeSample events of each run look reasonable.

Usage:
    python3 ctest.py                                  # every combination once
    python3 ctest.py -g g1,zgc -s cpu_only -d tiny    # a subset
    python3 ctest.py --runs -1 --random-config-order  # soak test until stopped
    python3 ctest.py -v all_with_timestamps --keep-jfr
"""

import argparse
import random
import sys
import time
import traceback
from datetime import datetime
from pathlib import Path
from typing import Optional

from artifacts import recording_artifacts
from jfr_events import QualityThresholds
from jfr_options import GC, Benchmark, HeapSize, JFRDuration, MaxChunkSize, OptionSet, Sampler, axis_parser
from option_matrix import UNBOUNDED_RUNS, OptionAxes, expand_option_sets, total_option_sets
from orchestrator import Result, Verbosity, WorkerOrchestrator
from result_sink import CSVResultSink

try:
    from ctest_config import *
except ImportError:
    from config_default import *


class SuiteDriver:
    """Runs the option sets one after another and records every result"""

    def __init__(self, orchestrator: WorkerOrchestrator, sink: CSVResultSink, jfr_folder: Path,
                 keep_jfr: bool = False):
        self.orchestrator = orchestrator
        self.sink = sink
        self.jfr_folder = Path(jfr_folder)
        self.keep_jfr = keep_jfr
        self.completed = 0
        self.failed = 0
        self.unreasonable = 0

    def setup(self):
        self.jfr_folder.mkdir(parents=True, exist_ok=True)
        self.sink.setup()

    def run_one(self, option_set: OptionSet) -> Optional[Result]:
        with recording_artifacts(self.jfr_folder, option_set, keep=self.keep_jfr) as namer:
            result = self.orchestrator.execute(option_set, namer)
        self.orchestrator.vprint(f"    Finished: {option_set}")
        if not result.is_reasonable(self.sink.thresholds):
            self.unreasonable += 1
            print(f"    ⚠️ Result not reasonable: {','.join(result.to_csv(self.sink.thresholds))} "
                  f"for {option_set}", file=sys.stderr)
        if result.error:
            self.failed += 1
            print(f"    ❌ Error during execution: {result.error_message} for {option_set}", file=sys.stderr)
        print(",".join(result.to_csv(self.sink.thresholds)))
        self.sink.write(result)
        return result

    def run(self, option_sets, total: Optional[int] = None):
        self.setup()
        start_time = time.time()
        for current, option_set in enumerate(option_sets, start=1):
            progress = f"[{current}/{total}]" if total is not None else f"[{current}]"
            print(f"\n{progress} {datetime.now().strftime('%H:%M:%S')}")
            try:
                self.run_one(option_set)
            except Exception:
                # one broken run must not stop the matrix
                self.failed += 1
                traceback.print_exc()
            self.completed += 1
        total_time = time.time() - start_time
        print(f"\n✅ Finished {self.completed} runs in {total_time / 60:.1f} minutes "
              f"({self.failed} with errors, {self.unreasonable} not reasonable)")
        print(f"   Results saved to {self.sink.csv_file.absolute()}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ctest",
                                     description="Starts a JFR recording and tests it with different scenarios.")
    parser.add_argument("-b", "--benchmark", type=axis_parser(Benchmark), default=list(Benchmark),
                        help=f"Benchmarks to run ({', '.join(m.name.lower() for m in Benchmark)})")
    parser.add_argument("-s", "--samplers", type=axis_parser(Sampler), default=list(Sampler),
                        help=f"Sampler configs to use ({', '.join(m.name.lower() for m in Sampler)})")
    parser.add_argument("-g", "--gcs", type=axis_parser(GC), default=list(GC),
                        help=f"Garbage collectors to use ({', '.join(m.name.lower() for m in GC)})")
    parser.add_argument("-m", "--max-chunk-sizes", type=axis_parser(MaxChunkSize), default=list(MaxChunkSize),
                        help=f"Max chunk sizes to use ({', '.join(m.name.lower() for m in MaxChunkSize)})")
    parser.add_argument("-H", "--heap-sizes", type=axis_parser(HeapSize), default=[HeapSize.DEFAULT],
                        help=f"Heap sizes to use ({', '.join(m.name.lower() for m in HeapSize)})")
    parser.add_argument("-d", "--durations", type=axis_parser(JFRDuration), default=list(JFRDuration),
                        help="Duration of the recordings, recordings are repeated till the benchmark ends "
                             f"({', '.join(m.name.lower() for m in JFRDuration)})")
    parser.add_argument("-i", "--iterations", type=int, default=RENAISSANCE_ITERATIONS,
                        help="Number of benchmark iterations (-1 for the benchmark default)")
    parser.add_argument("--runs", type=int, default=1,
                        help="Number of runs of the whole suite, -1 for infinite runs")
    parser.add_argument("--csv-file", type=Path, default=Path(CSV_FILE),
                        help=f"The output file to write the results to (default: {CSV_FILE})")
    parser.add_argument("--keep-jfr", action="store_true",
                        help="Keep the JFR files instead of deleting them after each run")
    parser.add_argument("--jfr-folder", type=Path, default=Path(JFR_FOLDER),
                        help=f"The folder to write the JFR files to (default: {JFR_FOLDER})")
    parser.add_argument("-a", "--append-csv", action="store_true",
                        help="Append to the CSV file instead of overwriting it")
    parser.add_argument("-v", "--verbose", type=Verbosity, default=Verbosity.SILENT,
                        choices=list(Verbosity), metavar="{" + ",".join(v.value for v in Verbosity) + "}",
                        help="Print all program outputs")
    parser.add_argument("--java", default="java", help="The java executable to use")
    parser.add_argument("--random-benchmark-order", action="store_true",
                        help="Randomize the order of the renaissance benchmarks")
    parser.add_argument("--random-config-order", action="store_true",
                        help="Randomize the order of the configs")
    parser.add_argument("--seed", type=int, default=None, help="Seed for all random choices")
    parser.add_argument("--max-overflow-rate", type=float, default=MAX_OVERFLOW_RATE,
                        help=f"Maximum lost/valid sample ratio of a reasonable run (default: {MAX_OVERFLOW_RATE})")
    parser.add_argument("--max-empty-rate", type=float, default=MAX_EMPTY_RATE,
                        help=f"Maximum empty/valid sample ratio of a reasonable run (default: {MAX_EMPTY_RATE})")
    parser.add_argument("--min-valid-rate", type=float, default=MIN_VALID_RATE,
                        help=f"Minimum valid/all sample ratio of a reasonable run (default: {MIN_VALID_RATE})")
    parser.add_argument("--min-valid-samples", type=int, default=MIN_VALID_SAMPLES,
                        help=f"Minimum number of valid samples of a reasonable run (default: {MIN_VALID_SAMPLES})")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.runs < 0 and args.runs != UNBOUNDED_RUNS:
        print(f"❌ --runs must be >= 0 or {UNBOUNDED_RUNS}", file=sys.stderr)
        return 2

    rng = random.Random(args.seed)
    thresholds = QualityThresholds(args.max_overflow_rate, args.max_empty_rate,
                                   args.min_valid_rate, args.min_valid_samples)
    axes = OptionAxes(durations=tuple(args.durations), benchmarks=tuple(args.benchmark),
                      samplers=tuple(args.samplers), gcs=tuple(args.gcs),
                      max_chunk_sizes=tuple(args.max_chunk_sizes), heap_sizes=tuple(args.heap_sizes))
    total = total_option_sets(axes, args.runs)

    print("JFR CPU-Time Sampler Test")
    print(f"{'=' * 50}")
    print(f"Configurations per run: {axes.pass_size}")
    print(f"Runs: {'infinite' if total is None else args.runs}")
    print(f"Thresholds: overflow < {thresholds.max_overflow_rate}, empty < {thresholds.max_empty_rate}, "
          f"valid > {thresholds.min_valid_rate}, at least {thresholds.min_valid_samples} valid samples")
    print(f"{'=' * 50}")

    orchestrator = WorkerOrchestrator(args.java, args.verbose, iterations=args.iterations,
                                      thresholds=thresholds, rng=rng)
    sink = CSVResultSink(args.csv_file, append=args.append_csv, thresholds=thresholds)
    driver = SuiteDriver(orchestrator, sink, args.jfr_folder, keep_jfr=args.keep_jfr)
    option_sets = expand_option_sets(axes, runs=args.runs, shuffle_configs=args.random_config_order,
                                     randomize_benchmark_order=args.random_benchmark_order, rng=rng)
    try:
        driver.run(option_sets, total)
    except KeyboardInterrupt:
        print("\n⏹️ Interrupted", file=sys.stderr)
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
