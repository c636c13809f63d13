#!/usr/bin/env python3
"""
Test the command line and the sequential driver loop
"""

from pathlib import Path

import pandas as pd

from ctest import SuiteDriver, build_parser
from jfr_events import EventCounts
from jfr_options import GC, Benchmark, HeapSize, JFRDuration, MaxChunkSize, OptionSet, Sampler
from option_matrix import OptionAxes, expand_option_sets
from orchestrator import Result, Verbosity
from result_sink import CSVResultSink


def test_parser_defaults():
    args = build_parser().parse_args([])
    assert args.gcs == list(GC)
    assert args.samplers == list(Sampler)
    assert args.heap_sizes == [HeapSize.DEFAULT]
    assert args.verbose is Verbosity.SILENT
    assert args.runs == 1
    assert not args.keep_jfr


def test_parser_axes_and_flags():
    args = build_parser().parse_args(["-g", "g1,zgc", "-s", "cpu-only", "-d", "tiny,random_short",
                                      "--runs", "-1", "-v", "all_with_timestamps", "--keep-jfr",
                                      "--max-overflow-rate", "0.1", "--csv-file", "out.csv"])
    assert args.gcs == [GC.G1, GC.ZGC]
    assert args.samplers == [Sampler.CPU_ONLY]
    assert args.durations == [JFRDuration.TINY, JFRDuration.RANDOM_SHORT]
    assert args.runs == -1
    assert args.verbose is Verbosity.ALL_WITH_TIMESTAMPS
    assert args.keep_jfr
    assert args.max_overflow_rate == 0.1
    assert args.csv_file == Path("out.csv")


class FlakyOrchestrator:
    """Raises on the first run, succeeds afterwards"""

    def __init__(self):
        self.executed = []

    def vprint(self, *args, **kwargs):
        pass

    def execute(self, option_set, artifact_namer):
        self.executed.append(option_set)
        artifact_namer(0).write_bytes(b"recording")
        if len(self.executed) == 1:
            raise RuntimeError("unexpected failure")
        return Result(option_set, 20.0, EventCounts(valid_samples=500))


def test_driver_continues_after_a_failing_run(tmp_path):
    axes = OptionAxes(durations=(JFRDuration.FULL, JFRDuration.TINY), benchmarks=(Benchmark.RENAISSANCE,),
                      samplers=(Sampler.CPU_ONLY,), gcs=(GC.G1, GC.ZGC), max_chunk_sizes=(MaxChunkSize.DEFAULT,),
                      heap_sizes=(HeapSize.DEFAULT,))
    orchestrator = FlakyOrchestrator()
    csv_file = tmp_path / "results.csv"
    driver = SuiteDriver(orchestrator, CSVResultSink(csv_file), tmp_path / "jfr")
    driver.run(expand_option_sets(axes), axes.pass_size)

    assert len(orchestrator.executed) == 4
    assert driver.completed == 4
    assert driver.failed == 1
    df = pd.read_csv(csv_file)
    assert len(df) == 3
    assert list(df["reasonable"]) == [True, True, True]
    # recordings of every run were removed, including the failed one
    assert list((tmp_path / "jfr").iterdir()) == []


def test_driver_keeps_recordings(tmp_path):
    axes = OptionAxes(durations=(JFRDuration.FULL,), samplers=(Sampler.CPU_ONLY,), gcs=(GC.G1,),
                      max_chunk_sizes=(MaxChunkSize.DEFAULT,), heap_sizes=(HeapSize.DEFAULT,))
    orchestrator = FlakyOrchestrator()
    orchestrator.executed.append(None)  # skip the failing first run
    driver = SuiteDriver(orchestrator, CSVResultSink(tmp_path / "results.csv"), tmp_path / "jfr", keep_jfr=True)
    driver.run(expand_option_sets(axes))
    assert len(list((tmp_path / "jfr").glob("*.jfr"))) == 1
