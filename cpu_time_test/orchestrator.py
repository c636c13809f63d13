#!/usr/bin/env python3
"""
Running one worker JVM per configuration

WorkerOrchestrator.execute launches the workload with JFR enabled, rotates
the recording while the worker runs (for every duration except FULL),
waits for the worker to exit and classifies the produced recordings.
Failures end up in the returned Result, they never abort the caller.
"""

import random
import shutil
import subprocess
import sys
import tempfile
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import psutil

from jdk_tools import JcmdChannel, resolve_java_binary, resolve_jdk_tool
from jfr_events import (DEFAULT_THRESHOLDS, EventCounts, JFRParseError, QualityThresholds,
                        aggregate_jfr_files, is_reasonable)
from jfr_options import JavaOptions, OptionSet
from rotation import JFRRotationController, recording_name
from workloads import WorkloadSetupError, create_workload

try:
    from ctest_config import *
except ImportError:
    from config_default import *


class Verbosity(Enum):
    SILENT = "silent"
    ALL = "all"
    ALL_WITH_TIMESTAMPS = "all_with_timestamps"


@dataclass(frozen=True)
class Result:
    options: OptionSet
    duration: float
    counts: EventCounts = EventCounts()
    error: bool = False
    error_message: str = ""
    exit_code: Optional[int] = None
    artifacts: Tuple[Path, ...] = field(default=(), compare=False)

    def is_reasonable(self, thresholds: Optional[QualityThresholds] = None) -> bool:
        return is_reasonable(self.duration, self.counts, thresholds)

    def to_csv(self, thresholds: Optional[QualityThresholds] = None) -> List[str]:
        return self.options.to_csv() + [
            f"{self.duration:.3f}",
            str(self.counts.other_sampler_samples),
            str(self.counts.valid_samples),
            str(self.counts.overflow_samples),
            str(self.counts.empty_samples),
            str(self.is_reasonable(thresholds)).lower(),
            str(self.error).lower(),
        ]

    @staticmethod
    def csv_header() -> List[str]:
        return OptionSet.csv_header() + [
            "elapsed seconds", "other sampler events", "valid cpu time events",
            "overflowed cpu time events", "empty cpu time events", "reasonable", "error"]


def terminate_process_tree(pid: int, timeout: float = TERMINATE_TIMEOUT):
    """Terminate a process and its children, kill whatever survives the timeout"""
    try:
        parent = psutil.Process(pid)
        procs = parent.children(recursive=True) + [parent]
    except psutil.NoSuchProcess:
        return
    for proc in procs:
        try:
            proc.terminate()  # SIGTERM
        except psutil.NoSuchProcess:
            continue
    _, alive = psutil.wait_procs(procs, timeout=timeout)
    for proc in alive:
        try:
            proc.kill()  # SIGKILL
        except psutil.NoSuchProcess:
            continue


def _echo_with_timestamps(stream, start: float):
    try:
        for line in stream:
            print(f"[{time.monotonic() - start:9.3f}s] {line}", end="" if line.endswith("\n") else "\n")
    finally:
        # the worker blocks on a full pipe if nobody reads it
        while stream.buffer.read(65536):
            pass
        stream.close()


class WorkerOrchestrator:
    def __init__(self, java_binary: str = "java", verbosity: Verbosity = Verbosity.SILENT,
                 iterations: int = RENAISSANCE_ITERATIONS,
                 thresholds: QualityThresholds = DEFAULT_THRESHOLDS,
                 control_channel: Optional[Callable[..., str]] = None,
                 jfr_binary: Optional[str] = None,
                 rng: Optional[random.Random] = None):
        self.java_binary = resolve_java_binary(java_binary)
        self.verbosity = verbosity
        self.iterations = iterations
        self.thresholds = thresholds
        self.control_channel = control_channel or JcmdChannel(resolve_jdk_tool(self.java_binary, "jcmd"))
        self.jfr_binary = jfr_binary or resolve_jdk_tool(self.java_binary, "jfr")
        self.rng = rng or random.Random()

    @property
    def verbose(self) -> bool:
        return self.verbosity is not Verbosity.SILENT

    def vprint(self, *args, **kwargs):
        """Print only if verbose mode is enabled"""
        if self.verbose:
            print(*args, **kwargs)

    def execute(self, option_set: OptionSet, artifact_namer: Callable[[int], Path], workload=None) -> Result:
        """Run the worker for one option set and classify its recordings"""
        print(f"🧪 Running {option_set}")
        scratch_dir = Path(tempfile.mkdtemp(prefix="jfr"))
        try:
            return self._execute(option_set, artifact_namer, workload, scratch_dir)
        finally:
            self._remove_scratch_dir(scratch_dir)

    def _remove_scratch_dir(self, scratch_dir: Path):
        try:
            shutil.rmtree(scratch_dir)
        except OSError as e:
            print(f"    ⚠️ Could not remove scratch directory {scratch_dir}: {e}", file=sys.stderr)

    def _output_redirection(self) -> dict:
        if self.verbosity is Verbosity.ALL:
            return {}
        if self.verbosity is Verbosity.ALL_WITH_TIMESTAMPS:
            return {"stdout": subprocess.PIPE, "stderr": subprocess.STDOUT, "text": True, "errors": "replace",
                    "bufsize": 1}
        return {"stdout": subprocess.DEVNULL, "stderr": subprocess.DEVNULL}

    def build_command(self, option_set: OptionSet, artifact_namer: Callable[[int], Path],
                      workload, scratch_dir: Path) -> Tuple[List[str], JavaOptions]:
        java_options = JavaOptions()
        option_set.add_option(java_options)
        workload.add_options(java_options, scratch_dir)
        first_file = Path(artifact_namer(0)).absolute()
        command = [self.java_binary] + java_options.to_options(first_file, recording_name(0))
        return command, java_options

    def _execute(self, option_set: OptionSet, artifact_namer: Callable[[int], Path],
                 workload, scratch_dir: Path) -> Result:
        if workload is None:
            workload = create_workload(option_set, iterations=self.iterations,
                                       java_binary=self.java_binary, rng=self.rng)
        try:
            command, java_options = self.build_command(option_set, artifact_namer, workload, scratch_dir)
        except WorkloadSetupError as e:
            print(f"    ❌ Workload setup failed: {e}", file=sys.stderr)
            return Result(option_set, 0.0, error=True, error_message=str(e))

        self.vprint(f"    Command: {' '.join(command)}")

        start = time.monotonic()
        try:
            process = psutil.Popen(command, **self._output_redirection())
        except OSError as e:
            print(f"    ❌ Could not launch worker: {e}", file=sys.stderr)
            return Result(option_set, time.monotonic() - start, error=True,
                          error_message=f"launch failed: {e}")

        echo_thread = None
        if self.verbosity is Verbosity.ALL_WITH_TIMESTAMPS:
            echo_thread = threading.Thread(target=_echo_with_timestamps, args=(process.stdout, start),
                                           name=f"worker-output-{process.pid}", daemon=True)
            echo_thread.start()

        controller = None
        try:
            if option_set.duration.produces_multiple_files:
                controller = JFRRotationController(process.pid, java_options, artifact_namer,
                                                   duration=option_set.duration,
                                                   control_channel=self.control_channel,
                                                   rng=self.rng, verbose=self.verbose)
                controller.start()
            exit_code = process.wait()
            duration = time.monotonic() - start
        except BaseException:
            print(f"    ⚠️ Interrupted, terminating worker {process.pid}", file=sys.stderr)
            terminate_process_tree(process.pid)
            raise
        finally:
            if controller is not None:
                controller.stop()
                controller.join()
            if echo_thread is not None:
                echo_thread.join()

        self.vprint(f"    Return code: {exit_code}")
        artifacts = controller.artifacts if controller is not None else (Path(artifact_namer(0)).absolute(),)
        errors = []
        if exit_code != 0:
            # the recordings may still be complete, classify them anyway
            errors.append(f"worker exited with code {exit_code}")
        if controller is not None and controller.error is not None:
            errors.append(str(controller.error))
        try:
            counts = aggregate_jfr_files(artifacts, self.jfr_binary)
        except JFRParseError as e:
            print(f"    ❌ {e}", file=sys.stderr)
            errors.append(str(e))
            counts = EventCounts()

        result = Result(option_set, duration, counts, error=bool(errors), error_message="; ".join(errors),
                        exit_code=exit_code, artifacts=tuple(artifacts))
        self.vprint(f"    📊 {len(artifacts)} recording(s), valid={counts.valid_samples:,} "
                    f"empty={counts.empty_samples:,} lost={counts.overflow_samples:,} "
                    f"other={counts.other_sampler_samples:,} ({duration:.1f}s), "
                    f"reasonable={result.is_reasonable(self.thresholds)}")
        return result
