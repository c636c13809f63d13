#!/usr/bin/env python3
"""
Workloads the worker JVM runs

Each Benchmark value maps to a factory in WORKLOAD_FACTORIES. A workload
appends its own JVM arguments (jar, benchmark selection, scratch directory)
and fetches whatever it needs on first use.
"""

import random
import re
import subprocess
from pathlib import Path
from typing import Callable, Dict, List, Optional

from jfr_options import Benchmark, JavaOptions, OptionSet

try:
    from ctest_config import *
except ImportError:
    from config_default import *


class WorkloadSetupError(RuntimeError):
    """The workload could not be downloaded or inspected"""


def download_if_needed(jar_path: Path, url: str) -> Path:
    jar_path = Path(jar_path)
    if jar_path.exists() and jar_path.stat().st_size > 0:
        return jar_path
    print(f"⬇️ Downloading {url} -> {jar_path}")
    try:
        result = subprocess.run(["curl", "-L", "--fail", "-o", str(jar_path), url])
    except OSError as e:
        raise WorkloadSetupError(f"Could not run curl: {e}") from e
    if result.returncode != 0 or not jar_path.exists():
        jar_path.unlink(missing_ok=True)
        raise WorkloadSetupError(f"Download of {url} failed with exit code {result.returncode}")
    return jar_path


class RenaissanceWorkload:
    BENCHMARK_NAME = re.compile(r"[a-zA-Z0-9-]+")

    def __init__(self, option_set: OptionSet, iterations: int = RENAISSANCE_ITERATIONS,
                 java_binary: str = "java", jar_path: Path = Path(RENAISSANCE_JAR),
                 url: str = RENAISSANCE_URL, rng: Optional[random.Random] = None):
        self.option_set = option_set
        self.iterations = iterations
        self.java_binary = java_binary
        self.jar_path = Path(jar_path)
        self.url = url
        self.rng = rng or random.Random()

    def add_options(self, java_options: JavaOptions, scratch_dir: Path):
        jar = download_if_needed(self.jar_path, self.url)
        java_options.add_option("-jar")
        java_options.add_option(str(jar))
        if self.option_set.randomize_order:
            benchmarks = self.list_sub_benchmarks()
            self.rng.shuffle(benchmarks)
            for benchmark in benchmarks:
                java_options.add_option(benchmark)
        else:
            java_options.add_option("all")
        if self.iterations != -1:
            java_options.add_option("-r")
            java_options.add_option(str(self.iterations))
        java_options.add_option("--scratch-base")
        java_options.add_option(str(scratch_dir))

    def list_sub_benchmarks(self) -> List[str]:
        """Names reported by `renaissance.jar --raw-list`"""
        jar = download_if_needed(self.jar_path, self.url)
        try:
            result = subprocess.run([self.java_binary, "-jar", str(jar), "--raw-list"],
                                    stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)
        except OSError as e:
            raise WorkloadSetupError(f"Could not list Renaissance benchmarks: {e}") from e
        if result.returncode != 0:
            raise WorkloadSetupError(f"Renaissance --raw-list failed with exit code {result.returncode}")
        return [line.strip() for line in result.stdout.splitlines()
                if self.BENCHMARK_NAME.fullmatch(line.strip())]


WORKLOAD_FACTORIES: Dict[Benchmark, Callable[..., object]] = {
    Benchmark.RENAISSANCE: RenaissanceWorkload,
}


def create_workload(option_set: OptionSet, iterations: int = RENAISSANCE_ITERATIONS,
                    java_binary: str = "java", rng: Optional[random.Random] = None):
    factory = WORKLOAD_FACTORIES[option_set.benchmark]
    return factory(option_set, iterations=iterations, java_binary=java_binary, rng=rng)
