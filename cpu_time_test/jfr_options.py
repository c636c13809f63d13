#!/usr/bin/env python3
"""
JVM and JFR option building for the CPU-time sampler tests

Every configuration axis is an Enum whose members know which JVM flags they
contribute and how they are labelled in the results CSV. An OptionSet is one
point of the configuration matrix.
"""

import random
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Type, TypeVar

CPU_TIME_SAMPLE_CONFIG = "jdk.CPUTimeSample#enabled=true,jdk.CPUTimeSample#throttle=1ms"
STANDARD_JFR_SAMPLE_CONFIG = ("jdk.ExecutionSample#enabled=true,jdk.ExecutionSample#period=1ms,"
                              "jdk.NativeMethodSample#enabled=true,jdk.NativeMethodSample#period=1ms")


class JavaOptions:
    """Mutable builder for the worker command line.

    Keeps generic JVM flags, JFR session settings and FlightRecorderOptions
    apart, because the session settings are reused for every JFR.start issued
    during recording rotation.
    """

    def __init__(self):
        self.options: List[str] = []
        self.jfr_options: List[str] = []
        self.jfr_recorder_options: List[str] = []

    def add_option(self, option: str):
        self.options.append(option)

    def add_jfr_option(self, option: str):
        self.jfr_options.append(option)

    def add_jfr_recorder_option(self, option: str):
        self.jfr_recorder_options.append(option)

    def to_options(self, jfr_file: Path, name: Optional[str] = None) -> List[str]:
        all_options = []
        if self.jfr_recorder_options:
            all_options.append("-XX:FlightRecorderOptions=" + ",".join(self.jfr_recorder_options))
        all_options.append("-XX:+UnlockDiagnosticVMOptions")
        all_options.append("-XX:+DebugNonSafepoints")
        all_options.append("-XX:StartFlightRecording=" + self.to_jfr_options(jfr_file, name))
        all_options.extend(self.options)
        return all_options

    def to_jfr_options(self, jfr_file: Path, name: Optional[str] = None) -> str:
        """Session settings for -XX:StartFlightRecording and jcmd JFR.start"""
        parts = []
        if name:
            parts.append(f"name={name}")
        parts.append(f"filename={jfr_file}")
        # the last session of a rotated run is only written when the JVM exits
        parts.append("dumponexit=true")
        parts.extend(self.jfr_options)
        return ",".join(parts)


class Sampler(Enum):
    CPU_ONLY = (CPU_TIME_SAMPLE_CONFIG,)
    OTHER_SAMPLER = (STANDARD_JFR_SAMPLE_CONFIG,)
    WITH_OTHER_SAMPLER = (CPU_TIME_SAMPLE_CONFIG, STANDARD_JFR_SAMPLE_CONFIG)
    FULL_PROFILE = ("settings=profile.jfc", CPU_TIME_SAMPLE_CONFIG, STANDARD_JFR_SAMPLE_CONFIG)

    @property
    def config(self) -> str:
        return ",".join(self.value)

    def add_option(self, options: JavaOptions):
        options.add_jfr_option(self.config)

    @property
    def csv_value(self) -> str:
        return self.name.lower().replace("_", " ")


class GC(Enum):
    G1 = "G1GC"
    ZGC = "ZGC"
    SERIAL = "SerialGC"
    PARALLEL = "ParallelGC"

    def to_option(self) -> str:
        return "-XX:+Use" + self.value

    def add_option(self, options: JavaOptions):
        options.add_option(self.to_option())

    @property
    def csv_value(self) -> str:
        return self.value


class MaxChunkSize(Enum):
    ONE_MB = "1MB"
    DEFAULT = "12MB"

    def add_option(self, options: JavaOptions):
        options.add_jfr_recorder_option("maxchunksize=" + self.value)

    @property
    def csv_value(self) -> str:
        return self.value


class HeapSize(Enum):
    DEFAULT = ""
    ONE_GB = "1g"

    def add_option(self, options: JavaOptions):
        if self.value:
            options.add_option("-Xmx" + self.value)

    @property
    def csv_value(self) -> str:
        return self.value


class JFRDuration(Enum):
    """How long each recording lasts before it is rotated.

    FULL records the whole run into a single file, every other policy stops
    and restarts the recording until the workload ends.
    """

    FULL = "full"
    SHORT = "short"
    MEDIUM = "medium"
    TINY = "tiny"
    RANDOM = "random"
    RANDOM_SHORT = "random_short"

    def next_interval_seconds(self, rng: Optional[random.Random] = None) -> float:
        rng = rng or random
        return _DURATION_SUPPLIERS[self](rng)

    @property
    def produces_multiple_files(self) -> bool:
        return self is not JFRDuration.FULL

    @property
    def csv_value(self) -> str:
        return self.name.lower()


_DURATION_SUPPLIERS: dict = {
    JFRDuration.FULL: lambda rng: float("inf"),
    JFRDuration.SHORT: lambda rng: 10.0,
    JFRDuration.MEDIUM: lambda rng: 60.0,
    JFRDuration.TINY: lambda rng: 1.0,
    JFRDuration.RANDOM: lambda rng: rng.random() * 60.0,
    JFRDuration.RANDOM_SHORT: lambda rng: rng.random() * 10.0,
}


class Benchmark(Enum):
    RENAISSANCE = "renaissance"

    @property
    def csv_value(self) -> str:
        return self.value


@dataclass(frozen=True)
class OptionSet:
    benchmark: Benchmark
    sampler: Sampler
    gc: GC
    max_chunk_size: MaxChunkSize
    heap_size: HeapSize
    duration: JFRDuration
    randomize_order: bool = False

    def add_option(self, options: JavaOptions):
        self.sampler.add_option(options)
        self.gc.add_option(options)
        self.max_chunk_size.add_option(options)
        self.heap_size.add_option(options)

    def to_csv(self) -> List[str]:
        return [self.benchmark.csv_value, self.sampler.csv_value, self.gc.csv_value,
                self.max_chunk_size.csv_value, self.heap_size.csv_value, self.duration.csv_value]

    @staticmethod
    def csv_header() -> List[str]:
        return ["benchmark", "sampler", "gc", "max chunk size", "heap size", "duration"]

    def file_prefix(self) -> str:
        """Filesystem friendly label, e.g. renaissance_cpu-only_G1GC_1MB__tiny"""
        return "_".join(self.to_csv()).replace(" ", "-")

    def __str__(self):
        return ", ".join(f"{key}={value}" for key, value in zip(self.csv_header(), self.to_csv()))


E = TypeVar("E", bound=Enum)


def parse_axis(enum_cls: Type[E], text: str) -> List[E]:
    """Parse a comma separated list of member names like "g1,zgc" or "cpu-only"."""
    members = []
    for raw in text.split(","):
        key = re.sub(r"[\s-]+", "_", raw.strip()).upper()
        if not key:
            continue
        try:
            members.append(enum_cls[key])
        except KeyError:
            valid = ", ".join(m.name.lower() for m in enum_cls)
            raise ValueError(f"Unknown {enum_cls.__name__} '{raw.strip()}', valid values: {valid}") from None
    return members


def axis_parser(enum_cls: Type[E]) -> Callable[[str], List[E]]:
    """argparse type= helper for parse_axis"""
    def _parse(text: str) -> List[E]:
        return parse_axis(enum_cls, text)
    _parse.__name__ = enum_cls.__name__
    return _parse
