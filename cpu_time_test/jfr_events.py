#!/usr/bin/env python3
"""
JFR event classification and the run quality heuristic

Reads recordings through `jfr print --json` and buckets the sampler events:

    jdk.CPUTimeSample         -> valid (non-empty stack) or empty
    jdk.CPUTimeSampleLoss     -> overflow (adds the lostSamples field)
    jdk.ExecutionSample,
    jdk.NativeMethodSample    -> other sampler

A run is "reasonable" when enough valid samples exist and neither lost nor
stackless samples dominate. The thresholds live in config_default.py.
"""

import json
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

try:
    from ctest_config import *
except ImportError:
    from config_default import *

CPU_TIME_SAMPLE = "jdk.CPUTimeSample"
CPU_TIME_SAMPLE_LOSS = "jdk.CPUTimeSampleLoss"
EXECUTION_SAMPLE = "jdk.ExecutionSample"
NATIVE_METHOD_SAMPLE = "jdk.NativeMethodSample"
OTHER_SAMPLER_EVENTS = (EXECUTION_SAMPLE, NATIVE_METHOD_SAMPLE)
CLASSIFIED_EVENTS = (CPU_TIME_SAMPLE, CPU_TIME_SAMPLE_LOSS) + OTHER_SAMPLER_EVENTS


class JFRParseError(RuntimeError):
    """A recording could not be read"""


class ArtifactMissingError(JFRParseError):
    """A recording file does not exist or is empty"""


@dataclass(frozen=True)
class EventCounts:
    valid_samples: int = 0
    empty_samples: int = 0
    overflow_samples: int = 0
    other_sampler_samples: int = 0

    def __add__(self, other: "EventCounts") -> "EventCounts":
        return EventCounts(self.valid_samples + other.valid_samples,
                           self.empty_samples + other.empty_samples,
                           self.overflow_samples + other.overflow_samples,
                           self.other_sampler_samples + other.other_sampler_samples)

    @property
    def total_cpu_samples(self) -> int:
        return self.valid_samples + self.empty_samples + self.overflow_samples


@dataclass(frozen=True)
class QualityThresholds:
    max_overflow_rate: float = MAX_OVERFLOW_RATE
    max_empty_rate: float = MAX_EMPTY_RATE
    min_valid_rate: float = MIN_VALID_RATE
    min_valid_samples: int = MIN_VALID_SAMPLES


DEFAULT_THRESHOLDS = QualityThresholds()


def _has_frames(event: Dict[str, Any]) -> bool:
    stack_trace = event.get("values", {}).get("stackTrace")
    return bool(stack_trace and stack_trace.get("frames"))


def count_events(events: Iterable[Dict[str, Any]]) -> EventCounts:
    """Classify `jfr print --json` events, unknown event types are ignored"""
    valid = empty = overflow = other = 0
    for event in events:
        event_type = event.get("type")
        if event_type == CPU_TIME_SAMPLE:
            if _has_frames(event):
                valid += 1
            else:
                empty += 1
        elif event_type in OTHER_SAMPLER_EVENTS:
            other += 1
        elif event_type == CPU_TIME_SAMPLE_LOSS:
            overflow += int(event.get("values", {}).get("lostSamples", 0))
    return EventCounts(valid, empty, overflow, other)


def read_jfr_events(jfr_file: Path, jfr_binary: str = "jfr") -> list:
    """Return all classified events of a recording as parsed JSON dicts"""
    cmd = [jfr_binary, "print", "--json", "--stack-depth", "1",
           "--events", ",".join(CLASSIFIED_EVENTS), str(jfr_file)]
    try:
        result = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    except OSError as e:
        raise JFRParseError(f"Could not run {jfr_binary}: {e}") from e
    if result.returncode != 0:
        raise JFRParseError(f"jfr print failed for {jfr_file} ({result.returncode}): {result.stderr.strip()}")
    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise JFRParseError(f"Malformed jfr print output for {jfr_file}: {e}") from e
    return data.get("recording", {}).get("events", [])


def classify_jfr_file(jfr_file: Path, jfr_binary: str = "jfr") -> EventCounts:
    jfr_file = Path(jfr_file)
    if not jfr_file.exists():
        raise ArtifactMissingError(f"File {jfr_file} does not exist")
    if jfr_file.stat().st_size == 0:
        # a recording without events still has a chunk header
        raise ArtifactMissingError(f"File {jfr_file} is empty")
    return count_events(read_jfr_events(jfr_file, jfr_binary))


def aggregate_jfr_files(jfr_files: Iterable[Path], jfr_binary: str = "jfr") -> EventCounts:
    """Sum the counts of all recordings of one run.

    One unreadable recording invalidates the whole run, the JFRParseError is
    propagated to the caller.
    """
    total = EventCounts()
    for jfr_file in jfr_files:
        total = total + classify_jfr_file(jfr_file, jfr_binary)
    return total


def is_reasonable(duration: float, counts: EventCounts,
                  thresholds: Optional[QualityThresholds] = None) -> bool:
    thresholds = thresholds or DEFAULT_THRESHOLDS
    if duration <= 0 or counts.valid_samples < max(thresholds.min_valid_samples, 1):
        return False
    overflow_rate = counts.overflow_samples / counts.valid_samples
    empty_rate = counts.empty_samples / counts.valid_samples
    valid_rate = counts.valid_samples / counts.total_cpu_samples
    return (overflow_rate < thresholds.max_overflow_rate
            and empty_rate < thresholds.max_empty_rate
            and valid_rate > thresholds.min_valid_rate)
