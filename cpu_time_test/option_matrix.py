#!/usr/bin/env python3
"""
Configuration matrix expansion

Expands the selected axis values into the sequence of OptionSets the driver
runs, optionally shuffled and repeated (or repeated forever).
"""

import itertools
import random
from dataclasses import dataclass, fields
from typing import Iterable, Iterator, List, Optional, Tuple

from jfr_options import GC, Benchmark, HeapSize, JFRDuration, MaxChunkSize, OptionSet, Sampler

UNBOUNDED_RUNS = -1


def _unique(values: Iterable) -> tuple:
    return tuple(dict.fromkeys(values))


@dataclass(frozen=True)
class OptionAxes:
    """The axis values that participate in the matrix, every member by default"""
    durations: Tuple[JFRDuration, ...] = tuple(JFRDuration)
    benchmarks: Tuple[Benchmark, ...] = tuple(Benchmark)
    samplers: Tuple[Sampler, ...] = tuple(Sampler)
    gcs: Tuple[GC, ...] = tuple(GC)
    max_chunk_sizes: Tuple[MaxChunkSize, ...] = tuple(MaxChunkSize)
    heap_sizes: Tuple[HeapSize, ...] = tuple(HeapSize)

    def __post_init__(self):
        # duplicates would yield equal option sets within one pass
        for field in fields(self):
            object.__setattr__(self, field.name, _unique(getattr(self, field.name)))

    @property
    def pass_size(self) -> int:
        size = 1
        for field in fields(self):
            size *= len(getattr(self, field.name))
        return size


def _single_pass(axes: OptionAxes, randomize_benchmark_order: bool) -> Iterator[OptionSet]:
    # duration is the outermost axis, heap size the innermost
    for duration, benchmark, sampler, gc, chunk_size, heap_size in itertools.product(
            axes.durations, axes.benchmarks, axes.samplers, axes.gcs, axes.max_chunk_sizes, axes.heap_sizes):
        yield OptionSet(benchmark, sampler, gc, chunk_size, heap_size, duration, randomize_benchmark_order)


def expand_option_sets(axes: OptionAxes, runs: int = 1, shuffle_configs: bool = False,
                       randomize_benchmark_order: bool = False,
                       rng: Optional[random.Random] = None) -> Iterator[OptionSet]:
    """Lazily generate the option sets for `runs` passes over the matrix.

    With shuffle_configs every pass is materialized and shuffled with a fresh
    permutation. runs == UNBOUNDED_RUNS repeats forever.
    """
    if runs < 0 and runs != UNBOUNDED_RUNS:
        raise ValueError(f"runs must be >= 0 or {UNBOUNDED_RUNS}, got {runs}")
    rng = rng or random.Random()
    passes = itertools.count() if runs == UNBOUNDED_RUNS else range(runs)
    for _ in passes:
        if shuffle_configs:
            option_sets: List[OptionSet] = list(_single_pass(axes, randomize_benchmark_order))
            rng.shuffle(option_sets)
            yield from option_sets
        else:
            yield from _single_pass(axes, randomize_benchmark_order)


def total_option_sets(axes: OptionAxes, runs: int) -> Optional[int]:
    """Number of runs the matrix produces, None when unbounded"""
    if runs == UNBOUNDED_RUNS:
        return None
    return axes.pass_size * runs
