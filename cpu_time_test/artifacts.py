#!/usr/bin/env python3
"""
Where the JFR recordings of a run go and how they are cleaned up

Single-file runs write <jfr folder>/<prefix>.jfr, rotated runs write
<jfr folder>/<prefix>/<index>.jfr.
"""

import shutil
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from jfr_options import OptionSet


class ArtifactNamer:
    def __init__(self, jfr_folder: Path, option_set: OptionSet, timestamp_ms: Optional[int] = None):
        if timestamp_ms is None:
            timestamp_ms = int(time.time() * 1000)
        self.prefix = f"{option_set.file_prefix()}_{timestamp_ms}"
        self.multiple_files = option_set.duration.produces_multiple_files
        if self.multiple_files:
            self.location = Path(jfr_folder) / self.prefix
        else:
            self.location = Path(jfr_folder) / f"{self.prefix}.jfr"

    def __call__(self, index: int) -> Path:
        if not self.multiple_files:
            if index != 0:
                raise ValueError(f"Only one file expected, got index {index}")
            return self.location
        return self.location / f"{index}.jfr"

    def prepare(self):
        if self.multiple_files:
            self.location.mkdir(parents=True, exist_ok=True)
        else:
            self.location.parent.mkdir(parents=True, exist_ok=True)

    def cleanup(self):
        """Delete the recordings, failures are reported but not raised"""
        try:
            if self.multiple_files:
                shutil.rmtree(self.location, ignore_errors=False)
            else:
                self.location.unlink(missing_ok=True)
        except FileNotFoundError:
            pass
        except OSError as e:
            print(f"    ⚠️ Could not delete {self.location}: {e}", file=sys.stderr)


@contextmanager
def recording_artifacts(jfr_folder: Path, option_set: OptionSet, keep: bool = False) -> Iterator[ArtifactNamer]:
    """Provide the artifact namer for one run and remove its files afterwards unless kept"""
    namer = ArtifactNamer(jfr_folder, option_set)
    namer.prepare()
    try:
        yield namer
    finally:
        if not keep:
            namer.cleanup()
