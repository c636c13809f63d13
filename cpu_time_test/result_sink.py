#!/usr/bin/env python3
"""
Appending run results to the results CSV
"""

from pathlib import Path
from typing import Optional

import pandas as pd

from jfr_events import DEFAULT_THRESHOLDS, QualityThresholds
from orchestrator import Result


class CSVResultSink:
    def __init__(self, csv_file: Path, append: bool = False,
                 thresholds: Optional[QualityThresholds] = None):
        self.csv_file = Path(csv_file)
        self.append = append
        self.thresholds = thresholds or DEFAULT_THRESHOLDS

    def setup(self):
        """Create the CSV with its header, truncate it unless appending"""
        if self.csv_file.exists() and self.append and self.csv_file.stat().st_size > 0:
            return
        self.csv_file.parent.mkdir(parents=True, exist_ok=True)
        pd.DataFrame(columns=Result.csv_header()).to_csv(self.csv_file, index=False)

    def write(self, result: Result):
        """Append one row, written immediately"""
        row = pd.DataFrame([result.to_csv(self.thresholds)], columns=Result.csv_header())
        row.to_csv(self.csv_file, mode="a", header=not self.csv_file.exists(), index=False)

    def load(self) -> pd.DataFrame:
        return pd.read_csv(self.csv_file)
