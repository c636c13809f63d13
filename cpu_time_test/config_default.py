#!/usr/bin/env python3
"""
Default Configuration for the JFR CPU-Time Sampler Test Harness

Copy this file to ctest_config.py and modify it for your local testing needs.
Command line flags still take precedence over the values defined here.

Usage:
    cp config_default.py ctest_config.py
    # Edit ctest_config.py with your preferred settings

The ctest_config.py file is gitignored and won't be committed to the repository.
"""

# =============================================================================
# QUALITY THRESHOLDS - When is a run "reasonable"?
# =============================================================================

# Lost samples (reported by jdk.CPUTimeSampleLoss) per valid sample.
# Above this the sampler queue overflowed too often to trust the profile
MAX_OVERFLOW_RATE = 0.2

# CPU time samples without a stack trace per valid sample
MAX_EMPTY_RATE = 0.2

# Valid samples relative to all CPU time samples (valid + empty + lost)
MIN_VALID_RATE = 0.7

# Below this many valid samples the rates are statistically meaningless
MIN_VALID_SAMPLES = 100

# =============================================================================
# RENAISSANCE BENCHMARK CONFIGURATION
# =============================================================================

RENAISSANCE_JAR = "renaissance.jar"
RENAISSANCE_URL = "https://github.com/renaissance-benchmarks/renaissance/releases/download/v0.16.0/renaissance-gpl-0.16.0.jar"

# Repetitions per Renaissance benchmark, -1 uses the benchmark defaults
RENAISSANCE_ITERATIONS = 1

# =============================================================================
# OUTPUT CONFIGURATION
# =============================================================================

CSV_FILE = "results.csv"
JFR_FOLDER = "jfr"

# =============================================================================
# ROTATION CONFIGURATION
# =============================================================================

# Recording names used for jcmd JFR.start / JFR.stop, suffixed with the index
RECORDING_NAME_PREFIX = "ctest-"

# Seconds to wait for a worker to exit after SIGTERM before it gets SIGKILL
TERMINATE_TIMEOUT = 10

"""
Copy and modify the values above in your ctest_config.py, e.g.:

1. STRICTER SANITY CHECK:
   MAX_OVERFLOW_RATE = 0.1
   MAX_EMPTY_RATE = 0.1
   MIN_VALID_RATE = 0.8

2. LONGER RENAISSANCE RUNS:
   RENAISSANCE_ITERATIONS = -1
"""
