#!/usr/bin/env python3
"""
JFR recording rotation

While the worker JVM is alive, periodically stop the current recording
(writing artifact N) and start the next one (eventually writing artifact
N+1) via jcmd. The orchestrator stops the controller once the worker has
exited and joins it before any recording is read.
"""

import random
import threading
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import psutil

from jdk_tools import ControlChannelError, JcmdChannel
from jfr_options import JavaOptions, JFRDuration

try:
    from ctest_config import *
except ImportError:
    from config_default import *


def recording_name(index: int) -> str:
    return f"{RECORDING_NAME_PREFIX}{index}"


def worker_running(pid: int) -> bool:
    """True while the process exists and has not exited (zombies count as exited)"""
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return False


class JFRRotationController(threading.Thread):
    """Background thread that stops and restarts JFR in a running JVM.

    The artifact list starts with the path of the initial recording. The
    path of every restarted recording is appended once its JFR.start
    succeeded, so the last started recording is always reachable even
    though only JVM exit closes it.
    """

    def __init__(self, pid: int, java_options: JavaOptions, artifact_namer: Callable[[int], Path],
                 duration: JFRDuration = JFRDuration.TINY,
                 control_channel: Optional[Callable[..., str]] = None,
                 interval_supplier: Optional[Callable[[], float]] = None,
                 is_alive: Optional[Callable[[int], bool]] = None,
                 rng: Optional[random.Random] = None,
                 verbose: bool = False):
        super().__init__(name=f"jfr-rotation-{pid}", daemon=True)
        self.pid = pid
        self.java_options = java_options
        self.artifact_namer = artifact_namer
        self.control_channel = control_channel or JcmdChannel()
        self.interval_supplier = interval_supplier or (lambda: duration.next_interval_seconds(rng))
        self.is_alive_check = is_alive or worker_running
        self.verbose = verbose
        self.error: Optional[Exception] = None
        self.rotations = 0
        self._artifacts: List[Path] = [Path(artifact_namer(0)).absolute()]
        self._stop_event = threading.Event()

    @property
    def artifacts(self) -> Tuple[Path, ...]:
        return tuple(self._artifacts)

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self):
        """Request the loop to end, takes effect at the next check"""
        self._stop_event.set()

    def vprint(self, *args, **kwargs):
        if self.verbose:
            print(*args, **kwargs)

    def rotate(self):
        """Stop recording N into artifact N, then start recording N+1"""
        index = len(self._artifacts) - 1
        current = self._artifacts[index]
        next_file = Path(self.artifact_namer(index + 1)).absolute()
        self.control_channel(self.pid, "JFR.stop", f"name={recording_name(index)}", f"filename={current}")
        self.vprint(f"    🔁 Stopped recording {index} -> {current}")
        self.control_channel(self.pid, "JFR.start",
                             self.java_options.to_jfr_options(next_file, recording_name(index + 1)))
        self._artifacts.append(next_file)
        self.rotations += 1

    def run(self):
        try:
            self._rotate_until_stopped()
        except Exception as e:
            # any other failure also ends rotation and must show up in the result
            self.error = e
            self.vprint(f"    ❌ Rotation failed: {e!r}")
        finally:
            self._stop_event.set()

    def _rotate_until_stopped(self):
        while not self._stop_event.is_set():
            # returns True as soon as stop() is called, no further rotation then
            if self._stop_event.wait(self.interval_supplier()):
                break
            if not self.is_alive_check(self.pid):
                break
            try:
                self.rotate()
            except ControlChannelError as e:
                if not self.is_alive_check(self.pid):
                    # the worker exited during the rotation, its recording is dumped on exit
                    self.vprint(f"    ⏹️ Worker {self.pid} exited during rotation")
                    break
                # no retry, it would shift the time ranges of all later recordings
                self.error = e
                self.vprint(f"    ❌ Rotation stopped: {e}")
                break
