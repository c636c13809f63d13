#!/usr/bin/env python3
"""
Test the JFR recording rotation loop with a fake jcmd channel
"""

import threading
import time
from pathlib import Path

import pytest

from jdk_tools import ControlChannelError, JcmdChannel, split_jcmd_arguments
from jfr_options import JavaOptions, Sampler
from rotation import JFRRotationController


class FakeChannel:
    def __init__(self, fail_on=None):
        self.calls = []
        self.fail_on = fail_on
        self.lock = threading.Lock()

    def __call__(self, pid, *args):
        with self.lock:
            self.calls.append((pid, args))
        if self.fail_on and args[0] == self.fail_on:
            raise ControlChannelError(["jcmd", str(pid), *args], 1, "boom")
        return ""

    @property
    def commands(self):
        return [args[0] for _, args in self.calls]


def namer_in(folder: Path):
    return lambda index: folder / f"{index}.jfr"


def java_options():
    options = JavaOptions()
    Sampler.CPU_ONLY.add_option(options)
    return options


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return False


def test_rotates_until_stopped(tmp_path):
    channel = FakeChannel()
    controller = JFRRotationController(4711, java_options(), namer_in(tmp_path), control_channel=channel,
                                       interval_supplier=lambda: 0.01, is_alive=lambda pid: True)
    controller.start()
    assert wait_for(lambda: controller.rotations >= 3)
    controller.stop()
    controller.join(timeout=5)
    assert not controller.is_alive()

    assert controller.error is None
    assert len(controller.artifacts) == controller.rotations + 1
    assert controller.artifacts[0] == (tmp_path / "0.jfr").absolute()
    # strictly alternating stop / start, all against the worker pid
    assert channel.commands == ["JFR.stop", "JFR.start"] * controller.rotations
    assert {pid for pid, _ in channel.calls} == {4711}

    stop_args = channel.calls[0][1]
    assert stop_args == ("JFR.stop", "name=ctest-0", f"filename={(tmp_path / '0.jfr').absolute()}")
    start_args = channel.calls[1][1]
    assert start_args[1].startswith(f"name=ctest-1,filename={(tmp_path / '1.jfr').absolute()},")
    assert "jdk.CPUTimeSample#enabled=true" in start_args[1]


def test_cancel_during_sleep_issues_no_commands(tmp_path):
    channel = FakeChannel()
    controller = JFRRotationController(1, java_options(), namer_in(tmp_path), control_channel=channel,
                                       interval_supplier=lambda: 30.0, is_alive=lambda pid: True)
    controller.start()
    time.sleep(0.05)
    started = time.monotonic()
    controller.stop()
    controller.join(timeout=5)
    assert not controller.is_alive()
    assert time.monotonic() - started < 1.0
    assert channel.calls == []
    assert controller.artifacts == ((tmp_path / "0.jfr").absolute(),)


def test_no_rotation_after_cancellation_is_observed(tmp_path):
    controller = None

    class CancellingChannel(FakeChannel):
        def __call__(self, pid, *args):
            result = super().__call__(pid, *args)
            if args[0] == "JFR.start":
                controller.stop()
            return result

    channel = CancellingChannel()
    controller = JFRRotationController(1, java_options(), namer_in(tmp_path), control_channel=channel,
                                       interval_supplier=lambda: 0.01, is_alive=lambda pid: True)
    controller.start()
    controller.join(timeout=5)
    assert channel.commands == ["JFR.stop", "JFR.start"]
    # the last started recording is reachable although nothing stopped it
    assert controller.artifacts == ((tmp_path / "0.jfr").absolute(), (tmp_path / "1.jfr").absolute())


def test_control_failure_stops_rotation(tmp_path):
    channel = FakeChannel(fail_on="JFR.start")
    controller = JFRRotationController(1, java_options(), namer_in(tmp_path), control_channel=channel,
                                       interval_supplier=lambda: 0.01, is_alive=lambda pid: True)
    controller.start()
    controller.join(timeout=5)
    assert not controller.is_alive()
    assert isinstance(controller.error, ControlChannelError)
    assert channel.commands == ["JFR.stop", "JFR.start"]
    assert controller.artifacts == ((tmp_path / "0.jfr").absolute(),)
    assert controller.stopped


def test_failure_because_worker_exited_is_not_an_error(tmp_path):
    alive = {"value": True}

    class ExitingChannel(FakeChannel):
        def __call__(self, pid, *args):
            alive["value"] = False
            raise ControlChannelError(["jcmd", str(pid), *args], 1, "No such process")

    controller = JFRRotationController(1, java_options(), namer_in(tmp_path), control_channel=ExitingChannel(),
                                       interval_supplier=lambda: 0.01, is_alive=lambda pid: alive["value"])
    controller.start()
    controller.join(timeout=5)
    assert controller.error is None
    assert len(controller.artifacts) == 1


def test_dead_worker_is_not_rotated(tmp_path):
    channel = FakeChannel()
    controller = JFRRotationController(1, java_options(), namer_in(tmp_path), control_channel=channel,
                                       interval_supplier=lambda: 0.01, is_alive=lambda pid: False)
    controller.start()
    controller.join(timeout=5)
    assert channel.calls == []


def test_jcmd_argument_splitting():
    assert split_jcmd_arguments(["JFR.start", "name=a,filename=/x.jfr,settings=profile.jfc"]) == [
        "JFR.start", "name=a", "filename=/x.jfr", "settings=profile.jfc"]
    assert JcmdChannel("/jdk/bin/jcmd").command(42, "JFR.stop", "name=a") == [
        "/jdk/bin/jcmd", "42", "JFR.stop", "name=a"]


def test_jcmd_failure_raises(tmp_path):
    fake_jcmd = tmp_path / "jcmd"
    fake_jcmd.write_text("#!/bin/sh\necho 'Could not attach' \nexit 1\n")
    fake_jcmd.chmod(0o755)
    with pytest.raises(ControlChannelError) as error:
        JcmdChannel(str(fake_jcmd))(1234, "JFR.stop", "name=x")
    assert error.value.returncode == 1
    assert "Could not attach" in error.value.output


def test_unexpected_failure_is_reported(tmp_path):
    def namer(index):
        if index > 1:
            raise ValueError(f"no file name for recording {index}")
        return tmp_path / f"{index}.jfr"

    channel = FakeChannel()
    controller = JFRRotationController(1, java_options(), namer, control_channel=channel,
                                       interval_supplier=lambda: 0.01, is_alive=lambda pid: True)
    controller.start()
    controller.join(timeout=5)
    assert not controller.is_alive()
    assert isinstance(controller.error, ValueError)
    assert controller.stopped
    assert controller.rotations == 1
    assert channel.commands == ["JFR.stop", "JFR.start"]


def test_jcmd_output_that_is_not_utf8(tmp_path):
    fake_jcmd = tmp_path / "jcmd"
    fake_jcmd.write_text("#!/bin/sh\nprintf 'Recording \\377 stopped\\n'\n")
    fake_jcmd.chmod(0o755)
    output = JcmdChannel(str(fake_jcmd))(1234, "JFR.stop", "name=x")
    assert output == "Recording \ufffd stopped\n"
