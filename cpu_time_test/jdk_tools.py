#!/usr/bin/env python3
"""
Locating JDK tools and talking to a running JVM via jcmd
"""

import os
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional


class ControlChannelError(RuntimeError):
    """A jcmd command against the worker JVM failed"""

    def __init__(self, command: List[str], returncode: int, output: str = ""):
        self.command = command
        self.returncode = returncode
        self.output = output
        super().__init__(f"jcmd failed with exit code {returncode}: {' '.join(command)}")


def resolve_java_binary(java: str = "java") -> str:
    """Resolve the java launcher to an absolute path.

    Plain "java" prefers $JAVA_HOME/bin/java and falls back to the PATH.
    Symlinks (e.g. /usr/bin/java) are resolved so sibling tools are found.
    """
    if java == "java":
        java_home = os.environ.get("JAVA_HOME")
        if java_home and (Path(java_home) / "bin" / "java").exists():
            return str((Path(java_home) / "bin" / "java").resolve())
        found = shutil.which("java")
        if found:
            return str(Path(found).resolve())
        return java
    return str(Path(java).resolve()) if Path(java).exists() else java


def resolve_jdk_tool(java_binary: str, tool: str) -> str:
    """Find a JDK tool (jcmd, jfr) belonging to the same JDK as java_binary"""
    candidate = Path(resolve_java_binary(java_binary)).parent / tool
    if candidate.exists():
        return str(candidate)
    return shutil.which(tool) or tool


def split_jcmd_arguments(args) -> List[str]:
    """jcmd takes space separated key=value pairs, JFR options are comma separated"""
    arguments = []
    for arg in args:
        arguments.extend(part for part in str(arg).split(",") if part)
    return arguments


class JcmdChannel:
    """Synchronous request/response channel to a JVM identified by its pid"""

    def __init__(self, jcmd_binary: str = "jcmd", timeout: Optional[float] = None):
        self.jcmd_binary = jcmd_binary
        self.timeout = timeout

    def command(self, pid: int, *args) -> List[str]:
        return [self.jcmd_binary, str(pid)] + split_jcmd_arguments(args)

    def __call__(self, pid: int, *args) -> str:
        command = self.command(pid, *args)
        try:
            result = subprocess.run(command, stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                                    text=True, errors="replace", timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ControlChannelError(command, -1, str(e)) from e
        if result.returncode != 0:
            raise ControlChannelError(command, result.returncode, result.stdout)
        return result.stdout
