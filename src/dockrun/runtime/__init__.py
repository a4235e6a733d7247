"""Runtime module for external process invocation.

This module runs the container tool as a subprocess, forwards or captures
its output streams, and reports how it exited.
"""

from __future__ import annotations

from .process_runner import (
    OutputSink,
    ProcessResult,
    ProcessRunner,
    ProcessSpec,
    stream_sink,
)

__all__ = [
    "OutputSink",
    "ProcessResult",
    "ProcessRunner",
    "ProcessSpec",
    "stream_sink",
]
