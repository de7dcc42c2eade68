"""
Execution channels.

LocalChannel runs a PowerShell process per pipeline, WinRMChannel runs
commands in a remote WinRM shell.
"""

from psclient.infrastructure.channels.base import (
    ExecutionChannel,
    Pipeline,
    PipelineState,
    PipelineStream,
)
from psclient.infrastructure.channels.factory import create_channel
from psclient.infrastructure.channels.local import LocalChannel, LocalPipeline, find_powershell
from psclient.infrastructure.channels.winrm_channel import WinRMChannel, WinRMPipeline

__all__ = [
    "ExecutionChannel",
    "LocalChannel",
    "LocalPipeline",
    "Pipeline",
    "PipelineState",
    "PipelineStream",
    "WinRMChannel",
    "WinRMPipeline",
    "create_channel",
    "find_powershell",
]
