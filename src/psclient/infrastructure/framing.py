"""
Invocation framing.

A pipeline is shipped to PowerShell as one script. The process is started
with a small bootstrap (-EncodedCommand) that reads the real script as
base64 text from standard input, so arbitrarily large scripts fit. The
script merges every stream into the success stream and writes each item as
one ``TAG:<json>`` line:

    D  data item            {"t": [type names], "s": string form, "v": value}
    E  error record         {"message", "category", "error_id", "target", "exception"}
    F  terminating failure  same shape as E
    W  warning, V verbose, G debug, I information / Write-Host

Lines without a tag are plain console output.
"""

from __future__ import annotations

import base64
import codecs
import json
import logging
import re
from typing import Any, NamedTuple, Optional, Sequence
from xml.sax.saxutils import unescape

from psclient.domain.command import Command
from psclient.domain.records import ErrorRecord, RemoteObject
from psclient.infrastructure.escaping import escape_string, render_value

logger = logging.getLogger(__name__)

DATA = "D"
ERROR = "E"
FAILURE = "F"
WARNING = "W"
VERBOSE = "V"
DEBUG = "G"
INFORMATION = "I"

TAGS = frozenset({DATA, ERROR, FAILURE, WARNING, VERBOSE, DEBUG, INFORMATION})

POWERSHELL_ARGUMENTS = [
    "-NoLogo",
    "-NoProfile",
    "-NonInteractive",
    "-ExecutionPolicy",
    "Bypass",
]

BOOTSTRAP_SCRIPT = """
try { [Console]::OutputEncoding = New-Object System.Text.UTF8Encoding($false) } catch { }
$__pscInput = [Console]::In.ReadToEnd()
$__pscScript = [System.Text.Encoding]::UTF8.GetString([Convert]::FromBase64String($__pscInput.Trim()))
. ([ScriptBlock]::Create($__pscScript))
"""

INVOCATION_TEMPLATE = """
$ErrorActionPreference = 'Continue'
$ProgressPreference = 'SilentlyContinue'
function __pscEmit([string]$tag, $payload) {
    $json = ConvertTo-Json -InputObject $payload -Compress -Depth __DEPTH__ -WarningAction SilentlyContinue
    [Console]::Out.WriteLine($tag + ':' + $json)
}
function __pscError($record) {
    $exceptionType = ''
    if ($record.Exception) { $exceptionType = $record.Exception.GetType().FullName }
    @{
        message = [string]$record.Exception.Message
        category = [string]$record.CategoryInfo.Category
        error_id = [string]$record.FullyQualifiedErrorId
        target = [string]$record.TargetObject
        exception = $exceptionType
    }
}
try {
    & {
__PIPELINE__
    } *>&1 | ForEach-Object {
        $item = $_
        if ($item -is [System.Management.Automation.ErrorRecord]) { __pscEmit 'E' (__pscError $item) }
        elseif ($item -is [System.Management.Automation.WarningRecord]) { __pscEmit 'W' ([string]$item.Message) }
        elseif ($item -is [System.Management.Automation.VerboseRecord]) { __pscEmit 'V' ([string]$item.Message) }
        elseif ($item -is [System.Management.Automation.DebugRecord]) { __pscEmit 'G' ([string]$item.Message) }
        elseif ($item -is [System.Management.Automation.InformationRecord]) { __pscEmit 'I' ([string]$item.MessageData) }
        elseif ($null -eq $item) { __pscEmit 'D' @{ t = @(); s = ''; v = $null } }
        else {
            $names = @($item.PSObject.TypeNames | ForEach-Object { [string]$_ })
            try { __pscEmit 'D' @{ t = $names; s = [string]$item; v = $item } }
            catch { __pscEmit 'D' @{ t = $names; s = [string]$item; v = $null } }
        }
    }
} catch {
    __pscEmit 'F' (__pscError $_)
    exit 1
}
exit 0
"""

_CLIXML_HEADER = "#< CLIXML"
_CLIXML_ERROR = re.compile(r'<S S="Error">(.*?)</S>', re.DOTALL)
_CLIXML_ESCAPE = re.compile(r"_x([0-9A-Fa-f]{4})_")
_XML_ENTITIES = {"&apos;": "'", "&quot;": "\""}


def render_command(command: Command) -> str:
    """Render one command as script text (call operator, parameters, switches)."""
    if command.is_script:
        parts = ["& {", command.text, "}"]
    else:
        parts = ["&", escape_string(command.text)]

    for name, value in command.parameters:
        parts.append(f"-{name}:{render_value(value)}")
    for switch in command.switches:
        parts.append(f"-{switch}")
    return " ".join(parts)


def build_pipeline_text(commands: Sequence[Command]) -> str:
    return " | ".join(render_command(c) for c in commands)


def build_invocation_script(commands: Sequence[Command], depth: int = 4) -> str:
    """Wrap a pipeline into the tagged output script."""
    return (
        INVOCATION_TEMPLATE
        .replace("__DEPTH__", str(int(depth)))
        .replace("__PIPELINE__", build_pipeline_text(commands))
    )


def encode_script_input(script: str) -> str:
    """Encode a script for the bootstrap's standard input."""
    return base64.b64encode(script.encode("utf-8")).decode("ascii") + "\r\n"


def build_bootstrap_command() -> str:
    """Base64 (UTF-16LE) form of the bootstrap for -EncodedCommand."""
    return base64.b64encode(BOOTSTRAP_SCRIPT.encode("utf-16-le")).decode("ascii")


def build_arguments() -> list[str]:
    """Arguments passed to the PowerShell executable."""
    return [*POWERSHELL_ARGUMENTS, "-EncodedCommand", build_bootstrap_command()]


class ParsedLine(NamedTuple):
    tag: Optional[str]
    payload: Any


class LineBuffer:
    """
    Splits a byte stream into text lines.

    Bytes are decoded incrementally as UTF-8, so multi-byte characters split
    across reads are kept intact.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""

    def feed(self, data: bytes) -> list[str]:
        self._pending += self._decoder.decode(data)
        *lines, self._pending = self._pending.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> list[str]:
        self._pending += self._decoder.decode(b"", final=True)
        rest, self._pending = self._pending, ""
        rest = rest.rstrip("\r")
        return [rest] if rest else []


class RecordParser:
    """Turns output lines of the invocation script into records."""

    def parse_line(self, line: str) -> ParsedLine:
        if len(line) >= 2 and line[1] == ":" and line[0] in TAGS:
            try:
                return ParsedLine(line[0], json.loads(line[2:]))
            except ValueError:
                logger.debug("Untagged output that looks tagged: %r", line[:80])
        return ParsedLine(None, line)

    @staticmethod
    def to_remote_object(payload: Any) -> RemoteObject:
        if not isinstance(payload, dict):
            return RemoteObject(payload)
        names = payload.get("t") or ()
        if isinstance(names, str):
            names = (names,)
        return RemoteObject(
            base_object=payload.get("v"),
            type_names=tuple(str(n) for n in names),
            text=payload.get("s"),
        )

    @staticmethod
    def to_error_record(payload: Any) -> ErrorRecord:
        return ErrorRecord.from_payload(payload)

    @staticmethod
    def to_message(payload: Any) -> str:
        return "" if payload is None else str(payload)


class StderrDecoder:
    """
    Converts standard error lines into error records.

    PowerShell writes errors either as plain text or, when it detects a
    non-console host, as CLIXML documents preceded by a ``#< CLIXML`` line.
    """

    def __init__(self):
        self._clixml = False

    def feed(self, line: str) -> list[ErrorRecord]:
        if line.startswith(_CLIXML_HEADER):
            self._clixml = True
            return []
        if not self._clixml:
            return [ErrorRecord(message=line)] if line.strip() else []

        messages = [_decode_clixml_text(m) for m in _CLIXML_ERROR.findall(line)]
        text = "".join(messages).strip()
        return [ErrorRecord(message=text)] if text else []


def _decode_clixml_text(value: str) -> str:
    value = _CLIXML_ESCAPE.sub(lambda m: chr(int(m.group(1), 16)), value)
    return unescape(value, _XML_ENTITIES)
