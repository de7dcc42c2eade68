"""
Remote file system operations.

Files are moved as base64 text inside PowerShell scripts. Payloads at or
above the chunk size are written as numbered chunk files next to the target
and joined remotely. Uploads are skipped when the remote file already has
the expected length and hash.
"""

from __future__ import annotations

import asyncio
import base64
import codecs
import hashlib
import locale
import logging
import ntpath
from typing import Any, Optional

from psclient.application.coercion import NoResult
from psclient.application.executor import PipelineExecutor
from psclient.domain.command import Command
from psclient.domain.errors import RemoteExecutionError, TransferVerificationError

logger = logging.getLogger(__name__)

LENGTH_SUFFIX = "LENGTH"

READ_BYTES_SCRIPT = """
param([string]$Path)
$item = Get-Item -LiteralPath $Path -Force
[Convert]::ToBase64String([System.IO.File]::ReadAllBytes($item.FullName))
"""

WRITE_BYTES_SCRIPT = """
param([string]$Path, [string]$Content)
$fullPath = $ExecutionContext.SessionState.Path.GetUnresolvedProviderPathFromPSPath($Path)
[System.IO.File]::WriteAllBytes($fullPath, [Convert]::FromBase64String($Content))
"""

JOIN_CHUNKS_SCRIPT = """
param([string]$Path, [string[]]$Chunks)
$resolver = $ExecutionContext.SessionState.Path
$target = [System.IO.File]::Create($resolver.GetUnresolvedProviderPathFromPSPath($Path))
try {
    foreach ($chunk in $Chunks) {
        $source = [System.IO.File]::OpenRead($resolver.GetUnresolvedProviderPathFromPSPath($chunk))
        try { $source.CopyTo($target) } finally { $source.Dispose() }
    }
} finally {
    $target.Dispose()
}
"""

FILE_SIZE_SCRIPT = """
param([string]$Path)
(Get-Item -LiteralPath $Path -Force).Length
"""

# (BOM, codec) pairs; UTF-32 first since its LE BOM starts with the UTF-16 LE BOM
_BOMS = (
    (codecs.BOM_UTF32_LE, "utf-32-le"),
    (codecs.BOM_UTF32_BE, "utf-32-be"),
    (codecs.BOM_UTF8, "utf-8"),
    (codecs.BOM_UTF16_LE, "utf-16-le"),
    (codecs.BOM_UTF16_BE, "utf-16-be"),
)


def decode_text(data: bytes, default_encoding: Optional[str] = None) -> str:
    """Decode bytes using their byte order mark, else the default encoding."""
    for bom, encoding in _BOMS:
        if data.startswith(bom):
            return data[len(bom):].decode(encoding)
    return data.decode(default_encoding or locale.getpreferredencoding(False))


def compute_hash(data: bytes, algorithm: str) -> str:
    """Uppercase hex digest, formatted like Get-FileHash."""
    return hashlib.new(algorithm.replace("-", "").lower(), data).hexdigest().upper()


class RemoteFileSystem:
    """File operations on the machine a session is connected to."""

    def __init__(
        self,
        executor: PipelineExecutor,
        chunk_size: Optional[int] = None,
        hash_algorithm: Optional[str] = None,
    ):
        settings = executor.session.settings
        self.executor = executor
        self.chunk_size = chunk_size or settings.chunk_size_bytes
        self.hash_algorithm = (hash_algorithm or settings.hash_algorithm).upper()

    def _single_result(self, commands: list[Command], result_type: Any) -> Any:
        results = self.executor.invoke(commands, result_type)
        if len(results) != 1:
            raise RemoteExecutionError(f"Expected exactly one result, got {len(results)}")
        return results[0]

    def path_exists(self, path: str, check_files: bool = True, check_folders: bool = True) -> bool:
        """Check that path exists as a file and/or a folder."""
        if not check_files and not check_folders:
            return False

        if check_files and check_folders:
            path_type = "Any"
        elif check_folders:
            path_type = "Container"
        else:
            path_type = "Leaf"

        command = (
            Command("Test-Path")
            .with_parameter("LiteralPath", path)
            .with_parameter("PathType", path_type)
        )
        return bool(self._single_result([command], bool))

    def ensure_directory(self, path: str) -> None:
        """Create a directory (and its parents) unless it already exists."""
        command = (
            Command("New-Item")
            .with_parameter("ItemType", "Directory")
            .with_parameter("Path", path)
            .with_switch("Force")
        )
        self.executor.invoke([command], NoResult)

    def get_file_size(self, path: str) -> int:
        command = Command.script(FILE_SIZE_SCRIPT).with_parameter("Path", path)
        return self._single_result([command], int)

    def get_file_bytes(self, path: str) -> Optional[bytes]:
        """Read a remote file, or None if it is not an existing file."""
        if not self.path_exists(path, check_files=True, check_folders=False):
            return None

        command = Command.script(READ_BYTES_SCRIPT).with_parameter("Path", path)
        results = self.executor.invoke([command], str)
        return base64.b64decode("".join(results))

    def get_file_text(self, path: str, encoding: Optional[str] = None) -> Optional[str]:
        """Read a remote text file; a byte order mark wins over the given encoding."""
        data = self.get_file_bytes(path)
        if data is None:
            return None
        return decode_text(data, encoding)

    def get_file_hash(self, path: str, algorithm: Optional[str] = None) -> str:
        """
        Hash a remote file.

        Args:
            path: Remote file path
            algorithm: Get-FileHash algorithm name. A "+LENGTH" suffix
                (e.g. "MD5+LENGTH") formats the result as "HASH::SIZE".

        Returns:
            Uppercase hex digest, optionally followed by "::" and the size
        """
        name, with_length = self._parse_algorithm(algorithm)
        command = (
            Command("Get-FileHash")
            .with_parameter("LiteralPath", path)
            .with_parameter("Algorithm", name)
        )
        select = Command("Select-Object").with_parameter("ExpandProperty", "Hash")
        digest = str(self._single_result([command, select], str)).upper()

        if with_length:
            return f"{digest}::{self.get_file_size(path)}"
        return digest

    def _parse_algorithm(self, algorithm: Optional[str]) -> tuple[str, bool]:
        name, sep, option = (algorithm or "").partition("+")
        if sep and option.strip().upper() != LENGTH_SUFFIX:
            raise ValueError(f"Unsupported hash option: {option!r}")
        return (name.strip().upper() or self.hash_algorithm), bool(sep)

    def verify_file_contents(self, path: str, contents: bytes, algorithm: Optional[str] = None) -> bool:
        """
        Check that a remote file holds exactly ``contents``.

        Existence, then size, then hash; the remote hash is only computed
        when the sizes match.
        """
        if not self.path_exists(path, check_files=True, check_folders=False):
            return False

        size = self.get_file_size(path)
        if size != len(contents):
            logger.debug("Size mismatch for %s: remote=%s expected=%s", path, size, len(contents))
            return False

        name, _ = self._parse_algorithm(algorithm)
        return compute_hash(contents, name) == self.get_file_hash(path, name)

    def put_file(self, path: str, contents: bytes, unblock: bool = True) -> None:
        """
        Write ``contents`` to a remote file.

        Nothing is written when the file already matches. Large payloads are
        uploaded in chunks and verified after reassembly.

        Raises:
            TransferVerificationError: If the reassembled file does not match
        """
        contents = bytes(contents)

        if self.verify_file_contents(path, contents):
            logger.debug("Skipping upload of %s: contents already match", path)
        else:
            if not self.path_exists(path, check_files=True, check_folders=False):
                parent = ntpath.dirname(path)
                if parent:
                    self.ensure_directory(parent)

            if len(contents) < self.chunk_size:
                logger.debug("Uploading %s (%d bytes)", path, len(contents))
                self._write_bytes(path, contents)
            else:
                self._put_chunked(path, contents)

        if unblock:
            self.executor.invoke(
                [Command("Unblock-File").with_parameter("LiteralPath", path)], NoResult
            )

    def _write_bytes(self, path: str, contents: bytes) -> None:
        command = (
            Command.script(WRITE_BYTES_SCRIPT)
            .with_parameter("Path", path)
            .with_parameter("Content", base64.b64encode(contents).decode("ascii"))
        )
        self.executor.invoke([command], NoResult)

    def _put_chunked(self, path: str, contents: bytes) -> None:
        chunk_paths = []
        logger.info(
            "Uploading %s in chunks (%d bytes, chunk size %d)", path, len(contents), self.chunk_size
        )
        try:
            for index, offset in enumerate(range(0, len(contents), self.chunk_size)):
                chunk_path = f"{path}_{index}"
                chunk_paths.append(chunk_path)
                self._write_bytes(chunk_path, contents[offset:offset + self.chunk_size])

            join = (
                Command.script(JOIN_CHUNKS_SCRIPT)
                .with_parameter("Path", path)
                .with_parameter("Chunks", chunk_paths)
            )
            self.executor.invoke([join], NoResult)
        finally:
            for chunk_path in chunk_paths:
                self.delete_file(chunk_path)

        if not self.verify_file_contents(path, contents):
            raise TransferVerificationError(f"Verification failed after chunked upload of {path}")

    def delete_file(self, path: str) -> None:
        """Delete a remote file; does nothing if it does not exist."""
        if not self.path_exists(path, check_files=True, check_folders=False):
            return
        command = Command("Remove-Item").with_parameter("LiteralPath", path).with_switch("Force")
        self.executor.invoke([command], NoResult)

    def delete_folder_recursively(self, path: str) -> None:
        """Delete a remote folder and everything in it; does nothing if it does not exist."""
        if not self.path_exists(path, check_files=False, check_folders=True):
            return
        command = (
            Command("Remove-Item")
            .with_parameter("LiteralPath", path)
            .with_switch("Force")
            .with_switch("Recurse")
        )
        self.executor.invoke([command], NoResult)

    async def path_exists_async(self, path: str, check_files: bool = True, check_folders: bool = True) -> bool:
        return await asyncio.to_thread(self.path_exists, path, check_files, check_folders)

    async def get_file_bytes_async(self, path: str) -> Optional[bytes]:
        return await asyncio.to_thread(self.get_file_bytes, path)

    async def get_file_text_async(self, path: str, encoding: Optional[str] = None) -> Optional[str]:
        return await asyncio.to_thread(self.get_file_text, path, encoding)

    async def get_file_hash_async(self, path: str, algorithm: Optional[str] = None) -> str:
        return await asyncio.to_thread(self.get_file_hash, path, algorithm)

    async def verify_file_contents_async(self, path: str, contents: bytes, algorithm: Optional[str] = None) -> bool:
        return await asyncio.to_thread(self.verify_file_contents, path, contents, algorithm)

    async def put_file_async(self, path: str, contents: bytes, unblock: bool = True) -> None:
        await asyncio.to_thread(self.put_file, path, contents, unblock)

    async def delete_file_async(self, path: str) -> None:
        await asyncio.to_thread(self.delete_file, path)

    async def delete_folder_recursively_async(self, path: str) -> None:
        await asyncio.to_thread(self.delete_folder_recursively, path)
