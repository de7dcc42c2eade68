"""
Application layer - session, executor and the services built on it.
"""

from psclient.application.client import PSClient
from psclient.application.coercion import NoResult, coerce
from psclient.application.executor import PipelineExecutor
from psclient.application.file_system import RemoteFileSystem
from psclient.application.session import PSSession, open_session
from psclient.application.zip_extractor import ZipExtractor

__all__ = [
    "NoResult",
    "PSClient",
    "PSSession",
    "PipelineExecutor",
    "RemoteFileSystem",
    "ZipExtractor",
    "coerce",
    "open_session",
]
