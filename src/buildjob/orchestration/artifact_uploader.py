"""
Artifact upload coordination for the orchestration module.

This module discovers the files a build produced and uploads all of them
concurrently, reporting progress through the log forwarder.
"""

import asyncio
import logging
import mimetypes
import os
from pathlib import Path
from typing import List, Tuple

from ..models.results import StepResult
from ..models.runtime import LogEvent, UploadTask
from ..services.base import BlobStorage
from ..validation import BuildFailed, UploadFailed
from .log_manager import LogForwarder

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def guess_content_type(path: Path) -> str:
    content_type, _ = mimetypes.guess_type(str(path))
    return content_type or DEFAULT_CONTENT_TYPE


class ArtifactUploader:
    """
    Uploads every file under an artifact root to blob storage.

    Uploads run concurrently without a cap. Once started, an upload is never
    cancelled: if the step is cancelled, the uploader waits for in-flight
    transfers to settle before propagating the cancellation.
    """

    def __init__(self, storage: BlobStorage, forwarder: LogForwarder,
                 project_uri: str, key_prefix: str = "__outputs"):
        self.storage = storage
        self.forwarder = forwarder
        self.project_uri = project_uri
        self.key_prefix = key_prefix
        self.completed = 0

    def destination_key(self, path: Path) -> str:
        return f"{self.key_prefix}/{self.project_uri}/{path.name}"

    def discover(self, artifact_root: Path) -> List[UploadTask]:
        """
        List every non-directory entry under the root, recursively and sorted.

        Args:
            artifact_root: Directory holding the build artifacts

        Returns:
            One UploadTask per file
        """
        files: List[Path] = []
        for dirpath, dirnames, filenames in os.walk(artifact_root):
            dirnames.sort()
            files.extend(Path(dirpath) / name for name in sorted(filenames))

        return [
            UploadTask(
                local_path=path,
                destination_key=self.destination_key(path),
                content_type=guess_content_type(path),
            )
            for path in files
        ]

    async def upload_all(self, artifact_root: Path) -> StepResult:
        """
        Upload every artifact and report the first rejected file, if any.

        Returns:
            Success, BuildFailed if the root is missing, or UploadFailed
            naming the first file whose transfer was rejected
        """
        artifact_root = Path(artifact_root)
        if not artifact_root.is_dir():
            logger.error(f"Artifact directory {artifact_root} not found")
            return StepResult.failure(
                BuildFailed("Build directory not found", details={"path": str(artifact_root)})
            )

        tasks = self.discover(artifact_root)
        total_files = len(tasks)
        self.completed = 0
        if not tasks:
            logger.warning(f"No artifacts found in {artifact_root}")
            return StepResult.success()

        logger.info(f"Starting upload of {total_files} files")
        failures: List[Tuple[UploadTask, Exception]] = []
        uploads = asyncio.gather(
            *(self._upload_one(task, total_files, failures) for task in tasks)
        )
        await self._wait_uninterruptible(uploads)

        if failures:
            first_task, first_error = failures[0]
            return StepResult.failure(
                UploadFailed(
                    f"Failed to upload {first_task.file_name}",
                    details={
                        "file": first_task.file_name,
                        "failedFiles": [task.file_name for task, _ in failures],
                        "originalError": str(first_error),
                    },
                )
            )

        logger.info(f"Uploaded {total_files} files")
        return StepResult.success()

    async def _wait_uninterruptible(self, uploads: asyncio.Future) -> None:
        cancelled = False
        while not uploads.done():
            try:
                await asyncio.shield(uploads)
            except asyncio.CancelledError:
                if not cancelled:
                    logger.warning("Upload step cancelled, waiting for in-flight uploads")
                cancelled = True
        if cancelled:
            raise asyncio.CancelledError()

    async def _upload_one(self, task: UploadTask, total_files: int,
                          failures: List[Tuple[UploadTask, Exception]]) -> None:
        try:
            await self.storage.upload(task.local_path, task.destination_key, task.content_type)
        except Exception as e:
            logger.error(f"Failed to upload {task.file_name}: {e}")
            failures.append((task, e))
            return

        # Increment and read with no await in between.
        self.completed += 1
        completed = self.completed
        await self.forwarder.emit(
            LogEvent.status(f"Upload progress: {completed}/{total_files} files")
        )
