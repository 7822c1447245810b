"""Artifact archive on the local filesystem."""

from __future__ import annotations

import asyncio
import json
import shutil
from pathlib import Path

import structlog

from deployer.domain.errors import ConfigurationError
from deployer.domain.models.build import BuildRecord, check_job_name
from deployer.domain.models.environment import DeliveryMethod
from deployer.domain.ports.services import ArtifactArchive


logger = structlog.get_logger(__name__)

MANIFEST_NAME = "manifest.json"


class FilesystemArtifactArchive(ArtifactArchive):
    """Keeps exactly one artifact per (job, build number) under ``root``.

    Each build directory holds a ``manifest.json`` naming what was
    archived. Jar builds are copied in full next to it so a later rollback
    does not depend on the build workspace; container builds only record
    the image reference, the image itself lives in the registry or the
    local runtime. The manifest is written last, so a build directory
    without one was never completely archived.

    Archived builds are immutable: storing the same build twice is
    refused.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    def build_dir(self, job: str, build_number: int) -> Path:
        check_job_name(job)
        return self._root / job / str(int(build_number))

    async def store(self, record: BuildRecord) -> str:
        return await asyncio.to_thread(self._store, record)

    async def fetch(self, job: str, build_number: int) -> str:
        return await asyncio.to_thread(self._fetch, job, build_number)

    def _store(self, record: BuildRecord) -> str:
        target_dir = self.build_dir(record.job, record.build_number)
        target_dir.parent.mkdir(parents=True, exist_ok=True)
        try:
            target_dir.mkdir()
        except FileExistsError as exc:
            raise ConfigurationError(
                f"Build {record.job}#{record.build_number} is already archived"
            ) from exc

        try:
            manifest = {"method": record.method.value, "commit_id": record.commit_id}
            if record.method == DeliveryMethod.CONTAINER:
                manifest["image"] = record.artifact_reference
                locator = str(target_dir / MANIFEST_NAME)
            else:
                source = Path(record.artifact_reference)
                if not source.is_file():
                    raise ConfigurationError(f"Cannot archive missing artifact {source}")
                target = target_dir / source.name
                shutil.copy2(source, target)
                manifest["file"] = target.name
                locator = str(target)
            (target_dir / MANIFEST_NAME).write_text(json.dumps(manifest))
        except BaseException:
            shutil.rmtree(target_dir, ignore_errors=True)
            raise

        logger.info(
            "artifact_archived",
            job=record.job,
            build_number=record.build_number,
            locator=locator,
        )
        return locator

    def _fetch(self, job: str, build_number: int) -> str:
        build_dir = self.build_dir(job, build_number)
        manifest_path = build_dir / MANIFEST_NAME
        if not manifest_path.is_file():
            raise ConfigurationError(f"Nothing archived for {job}#{build_number}")

        manifest = json.loads(manifest_path.read_text())
        if manifest.get("method") == DeliveryMethod.CONTAINER.value:
            image = manifest.get("image", "")
            if not image:
                raise ConfigurationError(f"Manifest of {job}#{build_number} has no image")
            return image

        blob = build_dir / manifest.get("file", "")
        if not manifest.get("file") or blob.parent != build_dir or not blob.is_file():
            raise ConfigurationError(f"Archived artifact of {job}#{build_number} is missing")
        return str(blob)
