"""Unit tests for build records."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from deployer.domain.models.build import BuildAlreadyFinishedError, BuildRecord, BuildResult


class TestBuildRecord:
    def test_defaults(self) -> None:
        record = BuildRecord(job="petclinic", build_number=1)
        assert record.result == BuildResult.PENDING
        assert not record.is_rollback_candidate

    def test_build_number_positive(self) -> None:
        with pytest.raises(ValidationError):
            BuildRecord(job="petclinic", build_number=0)

    def test_mark_success_sets_locator(self) -> None:
        record = BuildRecord(job="petclinic", build_number=3, artifact_reference="target/app.jar")
        record.mark_success("/archive/petclinic/3/app.jar")
        assert record.result == BuildResult.SUCCESS
        assert record.locator == "/archive/petclinic/3/app.jar"
        assert record.is_rollback_candidate

    def test_mark_failed(self) -> None:
        record = BuildRecord(job="petclinic", build_number=3)
        record.mark_failed()
        assert record.result == BuildResult.FAILED
        assert not record.is_rollback_candidate

    def test_result_is_final(self) -> None:
        record = BuildRecord(job="petclinic", build_number=3)
        record.mark_failed()
        with pytest.raises(BuildAlreadyFinishedError):
            record.mark_success()
