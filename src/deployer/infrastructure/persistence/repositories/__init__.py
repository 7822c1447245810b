"""Repository implementations."""

from deployer.infrastructure.persistence.repositories.build_repo import (
    SqlBuildRecordRepository,
)
from deployer.infrastructure.persistence.repositories.file_repo import (
    FileBuildRecordRepository,
)


__all__ = [
    "FileBuildRecordRepository",
    "SqlBuildRecordRepository",
]
