from archiver.progress import ProgressRegistry
from archiver.coordinator import (
    ArchiveCoordinator,
    ArchiveRequest,
    ArchiveResult,
    PipelineState,
)
