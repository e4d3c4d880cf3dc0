class PipelineError(Exception):
    """Stage-scoped failure raised by the chunking and frame pipelines."""

    stage = "pipeline"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class StorageError(Exception):
    pass


class DownloadFailure(PipelineError):
    stage = "download"


class ExtractionFailure(PipelineError):
    stage = "extraction"


class ChunkPlanFailure(PipelineError):
    stage = "chunking"


class UploadFailure(PipelineError):
    stage = "upload"

    def __init__(self, message: str, failed_indices: list[int]):
        super().__init__(message, details={"failed_indices": list(failed_indices)})
        self.failed_indices = list(failed_indices)


class SourceError(PipelineError):
    stage = "frame_capture"


class PersistFailure(PipelineError):
    stage = "persist"
