"""파이프라인 단계 오류.

모든 오류는 실패한 단계(step)와 재시도 가능 여부(retryable)를 가진다.
중복 영화 / 자막 미발견은 예외가 아니라 결과 상태로 보고된다
(IngestResult.duplicate_of, IngestState.NEEDS_MANUAL_SUBTITLES).
"""


class PipelineError(Exception):
    retryable: bool = False
    default_step: str = ""

    def __init__(self, message: str, *, step: str | None = None, retryable: bool | None = None):
        super().__init__(message)
        self.message = message
        self.step = step or self.default_step
        if retryable is not None:
            self.retryable = retryable

    def __str__(self) -> str:
        return self.message


class InvalidIdentifier(PipelineError):
    default_step = "VALIDATING"


class MetadataUnavailable(PipelineError):
    default_step = "FETCHING_METADATA"
    retryable = True


class SubtitleCorrupted(PipelineError):
    default_step = "ACQUIRING_SUBTITLES"


class AnalysisUnavailable(PipelineError):
    """LLM 제공자 호출 실패 (재시도 소진 포함). 같은 입력으로 다시 시도 가능."""
    default_step = "ANALYZING"
    retryable = True


class MalformedAnalysisResponse(PipelineError):
    default_step = "ANALYZING"


class SchemaInvariantViolation(PipelineError):
    default_step = "VALIDATING_ANALYSIS"


class PersistenceError(PipelineError):
    default_step = "ANALYZING"
