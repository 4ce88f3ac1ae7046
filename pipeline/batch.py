"""여러 영화 동시 수집: 영화당 워커 1개, 워커마다 독립 세션."""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable

from sqlalchemy.orm import Session

from config.settings import INGEST_WORKERS
from db.models import IngestState
from db.session import SessionLocal
from pipeline.identifier import dedupe_identifiers
from pipeline.orchestrator import IngestionOrchestrator, IngestResult, StepRecord

logger = logging.getLogger(__name__)


def ingest_many(
    raw_identifiers: list[str],
    *,
    workers: int = INGEST_WORKERS,
    session_factory: Callable[[], Session] = SessionLocal,
    orchestrator_factory: Callable[[Session], IngestionOrchestrator] = IngestionOrchestrator,
) -> dict[str, IngestResult]:
    """정규 ID 기준 중복 제거 후 병렬 수집.

    Returns:
        {정규 IMDb ID 또는 잘못된 원본 입력: IngestResult}
    """
    imdb_ids, invalid = dedupe_identifiers(raw_identifiers)
    results: dict[str, IngestResult] = {}
    for raw, reason in invalid.items():
        result = IngestResult(state=IngestState.FAILED, reason=f"InvalidIdentifier: {reason}")
        result.failed_step = IngestState.VALIDATING.value
        result.steps.append(StepRecord(IngestState.VALIDATING.value, "failed", reason))
        results[raw] = result

    def _work(imdb_id: str) -> IngestResult:
        session = session_factory()
        try:
            return orchestrator_factory(session).ingest(imdb_id)
        finally:
            session.close()

    logger.info("배치 수집 시작: %d편 (workers=%d, 잘못된 입력 %d건)", len(imdb_ids), workers, len(invalid))
    with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
        futures = {pool.submit(_work, imdb_id): imdb_id for imdb_id in imdb_ids}
        for future in as_completed(futures):
            imdb_id = futures[future]
            try:
                results[imdb_id] = future.result()
            except Exception as e:
                logger.exception("배치 워커 오류: %s", imdb_id)
                result = IngestResult(state=IngestState.FAILED, imdb_id=imdb_id, reason=f"{type(e).__name__}: {e}")
                results[imdb_id] = result

    done = sum(1 for r in results.values() if r.ok)
    logger.info("배치 수집 완료: 성공 %d / 전체 %d", done, len(results))
    return results
