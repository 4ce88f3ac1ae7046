"""
Sweep Scheduler

주기적으로 미완료 영화 처리
- 자막 대기 영화: 자동 수집 재시도 (실패해도 대기 상태 유지)
- 자막은 있는데 장면이 없는 영화: 분석 실행
"""

import logging
import threading

from apscheduler.schedulers.blocking import BlockingScheduler

from config.settings import SWEEP_INTERVAL_HOURS
from db import repository
from db.models import IngestState
from db.session import SessionLocal
from pipeline.orchestrator import IngestionOrchestrator

log = logging.getLogger(__name__)
_lock = threading.Lock()


def sweep_job(session_factory=SessionLocal, orchestrator_factory=IngestionOrchestrator) -> dict:
    """
    미완료 영화 1회 처리

    Returns:
        {"rescraped": 재수집 시도 수, "analyzed": 분석 시도 수, "completed": 완료 수}
    """
    stats = {"rescraped": 0, "analyzed": 0, "completed": 0}
    if not _lock.acquire(blocking=False):
        log.warning("Previous sweep still running: skipping this cycle")
        return stats

    try:
        log.info("=" * 80)
        log.info("Starting sweep cycle")
        log.info("=" * 80)

        session = session_factory()
        try:
            orchestrator = orchestrator_factory(session)

            paused = repository.list_by_status(session, IngestState.NEEDS_MANUAL_SUBTITLES)
            log.info("자막 대기 영화: %d편", len(paused))
            for movie in paused:
                try:
                    result = orchestrator.resume(movie.id)
                    stats["rescraped"] += 1
                    stats["completed"] += int(result.ok)
                except Exception:
                    log.exception("Sweep failed for movie_id=%d", movie.id)

            pending = repository.list_unanalyzed(session)
            log.info("분석 대기 영화: %d편", len(pending))
            for movie in pending:
                try:
                    result = orchestrator.resume(movie.id)
                    stats["analyzed"] += 1
                    stats["completed"] += int(result.ok)
                except Exception:
                    log.exception("Sweep failed for movie_id=%d", movie.id)
        finally:
            session.close()

        log.info("Sweep cycle complete: %s", stats)
        return stats

    finally:
        _lock.release()


def start_scheduler():
    """
    스케줄러 시작 (즉시 1회 실행 후 주기 실행)

    Returns:
        None
    """
    scheduler = BlockingScheduler()
    scheduler.add_job(
        sweep_job,
        "interval",
        hours=SWEEP_INTERVAL_HOURS,
        id="sweep_job",
        max_instances=1,
    )

    log.info(
        "Scheduler started: sweeping every %d hour(s)",
        SWEEP_INTERVAL_HOURS
    )

    sweep_job()
    scheduler.start()
