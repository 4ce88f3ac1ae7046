"""
TinyViewers Ingestion Entry Point

영화 수집 / 분석 / 감사 CLI
"""

import argparse
import logging
import sys
from pathlib import Path

from db.session import init_db, SessionLocal

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
log = logging.getLogger(__name__)


def _print_result(result) -> None:
    print("\n" + "=" * 80)
    print(f"{result.imdb_id or '-'}  movie_id={result.movie_id}  {result.title or ''}")
    print("=" * 80)
    for step in result.steps:
        mark = {"ok": "✓", "paused": "…", "duplicate": "=", "failed": "✗"}.get(step.status, "?")
        print(f"  {mark} {step.step:<22} {step.message}")
    print(f"\nState: {result.state.value}")
    if result.duplicate_of:
        print(f"Already exists as movie_id={result.duplicate_of}")
    elif result.reason:
        print(f"Reason: {result.reason}")
    if result.overall_scores:
        print(f"Scores: {result.overall_scores}  scenes={result.scenes_count}")
    if result.paused:
        print(f"Upload subtitles with: python main.py upload-subtitles {result.movie_id} <file>")
    print()


def cmd_ingest(args) -> int:
    from pipeline.batch import ingest_many
    from pipeline.orchestrator import IngestionOrchestrator

    if len(args.identifiers) == 1:
        with SessionLocal() as session:
            result = IngestionOrchestrator(session).ingest(args.identifiers[0])
        _print_result(result)
        return 0 if result.ok or result.paused else 1

    results = ingest_many(args.identifiers, workers=args.workers)
    for result in results.values():
        _print_result(result)
    return 0 if all(r.ok or r.paused for r in results.values()) else 1


def _run_on_movie(args, action: str) -> int:
    from pipeline.orchestrator import IngestionOrchestrator

    with SessionLocal() as session:
        orchestrator = IngestionOrchestrator(session)
        result = getattr(orchestrator, action)(args.movie_id)
    _print_result(result)
    return 0 if result.ok or result.paused else 1


def cmd_upload(args) -> int:
    from pipeline.errors import SubtitleCorrupted
    from pipeline.orchestrator import IngestionOrchestrator

    if args.file == "-":
        text, source = sys.stdin.read(), "manual_text"
    else:
        text = Path(args.file).read_text(encoding="utf-8-sig", errors="replace")
        source = "manual_file"

    with SessionLocal() as session:
        try:
            result = IngestionOrchestrator(session).upload_subtitles(args.movie_id, text, source)
        except SubtitleCorrupted as e:
            print(f"Subtitle rejected: {e}. Please upload a valid .srt/.vtt file.")
            return 2
    _print_result(result)
    return 0 if result.ok else 1


def cmd_audit(args) -> int:
    from analyzer.consistency import audit_all

    with SessionLocal() as session:
        audits = audit_all(session)

    if not audits:
        print("No consistency problems found.")
        return 0
    for audit in audits:
        print(f"\n[{audit.movie_id}] {audit.imdb_id} {audit.title}")
        for v in audit.report.violations:
            print(f"  ✗ {v}")
        if args.verbose:
            for w in audit.report.warnings:
                print(f"  ! {w}")
    return 1 if any(a.report.violations for a in audits) else 0


def cmd_repair(args) -> int:
    from analyzer.repair import repair_scores

    with SessionLocal() as session:
        repairs = repair_scores(session, apply=args.apply)

    for r in repairs:
        print(f"[{r.movie_id}] {r.imdb_id} {r.title}: {r.before} -> {r.after} ({r.rule})")
    print(f"\n{len(repairs)} movie(s) {'repaired' if args.apply else 'would be repaired (dry-run, use --apply)'}")
    return 0


def cmd_history(args) -> int:
    from db import repository

    with SessionLocal() as session:
        runs = repository.list_analysis_runs(session, args.movie_id)
    if not runs:
        print("No analysis history.")
        return 0
    for run in runs:
        print(f"{run.created_at:%Y-%m-%d %H:%M}  scenes={run.scenes_count:<3} "
              f"scores={run.age_scores}  model={run.model_name}")
    return 0


def cmd_list_backends(args) -> int:
    from config.settings import ENABLED_BACKENDS
    from subtitles.plugin_manager import BackendRegistry

    BackendRegistry.auto_discover('subtitles')
    backends = BackendRegistry.list_backends()

    print("\n" + "=" * 80)
    print("Available Subtitle Backends")
    print("=" * 80)
    for info in backends:
        status = "ENABLED" if info['enabled'] else "DISABLED"
        print(f"\n[{info['name']}] ({status})")
        print(f"  Class: {info['class_name']}")
        print(f"  Description: {info['description']}")
    print("\n" + "=" * 80)
    print(f"Order (ENABLED_BACKENDS): {','.join(s.strip() for s in ENABLED_BACKENDS if s.strip())}")
    print("=" * 80 + "\n")
    return 0


def cmd_schedule(args) -> int:
    from scheduler import start_scheduler

    log.info("Starting scheduler…")
    start_scheduler()
    return 0


def cmd_init_db(args) -> int:
    log.info("Initializing database…")
    init_db()
    log.info("Done.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="TinyViewers movie ingestion pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py ingest https://www.imdb.com/title/tt0398286/
  python main.py ingest tt0398286 tt2294629 --workers 2
  python main.py upload-subtitles 12 movie.srt
  python main.py resume 12               # retry the failed/paused step
  python main.py start-over 12           # restart from subtitle acquisition
  python main.py repair-scores --apply
        """
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("ingest", help="Ingest one or more movies by IMDb URL or ID")
    p.add_argument("identifiers", nargs="+")
    p.add_argument("--workers", type=int, default=None, help="Parallel workers for batches")
    p.set_defaults(func=cmd_ingest)

    for name, action, help_text in (
        ("resume", "resume", "Retry the current step of a movie"),
        ("reanalyze", "reanalyze", "Delete scenes and run the analysis again"),
        ("start-over", "start_over", "Drop subtitles/scenes/scores and restart"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("movie_id", type=int)
        p.set_defaults(func=lambda a, _action=action: _run_on_movie(a, _action))

    p = sub.add_parser("upload-subtitles", help="Upload a subtitle file ('-' for stdin)")
    p.add_argument("movie_id", type=int)
    p.add_argument("file")
    p.set_defaults(func=cmd_upload)

    p = sub.add_parser("audit", help="Check score/flag consistency of all movies")
    p.add_argument("-v", "--verbose", action="store_true", help="Also show policy warnings")
    p.set_defaults(func=cmd_audit)

    p = sub.add_parser("repair-scores", help="Propose (or apply) heuristic score repairs")
    p.add_argument("--apply", action="store_true", help="Write repaired scores (default: dry-run)")
    p.set_defaults(func=cmd_repair)

    p = sub.add_parser("history", help="Show analysis runs of a movie")
    p.add_argument("movie_id", type=int)
    p.set_defaults(func=cmd_history)

    sub.add_parser("list-backends", help="List subtitle backends").set_defaults(func=cmd_list_backends)
    sub.add_parser("schedule", help="Run periodic sweeps").set_defaults(func=cmd_schedule)
    sub.add_parser("init-db", help="Create database tables").set_defaults(func=cmd_init_db)
    return parser


def main(argv=None) -> int:
    """메인 진입점"""
    args = build_parser().parse_args(argv)
    if getattr(args, "workers", None) is None and args.command == "ingest":
        from config.settings import INGEST_WORKERS
        args.workers = INGEST_WORKERS
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
