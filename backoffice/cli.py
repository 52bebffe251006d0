"""
Backoffice 운영 명령

실행 방법:
    python -m backoffice init-db
    python -m backoffice export --output backups/snapshot.json
    python -m backoffice restore backups/snapshot.json [--check-only]
    python -m backoffice recalc [--ledger customer] [--owner <id>]
    python -m backoffice audit [--fix]

종료 코드:
    0 성공
    1 설정 오류 / 장부 불일치 발견
    2 입력/참조 오류 (수정 후 재실행 가능)
    3 부분 복원 / 보상 실패 (수동 정합 필요)
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema
from backoffice.audit import LedgerAuditor
from backoffice.backup.exporter import SnapshotExporter
from backoffice.backup.restorer import SnapshotRestorer
from backoffice.backup.snapshot import load_snapshot, save_snapshot
from core.config.loader import AppConfig, ConfigLoadError, get_settings
from core.constants import Paths
from core.errors import LedgerError
from core.ledger.recalculator import BalanceRecalculator
from core.ledger.store import LedgerStore
from core.ledger.types import LEDGERS
from core.logging import setup_logging
from core.types import LedgerKind

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_RETRYABLE = 2
EXIT_CRITICAL = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="backoffice",
        description="장부 정합성 / 백업 복원 도구",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="settings.yaml 경로 (기본: config/settings.yaml)",
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="DB 경로 (설정 파일 값 대신 사용)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="스키마 생성")

    export = sub.add_parser("export", help="전체 스냅샷 내보내기")
    export.add_argument(
        "--output",
        type=Path,
        default=None,
        help="저장 경로 (기본: backups/snapshot_<UTC시각>.json)",
    )

    restore = sub.add_parser("restore", help="스냅샷 복원")
    restore.add_argument("snapshot", type=Path, help="스냅샷 JSON 경로")
    restore.add_argument(
        "--check-only",
        action="store_true",
        help="참조 사전 검사만 실행 (변경 없음)",
    )
    restore.add_argument("--chunk-size", type=int, default=None, help="청크당 INSERT 행 수")

    recalc = sub.add_parser("recalc", help="누적 잔액 재계산")
    recalc.add_argument(
        "--ledger",
        choices=[kind.value for kind in LedgerKind],
        default=None,
        help="대상 장부 (기본: 전체)",
    )
    recalc.add_argument("--owner", default=None, help="대상 소유자 id (--ledger 필요)")

    audit = sub.add_parser("audit", help="장부 불일치 검사 (읽기 전용)")
    audit.add_argument(
        "--fix",
        action="store_true",
        help="불일치가 있는 소유자 재계산",
    )

    return parser


def _stores(db: SQLiteAdapter) -> dict[LedgerKind, LedgerStore]:
    return {kind: LedgerStore(db, spec) for kind, spec in LEDGERS.items()}


async def cmd_init_db(db: SQLiteAdapter, args: argparse.Namespace, config: AppConfig) -> int:
    await init_schema(db)
    return EXIT_OK


async def cmd_export(db: SQLiteAdapter, args: argparse.Namespace, config: AppConfig) -> int:
    snapshot = await SnapshotExporter(db).export()
    output = args.output
    if output is None:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        output = Paths.BACKUPS_DIR / f"snapshot_{stamp}.json"
    save_snapshot(snapshot, output)
    print(f"Snapshot written: {output}")
    return EXIT_OK


async def cmd_restore(db: SQLiteAdapter, args: argparse.Namespace, config: AppConfig) -> int:
    snapshot = load_snapshot(args.snapshot)
    restorer = SnapshotRestorer(db, chunk_size=args.chunk_size or config.restore_chunk_size)

    if args.check_only:
        await restorer.precheck(snapshot)
        print("Pre-check passed")
        return EXIT_OK

    report = await restorer.restore(snapshot)
    print(f"Restored tables: {', '.join(report.restored_tables) or '-'}")
    print(f"Inserted rows: {report.total_inserted}, dropped rows: {report.total_dropped}")
    if report.untouched_tables:
        print(f"Untouched tables: {', '.join(report.untouched_tables)}")
    if report.skipped_tables:
        print(f"Skipped tables (not in schema): {', '.join(report.skipped_tables)}")
    return EXIT_OK


async def cmd_recalc(db: SQLiteAdapter, args: argparse.Namespace, config: AppConfig) -> int:
    if args.owner and not args.ledger:
        print("--owner requires --ledger", file=sys.stderr)
        return EXIT_RETRYABLE

    stores = _stores(db)
    recalculator = BalanceRecalculator(stores)
    kinds = [LedgerKind(args.ledger)] if args.ledger else list(LedgerKind)

    changed = 0
    for kind in kinds:
        owners = [args.owner] if args.owner else await stores[kind].list_owner_ids()
        for owner_id in owners:
            result = await recalculator.recalculate(kind, owner_id)
            changed += result.changed_count

    print(f"Recalculated: {changed} running balances changed")
    return EXIT_OK


async def cmd_audit(db: SQLiteAdapter, args: argparse.Namespace, config: AppConfig) -> int:
    stores = _stores(db)
    auditor = LedgerAuditor(stores)
    drifts = await auditor.audit_all()

    for drift in drifts:
        print(f"[{drift.ledger.value}] {drift.owner_id}: {drift.description}")
    if not drifts:
        print("No drift detected")
        return EXIT_OK

    if not args.fix:
        return EXIT_FAILURE

    recalculator = BalanceRecalculator(stores)
    for kind, owner_id in sorted({(d.ledger, d.owner_id) for d in drifts}):
        await recalculator.recalculate(kind, owner_id)
    remaining = await auditor.audit_all()
    print(f"Recalculated drifting owners, remaining drift: {len(remaining)}")
    return EXIT_OK if not remaining else EXIT_FAILURE


COMMANDS = {
    "init-db": cmd_init_db,
    "export": cmd_export,
    "restore": cmd_restore,
    "recalc": cmd_recalc,
    "audit": cmd_audit,
}


async def run(args: argparse.Namespace) -> int:
    """명령 실행 (예외 → 종료 코드)"""
    try:
        config = get_settings(args.config).config
    except ConfigLoadError as e:
        logger.error(f"설정 로드 실패: {e}")
        return EXIT_FAILURE

    level = logging.getLevelName(config.log_level)
    setup_logging("backoffice", console_level=level, file_level=level)

    db_path = args.db or config.db_path
    logger.info(f"DB: {db_path}")

    try:
        async with SQLiteAdapter(db_path) as db:
            if args.command != "init-db":
                await init_schema(db)
            return await COMMANDS[args.command](db, args, config)
    except LedgerError as e:
        logger.error(f"{args.command} 실패: {e}")
        print(str(e), file=sys.stderr)
        return EXIT_RETRYABLE if e.retryable else EXIT_CRITICAL


def main(argv: list[str] | None = None) -> int:
    """CLI 메인 함수"""
    args = build_parser().parse_args(argv)
    setup_logging("backoffice")
    return asyncio.run(run(args))
