"""
Backup 모듈

전체 엔티티 그래프 스냅샷 내보내기 / 참조 검사 후 복원
"""

from backoffice.backup.exporter import SnapshotExporter
from backoffice.backup.restorer import RestoreReport, SnapshotRestorer
from backoffice.backup.snapshot import Snapshot, load_snapshot, save_snapshot

__all__ = [
    "Snapshot",
    "SnapshotExporter",
    "SnapshotRestorer",
    "RestoreReport",
    "load_snapshot",
    "save_snapshot",
]
