"""
도메인 예외

재시도 가능 여부(retryable)로 두 그룹으로 나뉜다.
- ValidationError, StorageError, ReferentialIntegrityError: 입력 수정 후 재시도 가능
- CompensationFailure, PartialRestoreFailure: 해당 작업 종료, 운영자 수동 정합 필요
"""

from typing import Any


class LedgerError(Exception):
    """장부 엔진 예외 기본 클래스"""

    retryable: bool = True


class ValidationError(LedgerError):
    """잘못된 입력 (0 이하 금액, 부채 초과 수금 등)"""

    pass


class StorageError(LedgerError):
    """단일 읽기/쓰기 실패

    단일 행 쓰기이므로 부분 반영되지 않는다.
    """

    pass


class ReferentialIntegrityError(LedgerError):
    """스냅샷 참조 무결성 사전 검사 실패

    복원은 아무 변경 없이 중단된다.

    Args:
        violations: 위반 내역 목록 (table, field, value, ...)
    """

    def __init__(self, violations: list[dict[str, Any]]):
        self.violations = violations
        preview = ", ".join(
            f"{v['table']}.{v['field']}={v['value']}" for v in violations[:5]
        )
        more = f" (+{len(violations) - 5} more)" if len(violations) > 5 else ""
        super().__init__(
            f"Snapshot is not referentially closed: {preview}{more}"
        )


class CompensationFailure(LedgerError):
    """다단계 작업 실패 후 보상(롤백)까지 실패 - 치명적 불일치

    장부 간 불일치가 확정된 상태. 수동 정합 필요.

    Args:
        operation: 작업 이름
        failed_step: 최초 실패 단계 이름
        original_error: 최초 실패 예외
        undo_errors: 실패한 보상 단계 이름 → 예외
    """

    retryable = False

    def __init__(
        self,
        operation: str,
        failed_step: str,
        original_error: BaseException,
        undo_errors: dict[str, BaseException],
    ):
        self.operation = operation
        self.failed_step = failed_step
        self.original_error = original_error
        self.undo_errors = undo_errors
        super().__init__(
            f"CRITICAL INCONSISTENCY in {operation}: step '{failed_step}' failed "
            f"({original_error}) and compensation failed for "
            f"{sorted(undo_errors)}; manual reconciliation required"
        )


class PartialRestoreFailure(LedgerError):
    """청크 INSERT 실패로 복원이 중간에 중단됨

    삭제 단계는 되돌릴 수 없으므로 이미 복원된 테이블은 그대로 남는다.

    Args:
        table: 실패한 테이블
        restored_tables: 실패 이전에 복원 완료된 테이블
        inserted_rows: 실패 테이블에서 이미 들어간 행 수
        cause: 원인 예외
    """

    retryable = False

    def __init__(
        self,
        table: str,
        restored_tables: list[str],
        inserted_rows: int,
        cause: BaseException,
    ):
        self.table = table
        self.restored_tables = restored_tables
        self.inserted_rows = inserted_rows
        self.cause = cause
        super().__init__(
            f"Restore aborted while inserting '{table}' after {inserted_rows} rows "
            f"({cause}); already restored: {restored_tables}. "
            f"Database is partially restored"
        )
