"""
Saga Runner

단일 DB 트랜잭션으로 묶이지 않는 다단계 작업을 순서대로 실행하고,
k 번째 단계가 실패하면 1..k-1 단계의 undo 를 역순으로 실행한다.

- 보상은 최선 노력: undo 하나가 실패해도 나머지 undo 를 모두 시도
- undo 실패가 하나라도 있으면 CompensationFailure (수동 정합 필요)
- 보상이 모두 성공하면 원래 예외를 그대로 다시 발생
- 자동 재시도 없음
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from core.domain.state_machines import SagaStateMachine
from core.errors import CompensationFailure
from core.types import SagaState

logger = logging.getLogger(__name__)


@dataclass
class SagaContext:
    """단계 간 공유 컨텍스트

    results 는 단계 이름 → do() 반환값.
    뒤 단계가 앞 단계에서 만든 장부 행 id 등을 읽을 때 사용.
    """

    operation: str
    results: dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, step_name: str) -> Any:
        return self.results[step_name]


StepAction = Callable[[SagaContext], Awaitable[Any]]


@dataclass
class SagaStep:
    """Saga 단계

    Attributes:
        name: 단계 이름 (로그/보상 실패 보고용, 작업 내 유일)
        do: 실행 함수
        undo: 보상 함수 (None 이면 되돌릴 것이 없는 단계)
    """

    name: str
    do: StepAction
    undo: StepAction | None = None


@dataclass
class SagaResult:
    """Saga 실행 결과 (성공 시에만 반환)"""

    operation: str
    state: str
    context: SagaContext
    completed_steps: list[str]


class SagaRunner:
    """Saga Runner

    사용 예시:
    ```python
    runner = SagaRunner()
    result = await runner.run("pay_wholesaler", [
        SagaStep("increment_debt", do=..., undo=...),
        SagaStep("append_wholesaler_tx", do=..., undo=...),
    ])
    tx_id = result.context["append_wholesaler_tx"].entry_id
    ```
    """

    def __init__(self) -> None:
        # 통계
        self._run_count = 0
        self._completed_count = 0
        self._compensated_count = 0
        self._critical_count = 0

    async def run(self, operation: str, steps: list[SagaStep]) -> SagaResult:
        """단계 순차 실행

        Args:
            operation: 작업 이름
            steps: 실행 순서대로의 단계 목록

        Returns:
            SagaResult (state=COMPLETED)

        Raises:
            CompensationFailure: 실패 후 보상까지 실패
            Exception: 실패 단계의 원래 예외 (보상 성공 시)
        """
        self._run_count += 1
        machine = SagaStateMachine(name=f"Saga[{operation}]")
        context = SagaContext(operation=operation)
        completed: list[SagaStep] = []

        machine.transition(SagaState.RUNNING)

        for step in steps:
            try:
                context.results[step.name] = await step.do(context)
            except Exception as e:
                logger.warning(
                    f"Saga step failed: {operation}.{step.name}",
                    extra={
                        "operation": operation,
                        "step": step.name,
                        "completed": [s.name for s in completed],
                        "error": str(e),
                    },
                )
                machine.transition(SagaState.COMPENSATING)
                await self._compensate(machine, context, completed, step, e)
                raise
            completed.append(step)

        machine.transition(SagaState.COMPLETED)
        self._completed_count += 1
        logger.debug(
            f"Saga completed: {operation}",
            extra={"steps": [s.name for s in completed]},
        )
        return SagaResult(
            operation=operation,
            state=machine.state,
            context=context,
            completed_steps=[s.name for s in completed],
        )

    async def _compensate(
        self,
        machine: SagaStateMachine,
        context: SagaContext,
        completed: list[SagaStep],
        failed_step: SagaStep,
        original_error: Exception,
    ) -> None:
        """완료된 단계 역순 보상

        Raises:
            CompensationFailure: undo 실패가 하나라도 있음
        """
        undo_errors: dict[str, BaseException] = {}

        for step in reversed(completed):
            if step.undo is None:
                continue
            try:
                await step.undo(context)
            except Exception as undo_error:
                # 나머지 undo 도 계속 시도
                undo_errors[step.name] = undo_error
                logger.error(
                    f"Compensation failed: {context.operation}.{step.name}",
                    extra={"step": step.name, "error": str(undo_error)},
                )

        if undo_errors:
            machine.transition(SagaState.CRITICAL)
            self._critical_count += 1
            logger.critical(
                f"CRITICAL INCONSISTENCY: {context.operation} left ledgers in disagreement",
                extra={
                    "operation": context.operation,
                    "failed_step": failed_step.name,
                    "undo_failures": sorted(undo_errors),
                },
            )
            raise CompensationFailure(
                operation=context.operation,
                failed_step=failed_step.name,
                original_error=original_error,
                undo_errors=undo_errors,
            ) from original_error

        machine.transition(SagaState.COMPENSATED)
        self._compensated_count += 1
        logger.info(
            f"Saga compensated: {context.operation}",
            extra={
                "failed_step": failed_step.name,
                "undone": [s.name for s in reversed(completed) if s.undo is not None],
            },
        )

    def get_stats(self) -> dict[str, Any]:
        """통계 반환"""
        return {
            "run_count": self._run_count,
            "completed_count": self._completed_count,
            "compensated_count": self._compensated_count,
            "critical_count": self._critical_count,
        }
