"""
State Machines

다단계 작업(Saga) 실행 상태 전이 관리.
"""

import logging
from enum import Enum

from core.types import SagaState

logger = logging.getLogger(__name__)


class StateMachineError(Exception):
    """상태 전이 오류"""
    pass


class StateMachine:
    """상태 머신 기본 클래스

    Args:
        initial_state: 초기 상태
        transitions: 허용된 전이 정의 {from_state: [to_states]}
        name: 머신 이름 (로깅용)
    """

    def __init__(
        self,
        initial_state: str | Enum,
        transitions: dict[str, list[str]],
        name: str = "StateMachine",
    ):
        self._state = initial_state.value if isinstance(initial_state, Enum) else initial_state
        self._transitions = transitions
        self._name = name
        self._history: list[tuple[str, str]] = []

    @property
    def state(self) -> str:
        """현재 상태"""
        return self._state

    def can_transition(self, to_state: str | Enum) -> bool:
        """전이 가능 여부 확인

        Args:
            to_state: 목표 상태

        Returns:
            전이 가능 여부
        """
        target = to_state.value if isinstance(to_state, Enum) else to_state
        allowed = self._transitions.get(self._state, [])
        return target in allowed

    def transition(self, to_state: str | Enum) -> str:
        """상태 전이

        Args:
            to_state: 목표 상태

        Returns:
            새 상태

        Raises:
            StateMachineError: 허용되지 않은 전이
        """
        target = to_state.value if isinstance(to_state, Enum) else to_state

        if not self.can_transition(target):
            allowed = self._transitions.get(self._state, [])
            raise StateMachineError(
                f"{self._name}: Cannot transition from {self._state} to {target}. "
                f"Allowed: {allowed}"
            )

        old_state = self._state
        self._state = target
        self._history.append((old_state, target))

        logger.debug(
            f"{self._name}: {old_state} → {target}",
        )

        return target

    @property
    def history(self) -> list[tuple[str, str]]:
        """상태 전이 이력"""
        return self._history.copy()


class SagaStateMachine(StateMachine):
    """Saga 상태 머신"""

    TRANSITIONS: dict[str, list[str]] = {
        "PENDING": ["RUNNING"],
        "RUNNING": ["COMPLETED", "COMPENSATING"],
        "COMPENSATING": ["COMPENSATED", "CRITICAL"],
    }

    def __init__(
        self,
        initial_state: str | SagaState = SagaState.PENDING,
        name: str = "SagaStateMachine",
    ):
        super().__init__(
            initial_state=initial_state,
            transitions=self.TRANSITIONS,
            name=name,
        )

    @property
    def is_terminal(self) -> bool:
        """종료 상태 여부"""
        return self._state in ("COMPLETED", "COMPENSATED", "CRITICAL")

    @property
    def needs_reconciliation(self) -> bool:
        """수동 정합 필요 여부"""
        return self._state == "CRITICAL"
