"""
Posting 모듈

업무 작업을 장부 쓰기/집계 증가 단계의 Saga 로 실행
"""

from backoffice.posting.engine import PostingEngine, PostingResult
from backoffice.posting.saga import SagaContext, SagaResult, SagaRunner, SagaStep

__all__ = [
    "PostingEngine",
    "PostingResult",
    "SagaRunner",
    "SagaStep",
    "SagaContext",
    "SagaResult",
]
