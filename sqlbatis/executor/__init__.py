from sqlbatis.executor._base import EXECUTION_PLACEHOLDER, Executor, ExecutorStrategy, ExecutorType
from sqlbatis.executor._strategies import BaseStrategy, ReuseStrategy, SimpleStrategy

__all__ = (
    "EXECUTION_PLACEHOLDER",
    "BaseStrategy",
    "Executor",
    "ExecutorStrategy",
    "ExecutorType",
    "ReuseStrategy",
    "SimpleStrategy",
)
