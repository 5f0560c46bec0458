"""SQLBatis: Mapper-interface data access over DB-API connections."""

from sqlbatis import adapters, core, exceptions, executor, loader, utils
from sqlbatis.__metadata__ import __version__
from sqlbatis.binding import MapperProxy, MapperRegistry, mapper_namespace
from sqlbatis.config import DatabaseConfigProtocol, NoPoolSyncConfig
from sqlbatis.configuration import Configuration
from sqlbatis.core.cache import NULL_CACHE_KEY, CacheKey, PerpetualCache
from sqlbatis.core.parameters import ParameterBinder, ParameterStyle, StatementPreparer
from sqlbatis.core.result import ResultMapper
from sqlbatis.core.statement import CommandKind, StatementDescriptor, StatementRegistry
from sqlbatis.exceptions import (
    CacheError,
    ConfigurationError,
    ExecutionError,
    MappingError,
    SQLBatisError,
    SQLFileNotFoundError,
    SQLFileParseError,
    StateError,
)
from sqlbatis.executor import Executor, ExecutorType
from sqlbatis.loader import SQLFile, SQLFileLoader
from sqlbatis.plugin import Interceptor, InterceptorChain, Invocation, Plugin, SlowQueryInterceptor
from sqlbatis.session import SqlSession, SqlSessionFactory

__all__ = (
    "NULL_CACHE_KEY",
    "CacheError",
    "CacheKey",
    "CommandKind",
    "Configuration",
    "ConfigurationError",
    "DatabaseConfigProtocol",
    "ExecutionError",
    "Executor",
    "ExecutorType",
    "Interceptor",
    "InterceptorChain",
    "Invocation",
    "MapperProxy",
    "MapperRegistry",
    "MappingError",
    "NoPoolSyncConfig",
    "ParameterBinder",
    "ParameterStyle",
    "PerpetualCache",
    "Plugin",
    "ResultMapper",
    "SQLBatisError",
    "SQLFile",
    "SQLFileLoader",
    "SQLFileNotFoundError",
    "SQLFileParseError",
    "SlowQueryInterceptor",
    "SqlSession",
    "SqlSessionFactory",
    "StateError",
    "StatementDescriptor",
    "StatementPreparer",
    "StatementRegistry",
    "__version__",
    "adapters",
    "core",
    "exceptions",
    "executor",
    "loader",
    "mapper_namespace",
    "utils",
)
