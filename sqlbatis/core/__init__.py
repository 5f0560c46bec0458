"""Core statement, cache, parameter and result components."""

from sqlbatis.core.cache import NULL_CACHE_KEY, Cache, CacheKey, PerpetualCache
from sqlbatis.core.parameters import (
    ParameterBinder,
    ParameterStyle,
    PreparedStatement,
    ResultSet,
    StatementPreparer,
    parse_template,
)
from sqlbatis.core.result import ResultMapper
from sqlbatis.core.statement import CommandKind, StatementDescriptor, StatementRegistry

__all__ = (
    "NULL_CACHE_KEY",
    "Cache",
    "CacheKey",
    "CommandKind",
    "ParameterBinder",
    "ParameterStyle",
    "PerpetualCache",
    "PreparedStatement",
    "ResultMapper",
    "ResultSet",
    "StatementDescriptor",
    "StatementPreparer",
    "StatementRegistry",
    "parse_template",
)
