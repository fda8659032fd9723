"""Statement wrappers: DB-API cursor plus logging, callback and buffering layers."""

from sqlspine.statements.base import (
    FETCH_ASSOC,
    FETCH_NUM,
    DbapiStatement,
    Statement,
    StatementDecorator,
)
from sqlspine.statements.buffered import BufferedStatement
from sqlspine.statements.callback import CallbackStatement, chain
from sqlspine.statements.logging import LoggingStatement

__all__ = [
    "FETCH_ASSOC",
    "FETCH_NUM",
    "Statement",
    "DbapiStatement",
    "StatementDecorator",
    "BufferedStatement",
    "CallbackStatement",
    "LoggingStatement",
    "chain",
]
