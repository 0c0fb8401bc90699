"""Database layer."""

from bpmworker.db.base import Base, check_db, close_db, configure, get_engine, get_session
from bpmworker.db.repositories import AccountRepository, DraftRepository
from bpmworker.db.scripts import SqlDeletionScriptRunner, render_script, script_parameters
from bpmworker.db.tables import AccountTable, ProviderAssetDraftTable

__all__ = [
    "AccountRepository",
    "AccountTable",
    "Base",
    "DraftRepository",
    "ProviderAssetDraftTable",
    "SqlDeletionScriptRunner",
    "check_db",
    "close_db",
    "configure",
    "get_engine",
    "get_session",
    "render_script",
    "script_parameters",
]
