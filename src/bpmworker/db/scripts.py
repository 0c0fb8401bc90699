"""Deletion SQL script rendering and execution.

The script is a trusted, operator-controlled template. Placeholders are
replaced textually and the result is executed verbatim; nothing is bound
as a query parameter.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from bpmworker.config import settings
from bpmworker.db.base import get_engine
from bpmworker.models import DeletionContext

logger = logging.getLogger(__name__)


def _literal(value: bool) -> str:
    return "true" if value else "false"


def script_parameters(ctx: DeletionContext) -> dict[str, str]:
    pids = ",".join(f"'{pid}'" for pid in sorted(ctx.collected_asset_ids))
    return {
        "accountId": str(ctx.user_id),
        "accountKey": str(ctx.user_key),
        # An empty IN list is invalid SQL; NULL matches no row
        "pid": pids or "NULL",
        "accountDeleted": _literal(ctx.account_deleted),
        "contractsDeleted": _literal(ctx.contracts_deleted),
    }


def render_script(template: str, ctx: DeletionContext) -> str:
    """Substitute `{name}` placeholders in the template."""
    sql = template
    for name, value in script_parameters(ctx).items():
        sql = sql.replace("{" + name + "}", value)
    return sql


class SqlDeletionScriptRunner:
    """Runs the account deletion script in a single transaction."""

    def __init__(
        self,
        script_path: Optional[Path] = None,
        engine_provider: Callable[[], AsyncEngine] = get_engine,
    ):
        self.script_path = script_path or settings.deletion_script_path
        self.engine_provider = engine_provider
        self._template: Optional[str] = None

    @property
    def template(self) -> str:
        if self._template is None:
            self._template = self.script_path.read_text(encoding="utf-8")
        return self._template

    async def run(self, ctx: DeletionContext) -> None:
        sql = render_script(self.template, ctx)
        engine = self.engine_provider()

        async with engine.connect() as conn:
            raw = await conn.get_raw_connection()
            driver = raw.driver_connection
            if conn.dialect.name == "sqlite":
                await driver.executescript(f"BEGIN;\n{sql}\nCOMMIT;")
            else:
                async with driver.transaction():
                    await driver.execute(sql)

        logger.info(
            f"Deleted database records. [accountId={ctx.user_id}, userKey={ctx.user_key}, "
            f"pids={len(ctx.collected_asset_ids)}]"
        )
