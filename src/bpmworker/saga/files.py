"""File system teardown for a deleted account."""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Optional

from bpmworker.config import Settings, settings as default_settings
from bpmworker.models import DeletionContext

logger = logging.getLogger(__name__)


def delete_quietly(path: Path) -> bool:
    """Delete a file, symlink or directory tree. Missing paths are ignored."""
    try:
        if path.is_symlink() or path.is_file():
            path.unlink(missing_ok=True)
        elif path.is_dir():
            shutil.rmtree(path)
        else:
            return False
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Failed to delete path. [path={path}]: {e}")
        return False
    return True


class FileTeardown:
    """Removes every file system entry owned by an account."""

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings

    def delete_user_files(self, ctx: DeletionContext) -> None:
        """Remove the user's personal files. Dot entries stay unless the account is deleted."""
        root = self.config.user_directory / ctx.user_name
        if not root.is_dir():
            return
        if ctx.account_deleted:
            delete_quietly(root)
            return
        for entry in root.iterdir():
            if not entry.name.startswith("."):
                delete_quietly(entry)

    def _delete_all(self, ctx: DeletionContext) -> int:
        c = self.config
        deleted = 0
        for pid in sorted(ctx.collected_asset_ids):
            deleted += delete_quietly(c.asset_directory / pid)
        deleted += delete_quietly(c.contract_directory / str(ctx.user_id))
        self.delete_user_files(ctx)
        for path in (
            c.draft_directory / str(ctx.user_key),
            c.invoice_directory / str(ctx.user_id),
            c.order_directory / str(ctx.user_id),
            c.user_service_directory / str(ctx.user_key),
        ):
            deleted += delete_quietly(path)
        return deleted

    async def delete_all(self, ctx: DeletionContext) -> None:
        deleted = await asyncio.to_thread(self._delete_all, ctx)
        logger.info(f"Deleted user files. [userKey={ctx.user_key}, entries={deleted}]")
