'''
Notification Service

Stores batched notifications for the delivery layer to pick up.
'''
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..models.session import NotificationCreate
from ..common.logger import log


class NotificationService:
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def create_bulk_notifications(self, notifications: list[NotificationCreate]) -> int:
        """Inserts all notifications in one flush. Errors propagate."""
        rows = [
            db_models.Notifications(
                user_id=n.user_id,
                title=n.title,
                message=n.message,
                notification_type=n.notification_type.value,
                data=n.data,
                is_read=False,
            )
            for n in notifications
        ]
        self.db.add_all(rows)
        await self.db.flush()
        log.info(f"Created {len(rows)} notifications")
        return len(rows)

    async def dispatch(self, notifications: list[NotificationCreate]) -> int:
        """
        Best-effort delivery after a schedule change has been written.
        Runs in its own SAVEPOINT so a failure here never undoes the change;
        failures are logged and reported as 0 delivered.
        """
        if not notifications:
            return 0
        try:
            async with self.db.begin_nested():
                return await self.create_bulk_notifications(notifications)
        except Exception as e:
            log.error(f"Failed to dispatch {len(notifications)} notifications: {e}", exc_info=True)
            return 0
