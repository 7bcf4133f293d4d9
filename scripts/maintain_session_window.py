"""
Standalone script that tops up the rolling session window once.

For every active class with active time slots it generates the sessions
missing between the current week and the end of the window. Meant to be
run from cron.

Usage:
    python scripts/maintain_session_window.py [--weeks N] [--stats]
"""

import sys
import asyncio
import argparse
from pathlib import Path

# --- Path Setup ---
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.class_scheduler_backend.database import engine as db_engine
from src.class_scheduler_backend.services.class_service import ClassService
from src.class_scheduler_backend.services.tutor_service import TutorService
from src.class_scheduler_backend.services.rotation_service import RotationService
from src.class_scheduler_backend.services.notification_service import NotificationService
from src.class_scheduler_backend.services.session_generator_service import SessionGeneratorService
from src.class_scheduler_backend.services.session_maintenance_service import SessionMaintenanceService
from src.class_scheduler_backend.common.logger import log


def build_maintenance_service(db) -> SessionMaintenanceService:
    """Wires the services by hand, outside of FastAPI's dependency injection."""
    class_service = ClassService(db)
    session_generator = SessionGeneratorService(
        db,
        class_service,
        TutorService(db),
        RotationService(db, class_service),
        NotificationService(db),
    )
    return SessionMaintenanceService(db, session_generator)


async def run(weeks: int | None, stats_only: bool) -> int:
    db_engine.create_db_engine_and_session_factory()
    try:
        async with db_engine.AsyncSessionLocal() as db:
            service = build_maintenance_service(db)

            if not stats_only:
                result = await service.maintain_session_window(weeks)
                await db.commit()
                print(f"Classes processed:  {result.classes_processed}")
                print(f"Sessions generated: {result.sessions_generated}")
                print(f"Duration:           {result.duration_ms} ms")
                for error in result.errors:
                    print(f"  ❌ class {error.class_id}: {error.error}")

            stats = await service.get_maintenance_stats(weeks)
            print(f"Active classes:            {stats.active_classes}")
            print(f"Classes with time slots:   {stats.classes_with_time_slots}")
            print(f"Upcoming live sessions:    {stats.upcoming_sessions}")

            return 1 if not stats_only and result.errors else 0
    except Exception as e:
        log.critical(f"Session window maintenance failed: {e}", exc_info=True)
        return 2
    finally:
        await db_engine.dispose_db_engine()


def main():
    parser = argparse.ArgumentParser(description="Generate missing sessions for the rolling session window.")
    parser.add_argument("--weeks", type=int, default=None, help="Window size in weeks (default: SESSION_WINDOW_WEEKS).")
    parser.add_argument("--stats", action="store_true", help="Only print maintenance statistics, generate nothing.")
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args.weeks, args.stats)))


if __name__ == "__main__":
    main()
