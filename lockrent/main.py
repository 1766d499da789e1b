import logging

from fastapi import FastAPI

from lockrent.infrastructure.config import settings
from lockrent.infrastructure.database import Base, SessionLocal, engine
from lockrent.presentation.routers import router
from lockrent.services.lockrent_service import (
    rebuild_statistics_service,
    recover_orphaned_lockers_service,
    seed_inventory_service,
)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(title="lockrent")


@app.on_event("startup")
def _reconcile_on_startup() -> None:
    """
    On startup ensure tables exist, seed the inventory when the store is empty,
    free lockers orphaned by a previous crash and rebuild the derived counters.
    """
    db = SessionLocal()
    try:
        if settings.seed_on_startup:
            seed_inventory_service(db, settings.provisioning_path)
        report = recover_orphaned_lockers_service(db)
        if report.released_locker_ids:
            logger.warning(f"Released {len(report.released_locker_ids)} orphaned locker(s) on startup")
        rebuild_statistics_service(db)
    finally:
        db.close()


Base.metadata.create_all(bind=engine)
app.include_router(router)
