"""Container for the long-lived components wired together at startup."""

from __future__ import annotations

from dataclasses import dataclass

from schedcord.database.db_connection import ConnectionManager
from schedcord.ratelimit.admission_controller import AdmissionController
from schedcord.schedule.sync_scheduler import SyncScheduler
from schedcord.settings.tenant_config_store import TenantConfigStore
from schedcord.setup.session_store import SetupSessionStore
from schedcord.setup.setup_flow import SetupFlow


@dataclass
class Services:
    """Everything the cogs need, built once by :func:`schedcord.main.build_services`."""

    config_db: ConnectionManager
    runs_db: ConnectionManager
    store: TenantConfigStore
    scheduler: SyncScheduler
    admission: AdmissionController
    sessions: SetupSessionStore
    flow: SetupFlow

    async def close(self) -> None:
        await self.scheduler.shutdown()
        await self.runs_db.close()
        await self.config_db.close()
