"""
Scheduler pour le rafraîchissement des alertes SLA
- Refresh immédiat à l'activation (précondition vraie)
- Puis toutes les 10 minutes (ALERT_REFRESH_MINUTES)
- Arrêt des ticks dès que la précondition redevient fausse

États: inactive -> fetching -> published -> fetching -> ... (pas d'état terminal)
"""

import logging
from datetime import datetime
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import SCHEDULER_TIMEZONE, ALERT_REFRESH_MINUTES
from services.alert_store import alert_store as default_store

logger = logging.getLogger("scheduler")

REFRESH_JOB_ID = "sla_alerts_refresh"


class AlertRefreshScheduler:
    """Boucle de refresh des alertes, pilotée par une précondition"""

    def __init__(self, store=None, interval_minutes: int = ALERT_REFRESH_MINUTES):
        self.scheduler = AsyncIOScheduler(timezone=SCHEDULER_TIMEZONE)
        self.store = store or default_store
        self.interval_minutes = interval_minutes

    @property
    def state(self) -> str:
        return self.store.state

    @property
    def is_active(self) -> bool:
        return self.store.active

    def start(self):
        """Démarre le scheduler (aucun job tant que la précondition est fausse)"""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Scheduler démarré avec succès")

    def stop(self):
        """Arrête le scheduler"""
        self.deactivate()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler arrêté")

    async def activate(self):
        """
        Précondition devenue vraie: recharge les acquittements, lance un
        refresh immédiat puis programme les ticks suivants.
        """
        if self.is_active and self.scheduler.get_job(REFRESH_JOB_ID):
            return

        self.start()
        await self.store.activate()

        # Précondition retombée pendant le chargement: deactivate() est passé avant nous
        if not self.store.active:
            logger.info("Activation abandonnée: précondition retombée entre-temps")
            return

        self.scheduler.add_job(
            self.tick,
            IntervalTrigger(minutes=self.interval_minutes),
            id=REFRESH_JOB_ID,
            name="Refresh alertes SLA",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(self.scheduler.timezone),
        )
        logger.info(f"Refresh alertes SLA activé (toutes les {self.interval_minutes} min)")

    def deactivate(self):
        """Précondition devenue fausse: annule le tick en attente"""
        if self.scheduler.get_job(REFRESH_JOB_ID):
            self.scheduler.remove_job(REFRESH_JOB_ID)
        if self.is_active:
            logger.info("Refresh alertes SLA désactivé")
        self.store.deactivate()

    async def set_precondition(self, ready: bool):
        """Bascule selon la précondition (ex: session authentifiée disponible)"""
        if ready:
            await self.activate()
        else:
            self.deactivate()

    # ==================== TÂCHE PLANIFIÉE ====================

    async def tick(self):
        """Un tick ne doit jamais casser le job: l'intervalle reste programmé"""
        try:
            await self.store.refresh()
        except Exception as e:
            logger.error(f"Erreur refresh alertes SLA: {str(e)}")


# Instance globale
alert_scheduler = AlertRefreshScheduler()
