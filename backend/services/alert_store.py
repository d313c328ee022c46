"""
Solar CRM - Alert Store

Détient:
- le cache des acquittements (source de vérité: collection sla_alerts)
- la dernière liste d'alertes publiée

refresh():
  1. Lit chaque collection source séparément (un échec n'empêche pas les autres)
  2. Appelle le moteur pur services/sla_rules.evaluate_alerts
  3. Publie, sauf si le store est passé inactif (ou a été réactivé) pendant le fetch

Un seul refresh par activation: un tick qui tombe pendant un fetch est ignoré.
Un acquittement dont l'écriture a échoué est réessayé au prochain
acquittement de la même alerte et au début de chaque refresh.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Dict, List, Any, Set

from config import db, now_iso
from models.alert import Alert, AlertAcknowledgement
from models.sources import SOURCE_COLLECTIONS
from services.sla_rules import evaluate_alerts, summarize_alerts, DEFAULT_SLA_RULES
from services.settings import get_sla_rules
from services.event_logger import log_event

logger = logging.getLogger("alert_store")

INACTIVE = "inactive"
FETCHING = "fetching"
PUBLISHED = "published"


class AlertStore:
    """Cache des acquittements + liste d'alertes publiée"""

    def __init__(self):
        self.acknowledged: Dict[str, Dict] = {}
        self.unpersisted: Set[str] = set()
        self.alerts: List[Alert] = []
        self.active = False
        self.generation = 0
        self.in_flight = False
        self.in_flight_generation = 0
        self.state = INACTIVE
        self.last_refresh_at: Optional[str] = None
        self.failed_collections: List[str] = []

    # ==================== CYCLE DE VIE ====================

    async def activate(self):
        """Précondition vraie: nouvelle génération, recharge les acquittements"""
        self.generation += 1
        self.active = True
        await self.load_acknowledged()

    def deactivate(self):
        """Précondition fausse: un fetch en cours sera jeté à la fin"""
        self.active = False
        self.state = INACTIVE

    async def load_acknowledged(self):
        """Réchauffe le cache depuis sla_alerts (fail-open: cache conservé)"""
        try:
            docs = await db.sla_alerts.find({"resolved": True}, {"_id": 0}).to_list(None)
        except Exception as e:
            logger.error(f"[ALERTS] Lecture sla_alerts impossible: {str(e)}")
            return
        loaded = {d["id"]: d for d in docs if d.get("id")}
        # Les acquittements pas encore écrits ne sont pas en base
        for alert_id in self.unpersisted:
            loaded.setdefault(alert_id, self.acknowledged[alert_id])
        self.acknowledged = loaded
        logger.info(f"[ALERTS] {len(self.acknowledged)} acquittement(s) chargé(s)")

    # ==================== REFRESH ====================

    async def fetch_collection(self, name: str) -> Optional[List[Dict]]:
        """Snapshot d'une collection source, None si la lecture échoue"""
        try:
            return await db[name].find({}, SOURCE_COLLECTIONS[name]).to_list(None)
        except Exception as e:
            logger.warning(f"[ALERTS] Fetch {name} en échec, règle ignorée: {str(e)}")
            return None

    async def refresh(self, now: Optional[datetime] = None) -> bool:
        """
        Recalcule et publie la liste d'alertes.

        Returns:
            True si une nouvelle liste a été publiée, False si ignoré
            (refresh déjà en cours, store inactif ou réactivé entre-temps).
        """
        # Un refresh d'une activation précédente ne bloque pas la nouvelle
        if self.in_flight and self.in_flight_generation == self.generation:
            logger.info("[ALERTS] Refresh déjà en cours, tick ignoré")
            return False

        generation = self.generation
        self.in_flight = True
        self.in_flight_generation = generation
        self.state = FETCHING
        try:
            await self.flush_acknowledgements()

            snapshots = {}
            failed = []
            for name in SOURCE_COLLECTIONS:
                snapshots[name] = await self.fetch_collection(name)
                if snapshots[name] is None:
                    failed.append(name)

            try:
                rules = await get_sla_rules()
            except Exception as e:
                logger.warning(f"[ALERTS] Lecture sla_rules impossible, defaults utilisés: {str(e)}")
                rules = dict(DEFAULT_SLA_RULES)

            evaluated_at = now or datetime.now(timezone.utc)
            alerts = evaluate_alerts(
                evaluated_at,
                leads=snapshots["leads"],
                proposals=snapshots["proposals"],
                items=snapshots["inventory_items"],
                movements=snapshots["inventory_movements"],
                purchases=snapshots["purchase_orders"],
                acknowledged=self.acknowledged,
                rules=rules,
            )

            if not self.active or self.generation != generation:
                logger.info("[ALERTS] Store inactif ou réactivé, résultat du refresh ignoré")
                return False

            self.alerts = alerts
            self.failed_collections = failed
            self.last_refresh_at = evaluated_at.isoformat()
            self.state = PUBLISHED
            logger.info(
                f"[ALERTS] Refresh publié: {len(alerts)} alerte(s), "
                f"{sum(1 for a in alerts if not a.resolved)} active(s)"
                + (f", collections en échec: {failed}" if failed else "")
            )
            return True
        finally:
            # Si un refresh plus récent a pris la main, c'est lui qui libère
            if self.in_flight_generation == generation:
                self.in_flight = False
                if not self.active:
                    self.state = INACTIVE
                elif self.state == FETCHING:
                    self.state = PUBLISHED if self.last_refresh_at else INACTIVE

    # ==================== ACQUITTEMENT ====================

    async def acknowledge(self, alert_id: str, user: str = "system") -> Dict:
        """
        Marque une alerte comme résolue (idempotent).
        Les objets Alert publiés ne sont pas modifiés: le prochain refresh
        reflètera resolved=True.
        Si l'écriture précédente a échoué, un nouvel appel la réessaie.
        """
        if alert_id in self.acknowledged:
            if alert_id in self.unpersisted:
                await self.persist_acknowledgement(alert_id)
            return self.acknowledged[alert_id]

        alert = self.get_alert(alert_id)
        record = AlertAcknowledgement(
            id=alert_id,
            kind=alert.kind if alert else None,
            source_reference=alert.source_reference if alert else None,
            resolved_at=now_iso(),
            resolved_by=user,
        ).model_dump(mode="json")
        # Cache d'abord: l'acquittement reste effectif pour ce process même sans écriture
        self.acknowledged[alert_id] = record
        self.unpersisted.add(alert_id)
        await self.persist_acknowledgement(alert_id)

        logger.info(f"[ALERTS] Alerte {alert_id} acquittée par {user}")
        return record

    async def persist_acknowledgement(self, alert_id: str) -> bool:
        """Upsert dans sla_alerts puis audit. False si l'écriture échoue (réessai plus tard)"""
        record = self.acknowledged[alert_id]
        try:
            await db.sla_alerts.update_one({"id": alert_id}, {"$set": record}, upsert=True)
        except Exception as e:
            logger.error(f"[ALERTS] Persistance acquittement {alert_id} impossible: {str(e)}")
            return False
        self.unpersisted.discard(alert_id)

        try:
            await log_event(
                "acknowledge_alert", "alert", alert_id, user=record["resolved_by"],
                details={"kind": record["kind"], "source_reference": record["source_reference"]},
            )
        except Exception as e:
            logger.error(f"[ALERTS] Audit acquittement {alert_id} impossible: {str(e)}")
        return True

    async def flush_acknowledgements(self):
        """Réessaie les acquittements restés uniquement en cache"""
        for alert_id in sorted(self.unpersisted):
            await self.persist_acknowledgement(alert_id)

    def is_acknowledged(self, alert_id: str) -> bool:
        return alert_id in self.acknowledged

    def is_persisted(self, alert_id: str) -> bool:
        return alert_id in self.acknowledged and alert_id not in self.unpersisted

    # ==================== LECTURE ====================

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        for alert in self.alerts:
            if alert.id == alert_id:
                return alert
        return None

    def get_alerts(
        self,
        include_resolved: bool = False,
        severity: Optional[str] = None,
        kind: Optional[str] = None,
    ) -> List[Alert]:
        alerts = self.alerts
        if not include_resolved:
            alerts = [a for a in alerts if not a.resolved]
        if severity:
            alerts = [a for a in alerts if a.severity.value == severity]
        if kind:
            alerts = [a for a in alerts if a.kind.value == kind]
        return alerts

    def summary(self) -> Dict[str, Any]:
        return {
            **summarize_alerts(self.alerts),
            "last_refresh_at": self.last_refresh_at,
            "failed_collections": list(self.failed_collections),
        }


# Instance globale
alert_store = AlertStore()
