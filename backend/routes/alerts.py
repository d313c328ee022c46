"""
Solar CRM - Routes Alertes SLA
Lecture de la liste publiée, acquittement, refresh manuel, seuils.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException
from typing import Optional

from models.alert import AlertKind, AlertSeverity, AlertSummary, SLARulesUpdate
from services.alert_store import alert_store
from services.settings import get_sla_rules, update_sla_rules
from services.event_logger import log_event
from services.permissions import require_permission

router = APIRouter(prefix="/alerts", tags=["Alerts"])
logger = logging.getLogger("alerts")


@router.get("")
async def list_alerts(
    include_resolved: bool = False,
    severity: Optional[AlertSeverity] = None,
    kind: Optional[AlertKind] = None,
    user: dict = Depends(require_permission("alerts.view"))
):
    """Liste les alertes publiées (actives par défaut)"""
    alerts = alert_store.get_alerts(
        include_resolved=include_resolved,
        severity=severity.value if severity else None,
        kind=kind.value if kind else None,
    )
    return {
        "alerts": [a.model_dump(mode="json") for a in alerts],
        "count": len(alerts),
        "last_refresh_at": alert_store.last_refresh_at,
    }


@router.get("/summary", response_model=AlertSummary)
async def alerts_summary(user: dict = Depends(require_permission("alerts.view"))):
    """Compteurs pour badges + indice de conformité"""
    return alert_store.summary()


@router.post("/refresh")
async def refresh_alerts(user: dict = Depends(require_permission("alerts.resolve"))):
    """Force un recalcul immédiat (ignoré si un refresh est déjà en cours)"""
    if not alert_store.active:
        return {"refreshed": False, "reason": "inactive"}
    refreshed = await alert_store.refresh()
    return {
        "refreshed": refreshed,
        "reason": None if refreshed else "in_flight",
        "last_refresh_at": alert_store.last_refresh_at,
    }


@router.post("/{alert_id}/acknowledge")
async def acknowledge_alert(
    alert_id: str,
    user: dict = Depends(require_permission("alerts.resolve"))
):
    """Acquitte une alerte (idempotent)"""
    if not alert_store.get_alert(alert_id) and not alert_store.is_acknowledged(alert_id):
        raise HTTPException(status_code=404, detail="Alerte non trouvée")

    record = await alert_store.acknowledge(alert_id, user=user.get("email", "system"))
    return {
        "success": True,
        "acknowledgement": record,
        "persisted": alert_store.is_persisted(alert_id),
    }


# ==================== SEUILS ====================

@router.get("/rules")
async def get_rules(user: dict = Depends(require_permission("settings.access"))):
    return {"rules": await get_sla_rules()}


@router.put("/rules")
async def put_rules(
    data: SLARulesUpdate,
    user: dict = Depends(require_permission("settings.access"))
):
    """Met à jour les seuils, appliqués au prochain refresh"""
    changes = data.changes()
    if not changes:
        raise HTTPException(status_code=400, detail="Aucun seuil fourni")

    old = await get_sla_rules()
    try:
        rules = await update_sla_rules(changes, updated_by=user.get("email", "system"))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    await log_event(
        "update_sla_rules", "settings", "sla_rules",
        user=user.get("email", "system"),
        details={"old_value": old, "new_value": rules},
    )
    return {"success": True, "rules": rules}
