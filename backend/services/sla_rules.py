"""
Solar CRM - Moteur de règles SLA

Fonctions pures: (now, snapshots, acquittements, seuils) -> liste d'alertes.
Aucun accès base ici, la récupération des collections est faite par
services/alert_store.py.

Règles:
  1. LEAD_STALE        lead "Novo" depuis plus de 7 jours (critique > 14)
  2. PROPOSAL_EXPIRED  proposition "Enviada" depuis plus de 15 jours (critique > 30)
  3. LOW_STOCK         solde <= point de commande (critique si solde <= 0)
  4. PURCHASE_OVERDUE  commande "Pendente" depuis plus de 30 jours (toujours medium)

Une collection à None = fetch en échec -> la règle correspondante est sautée.
"""

import logging
from datetime import datetime, date, timedelta
from typing import Optional, Dict, Any, List, Iterable, Union, Mapping

from models.alert import Alert, AlertKind, AlertSeverity, make_alert_id
from models.sources import LeadStatus, ProposalStatus, DeliveryStatus, MovementKind

logger = logging.getLogger("sla_rules")

ONE_DAY = timedelta(days=1)

DEFAULT_SLA_RULES = {
    "lead_stale_days": 7,
    "lead_critical_days": 14,
    "proposal_expired_days": 15,
    "proposal_critical_days": 30,
    "purchase_overdue_days": 30,
}


# ==================== DATES ====================

def parse_br_date(value: Union[str, date, datetime]) -> datetime:
    """
    Parse une date dd/mm/yyyy (heure éventuelle ignorée) en minuit local.
    Accepte aussi date/datetime, tronqués au jour calendaire.
    Raise ValueError si illisible.
    """
    if isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Date vide ou invalide: {value!r}")

    # "19/10/2026 10:30" ou "19/10/2026, 10:30:00" -> "19/10/2026"
    day_part = value.strip().split()[0].rstrip(",")
    return datetime.strptime(day_part, "%d/%m/%Y")


def to_local_naive(now: datetime) -> datetime:
    """Ramène un datetime aware en heure locale naive (les dates source sont locales)"""
    if now.tzinfo is not None:
        return now.astimezone().replace(tzinfo=None)
    return now


def days_elapsed(since: datetime, now: datetime) -> int:
    """Nombre de jours pleins écoulés (floor, jamais arrondi)"""
    return (now - since) // ONE_DAY


# ==================== SEUILS ====================

def severity_above(value: float, table: List[tuple]) -> Optional[AlertSeverity]:
    """Première ligne (seuil, sévérité) telle que value > seuil"""
    for threshold, severity in table:
        if value > threshold:
            return severity
    return None


def build_threshold_tables(rules: Optional[Dict[str, Any]] = None) -> Dict[AlertKind, List[tuple]]:
    """Tables ordonnées par type d'alerte, la plus sévère en premier"""
    r = {**DEFAULT_SLA_RULES, **(rules or {})}
    return {
        AlertKind.LEAD_STALE: [
            (r["lead_critical_days"], AlertSeverity.CRITICAL),
            (r["lead_stale_days"], AlertSeverity.HIGH),
        ],
        AlertKind.PROPOSAL_EXPIRED: [
            (r["proposal_critical_days"], AlertSeverity.CRITICAL),
            (r["proposal_expired_days"], AlertSeverity.MEDIUM),
        ],
        AlertKind.PURCHASE_OVERDUE: [
            (r["purchase_overdue_days"], AlertSeverity.MEDIUM),
        ],
    }


def _fmt_qty(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


# ==================== RÈGLES ====================

def _aged_records(
    records: Iterable[Dict],
    status_field: str,
    status_value: str,
    date_field: str,
    now: datetime,
    label: str,
):
    """Yield (record, jours écoulés) pour les records au bon statut, dates illisibles sautées"""
    for record in records:
        if record.get(status_field) != status_value:
            continue
        try:
            since = parse_br_date(record.get(date_field))
        except (ValueError, TypeError) as e:
            logger.warning(f"[SLA] {label} {record.get('id')} ignoré: {date_field} invalide ({e})")
            continue
        yield record, days_elapsed(since, now)


def stale_lead_alerts(leads: Iterable[Dict], now: datetime, table: List[tuple], detected_at: str) -> List[Alert]:
    alerts = []
    for lead, days in _aged_records(leads, "status", LeadStatus.NEW.value, "entry_date", now, "Lead"):
        severity = severity_above(days, table)
        if severity is None:
            continue
        lead_id = str(lead.get("id"))
        alerts.append(Alert(
            id=make_alert_id(AlertKind.LEAD_STALE, lead_id),
            kind=AlertKind.LEAD_STALE,
            severity=severity,
            source_reference=lead_id,
            message=f'Lead "{lead.get("name", "")}" sem atividade há {days} dias',
            detected_at=detected_at,
        ))
    return alerts


def expired_proposal_alerts(proposals: Iterable[Dict], now: datetime, table: List[tuple], detected_at: str) -> List[Alert]:
    alerts = []
    for proposal, days in _aged_records(proposals, "status", ProposalStatus.SENT.value, "sent_date", now, "Proposta"):
        severity = severity_above(days, table)
        if severity is None:
            continue
        proposal_id = str(proposal.get("id"))
        alerts.append(Alert(
            id=make_alert_id(AlertKind.PROPOSAL_EXPIRED, proposal_id),
            kind=AlertKind.PROPOSAL_EXPIRED,
            severity=severity,
            source_reference=proposal_id,
            message=f'Proposta "{proposal_id}" sem resposta há {days} dias',
            detected_at=detected_at,
        ))
    return alerts


def stock_balances(movements: Iterable[Dict]) -> Dict[str, float]:
    """Solde par item: somme des entrées - somme des sorties"""
    balances: Dict[str, float] = {}
    for mov in movements:
        kind = mov.get("kind")
        if kind == MovementKind.ENTRY.value:
            sign = 1
        elif kind == MovementKind.EXIT.value:
            sign = -1
        else:
            continue
        try:
            quantity = float(mov.get("quantity"))
        except (TypeError, ValueError):
            logger.warning(f"[SLA] Mouvement ignoré: quantité invalide pour item {mov.get('item_id')}")
            continue
        item_id = str(mov.get("item_id"))
        balances[item_id] = balances.get(item_id, 0) + sign * quantity
    return balances


def low_stock_alerts(items: Iterable[Dict], movements: Iterable[Dict], detected_at: str) -> List[Alert]:
    balances = stock_balances(movements)
    alerts = []
    for item in items:
        item_id = str(item.get("id"))
        try:
            reorder_point = float(item.get("reorder_point"))
        except (TypeError, ValueError):
            logger.warning(f"[SLA] Item {item_id} ignoré: reorder_point invalide")
            continue

        balance = balances.get(item_id, 0)
        # Au-dessus du point de commande: pas d'alerte, même si le solde est négatif
        if balance > reorder_point:
            continue
        severity = AlertSeverity.CRITICAL if balance <= 0 else AlertSeverity.HIGH
        alerts.append(Alert(
            id=make_alert_id(AlertKind.LOW_STOCK, item_id),
            kind=AlertKind.LOW_STOCK,
            severity=severity,
            source_reference=item_id,
            message=(
                f'Estoque de "{item.get("name", "")}" está baixo: '
                f'{_fmt_qty(balance)} {item.get("unit", "")} (Mínimo: {_fmt_qty(reorder_point)})'
            ),
            detected_at=detected_at,
        ))
    return alerts


def overdue_purchase_alerts(purchases: Iterable[Dict], now: datetime, table: List[tuple], detected_at: str) -> List[Alert]:
    alerts = []
    for purchase, days in _aged_records(
        purchases, "delivery_status", DeliveryStatus.PENDING.value, "order_date", now, "Compra"
    ):
        severity = severity_above(days, table)
        if severity is None:
            continue
        purchase_id = str(purchase.get("id"))
        alerts.append(Alert(
            id=make_alert_id(AlertKind.PURCHASE_OVERDUE, purchase_id),
            kind=AlertKind.PURCHASE_OVERDUE,
            severity=severity,
            source_reference=purchase_id,
            message=f'Compra "{purchase_id}" pendente há {days} dias',
            detected_at=detected_at,
        ))
    return alerts


# ==================== POINT D'ENTRÉE ====================

def evaluate_alerts(
    now: datetime,
    leads: Optional[List[Dict]] = None,
    proposals: Optional[List[Dict]] = None,
    items: Optional[List[Dict]] = None,
    movements: Optional[List[Dict]] = None,
    purchases: Optional[List[Dict]] = None,
    acknowledged: Union[Iterable[str], Mapping[str, Dict], None] = None,
    rules: Optional[Dict[str, Any]] = None,
) -> List[Alert]:
    """
    Calcule la liste complète des alertes SLA pour l'instant `now`.

    Args:
        now: instant d'évaluation (naive = heure locale)
        leads/proposals/items/movements/purchases: snapshots, None si fetch en échec
        acknowledged: ids acquittés, ou dict id -> document sla_alerts
        rules: surcharges des seuils (voir DEFAULT_SLA_RULES)

    Returns:
        Alertes triées par sévérité décroissante puis ordre de détection.
        Le set `acknowledged` n'est jamais modifié.
    """
    local_now = to_local_naive(now)
    detected_at = now.isoformat()
    tables = build_threshold_tables(rules)

    alerts: List[Alert] = []
    if leads is not None:
        alerts += stale_lead_alerts(leads, local_now, tables[AlertKind.LEAD_STALE], detected_at)
    if proposals is not None:
        alerts += expired_proposal_alerts(proposals, local_now, tables[AlertKind.PROPOSAL_EXPIRED], detected_at)
    # Sans les mouvements tous les soldes vaudraient 0 -> faux critiques
    if items is not None and movements is not None:
        alerts += low_stock_alerts(items, movements, detected_at)
    if purchases is not None:
        alerts += overdue_purchase_alerts(purchases, local_now, tables[AlertKind.PURCHASE_OVERDUE], detected_at)

    apply_acknowledgements(alerts, acknowledged)

    alerts.sort(key=lambda a: -a.severity.rank)
    return alerts


def apply_acknowledgements(alerts: List[Alert], acknowledged: Union[Iterable[str], Mapping[str, Dict], None]) -> List[Alert]:
    """Positionne resolved (et resolved_at/by si disponibles) sur chaque alerte"""
    if acknowledged is None:
        acknowledged = ()
    records = acknowledged if isinstance(acknowledged, Mapping) else None
    ids = set(acknowledged)

    for alert in alerts:
        alert.resolved = alert.id in ids
        if alert.resolved and records is not None:
            record = records.get(alert.id) or {}
            alert.resolved_at = record.get("resolved_at")
            alert.resolved_by = record.get("resolved_by")
    return alerts


def summarize_alerts(alerts: List[Alert]) -> Dict[str, Any]:
    """
    Compteurs pour badges et tableau de bord.
    compliance_index = (1 - actives / total) * 100, 100 si aucune alerte.
    """
    active = [a for a in alerts if not a.resolved]
    by_severity = {s.value: 0 for s in AlertSeverity}
    by_kind: Dict[str, int] = {}
    for a in active:
        by_severity[a.severity.value] += 1
        by_kind[a.kind.value] = by_kind.get(a.kind.value, 0) + 1

    total = len(alerts)
    compliance = round((1 - len(active) / total) * 100, 1) if total > 0 else 100.0

    return {
        "total": total,
        "active": len(active),
        "resolved": total - len(active),
        "by_severity": by_severity,
        "by_kind": by_kind,
        "compliance_index": compliance,
    }
