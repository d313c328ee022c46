"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Solar CRM - Modèle Alerte SLA                                               ║
║                                                                              ║
║  RÈGLES FONDAMENTALES:                                                       ║
║  1. Une alerte n'est PAS stockée: recalculée à chaque passage                ║
║  2. id = f(kind, source_reference) -> stable entre deux refresh              ║
║  3. resolved = id présent dans le set d'acquittements                        ║
║  4. Disparition (condition levée) != résolution (affichage masqué)           ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from typing import Optional, Dict, Any
from pydantic import BaseModel, Field
from enum import Enum


class AlertKind(str, Enum):
    LEAD_STALE = "LEAD_STALE"
    PROPOSAL_EXPIRED = "PROPOSAL_EXPIRED"
    LOW_STOCK = "LOW_STOCK"
    PURCHASE_OVERDUE = "PURCHASE_OVERDUE"
    PROJECT_DELAYED = "PROJECT_DELAYED"  # Réservé, aucune règle ne l'émet


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]


SEVERITY_RANK = {
    AlertSeverity.LOW: 0,
    AlertSeverity.MEDIUM: 1,
    AlertSeverity.HIGH: 2,
    AlertSeverity.CRITICAL: 3,
}

# Préfixe d'id par type d'alerte
ALERT_ID_PREFIXES = {
    AlertKind.LEAD_STALE: "SLA_LEAD",
    AlertKind.PROPOSAL_EXPIRED: "SLA_PROP",
    AlertKind.LOW_STOCK: "SLA_STOCK",
    AlertKind.PURCHASE_OVERDUE: "SLA_PURCHASE",
    AlertKind.PROJECT_DELAYED: "SLA_PROJECT",
}


def make_alert_id(kind: AlertKind, source_reference: str) -> str:
    """Id déterministe: même condition -> même id"""
    return f"{ALERT_ID_PREFIXES[AlertKind(kind)]}_{source_reference}"


class Alert(BaseModel):
    id: str
    kind: AlertKind
    severity: AlertSeverity
    source_reference: str
    message: str
    detected_at: str  # Instant du passage d'évaluation (ISO)
    resolved: bool = False
    resolved_at: Optional[str] = None
    resolved_by: Optional[str] = None


class AlertAcknowledgement(BaseModel):
    """
    Document de la collection sla_alerts (une entrée par id déterministe).
    Source de vérité des acquittements, le set en mémoire n'est qu'un cache.
    """
    id: str
    kind: Optional[AlertKind] = None
    source_reference: Optional[str] = None
    resolved: bool = True
    resolved_at: str = ""
    resolved_by: str = "system"


class AlertSummary(BaseModel):
    total: int = 0
    active: int = 0
    resolved: int = 0
    by_severity: Dict[str, int] = Field(default_factory=dict)
    by_kind: Dict[str, int] = Field(default_factory=dict)
    compliance_index: float = 100.0
    last_refresh_at: Optional[str] = None
    failed_collections: list = Field(default_factory=list)


class SLARulesUpdate(BaseModel):
    """Mise à jour des seuils SLA (jours)"""
    lead_stale_days: Optional[int] = None
    lead_critical_days: Optional[int] = None
    proposal_expired_days: Optional[int] = None
    proposal_critical_days: Optional[int] = None
    purchase_overdue_days: Optional[int] = None

    def changes(self) -> Dict[str, Any]:
        return {k: v for k, v in self.model_dump().items() if v is not None}
