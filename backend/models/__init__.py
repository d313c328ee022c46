"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Solar CRM - Models Package                                                  ║
║                                                                              ║
║  Exports tous les modèles pour import facile                                 ║
║  from models import Alert, AlertKind, LeadStatus, etc.                       ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

# Alertes SLA
from .alert import (
    AlertKind,
    AlertSeverity,
    SEVERITY_RANK,
    make_alert_id,
    Alert,
    AlertAcknowledgement,
    AlertSummary,
    SLARulesUpdate,
)

# Collections sources
from .sources import (
    LeadStatus,
    ProposalStatus,
    DeliveryStatus,
    MovementKind,
    SOURCE_COLLECTIONS,
)

__all__ = [
    # Alertes
    "AlertKind",
    "AlertSeverity",
    "SEVERITY_RANK",
    "make_alert_id",
    "Alert",
    "AlertAcknowledgement",
    "AlertSummary",
    "SLARulesUpdate",
    # Sources
    "LeadStatus",
    "ProposalStatus",
    "DeliveryStatus",
    "MovementKind",
    "SOURCE_COLLECTIONS",
]
