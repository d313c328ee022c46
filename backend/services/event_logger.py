"""
Solar CRM - Journal d'audit

Chaque acquittement d'alerte et chaque changement de seuil SLA laisse une
ligne dans event_log: qui, quoi, sur quel identifiant, avec quel contexte.
"""

import uuid
from config import db, now_iso


async def log_event(
    action: str,
    entity_type: str,
    entity_id: str,
    user: str = "system",
    details: dict = None,
):
    """
    Ajoute une entrée au journal event_log.

    Args:
        action: acknowledge_alert | update_sla_rules
        entity_type: alert | settings
        entity_id: id déterministe de l'alerte (SLA_...) ou clé de réglage
        user: email de l'auteur, "system" pour le moteur
        details: contexte libre (kind, source_reference, old_value/new_value)
    """
    entry = {
        "id": str(uuid.uuid4()),
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "user": user,
        "details": details or {},
        "created_at": now_iso(),
    }
    await db.event_log.insert_one(entry)
