"""
Solar CRM - Service Settings

Gestion des parametres systeme dynamiques.
Collection: settings (chaque doc identifie par key)

Settings disponibles:
- sla_rules: seuils (jours) des regles d'alerte SLA
"""

import logging
from typing import Optional, Dict, Any
from config import db, now_iso
from services.sla_rules import DEFAULT_SLA_RULES

logger = logging.getLogger("settings")


async def get_setting(key: str) -> Optional[Dict]:
    """Recupere un setting par sa cle"""
    doc = await db.settings.find_one({"key": key}, {"_id": 0})
    return doc


async def upsert_setting(key: str, data: Dict[str, Any], updated_by: str = "system") -> Dict:
    """Cree ou met a jour un setting"""
    data["key"] = key
    data["updated_at"] = now_iso()
    data["updated_by"] = updated_by

    existing = await db.settings.find_one({"key": key})
    if existing:
        await db.settings.update_one({"key": key}, {"$set": data})
    else:
        data["created_at"] = now_iso()
        await db.settings.insert_one(data)

    result = await db.settings.find_one({"key": key}, {"_id": 0})
    return result


# ---- SLA rules helpers ----

async def get_sla_rules() -> Dict[str, int]:
    """Retourne les seuils SLA (avec defaults)"""
    doc = await get_setting("sla_rules")
    if not doc:
        return dict(DEFAULT_SLA_RULES)
    # Merge avec defaults, on ne garde que les cles connues
    return {k: doc.get(k, v) for k, v in DEFAULT_SLA_RULES.items()}


def validate_sla_rules(rules: Dict[str, Any]) -> Dict[str, int]:
    """
    Valide un jeu complet de seuils.
    Raise ValueError si un seuil n'est pas un entier positif ou si un
    seuil critique n'est pas strictement superieur a son seuil de base.
    """
    for key in DEFAULT_SLA_RULES:
        value = rules.get(key)
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValueError(f"Seuil invalide: {key}={value!r} (entier positif requis)")

    if rules["lead_critical_days"] <= rules["lead_stale_days"]:
        raise ValueError("lead_critical_days doit etre superieur a lead_stale_days")
    if rules["proposal_critical_days"] <= rules["proposal_expired_days"]:
        raise ValueError("proposal_critical_days doit etre superieur a proposal_expired_days")

    return {k: rules[k] for k in DEFAULT_SLA_RULES}


async def update_sla_rules(changes: Dict[str, int], updated_by: str = "system") -> Dict[str, int]:
    """
    Met a jour une partie des seuils SLA.
    """
    current = await get_sla_rules()
    merged = validate_sla_rules({**current, **changes})

    await upsert_setting("sla_rules", dict(merged), updated_by)
    logger.info(f"[SLA_RULES] Mis a jour par {updated_by}: {changes}")
    return merged
