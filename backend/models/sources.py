"""
Solar CRM - Collections sources lues par le moteur SLA

Documents en lecture seule (écrits par le dashboard). Les valeurs de
statut sont celles stockées en base.
"""

from enum import Enum


class LeadStatus(str, Enum):
    NEW = "Novo"
    QUALIFIED = "Qualificado"
    VISIT_SCHEDULED = "Visita_Agendada"
    CONVERTED = "Convertido"
    LOST = "Perdido"


class ProposalStatus(str, Enum):
    DRAFT = "Em Elaboração"
    SENT = "Enviada"
    APPROVED = "Aprovada"
    REJECTED = "Reprovada"


class DeliveryStatus(str, Enum):
    PENDING = "Pendente"
    IN_TRANSIT = "Em Trânsito"
    DELIVERED = "Entregue"
    CANCELLED = "Cancelado"


class MovementKind(str, Enum):
    ENTRY = "Entrada"
    EXIT = "Saída"


# Nom de collection -> champs utiles au moteur
SOURCE_COLLECTIONS = {
    "leads": {"_id": 0, "id": 1, "name": 1, "status": 1, "entry_date": 1},
    "proposals": {"_id": 0, "id": 1, "status": 1, "sent_date": 1},
    "inventory_items": {"_id": 0, "id": 1, "name": 1, "unit": 1, "reorder_point": 1},
    "inventory_movements": {"_id": 0, "item_id": 1, "kind": 1, "quantity": 1},
    "purchase_orders": {"_id": 0, "id": 1, "delivery_status": 1, "order_date": 1},
}
