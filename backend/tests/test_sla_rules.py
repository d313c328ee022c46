"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Solar CRM - Moteur de règles SLA (Direct Python Tests)                      ║
║                                                                              ║
║  1. Seuils et sévérités par règle                                            ║
║  2. Ids déterministes                                                        ║
║  3. Overlay des acquittements                                                ║
║  4. Collections manquantes / records illisibles                              ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from models.alert import AlertKind, AlertSeverity
from services.sla_rules import (
    evaluate_alerts,
    parse_br_date,
    days_elapsed,
    stock_balances,
    summarize_alerts,
    build_threshold_tables,
    severity_above,
)

NOW = datetime(2026, 10, 19, 10, 30)


def ago(days, now=NOW, fmt="%d/%m/%Y"):
    return (now - timedelta(days=days)).strftime(fmt)


def lead(lead_id, days, status="Novo", name="Cliente Teste", now=NOW):
    return {"id": lead_id, "name": name, "status": status, "entry_date": ago(days, now=now)}


def proposal(prop_id, days, status="Enviada"):
    return {"id": prop_id, "status": status, "sent_date": ago(days, fmt="%d/%m/%Y %H:%M")}


def purchase(purchase_id, days, status="Pendente"):
    return {"id": purchase_id, "delivery_status": status, "order_date": ago(days)}


def item(item_id, reorder_point, name="Painel 550W", unit="un"):
    return {"id": item_id, "name": name, "unit": unit, "reorder_point": reorder_point}


def moves(item_id, entries=0, exits=0):
    out = []
    if entries:
        out.append({"item_id": item_id, "kind": "Entrada", "quantity": entries})
    if exits:
        out.append({"item_id": item_id, "kind": "Saída", "quantity": exits})
    return out


class TestDates:
    def test_parse_plain_date(self):
        assert parse_br_date("05/03/2026") == datetime(2026, 3, 5)

    def test_parse_ignores_time_part(self):
        assert parse_br_date("05/03/2026 18:45") == datetime(2026, 3, 5)
        assert parse_br_date("05/03/2026, 18:45:00") == datetime(2026, 3, 5)

    def test_parse_datetime_truncated_to_day(self):
        assert parse_br_date(datetime(2026, 3, 5, 23, 59)) == datetime(2026, 3, 5)

    @pytest.mark.parametrize("bad", ["", "2026-03-05", "31/02/2026", None, 42])
    def test_parse_invalid(self, bad):
        with pytest.raises((ValueError, TypeError)):
            parse_br_date(bad)

    def test_days_elapsed_floors(self):
        assert days_elapsed(datetime(2026, 10, 12), datetime(2026, 10, 19, 23, 59)) == 7
        assert days_elapsed(datetime(2026, 10, 12), datetime(2026, 10, 19)) == 7
        assert days_elapsed(datetime(2026, 10, 12), datetime(2026, 10, 18, 23, 59, 59)) == 6


class TestStaleLead:
    def test_exactly_seven_days_no_alert(self):
        now = datetime(2026, 10, 19)
        assert evaluate_alerts(now, leads=[lead("L1", 7, now=now)]) == []

    def test_seven_days_plus_hours_no_alert(self):
        assert evaluate_alerts(NOW, leads=[lead("L1", 7)]) == []

    def test_eight_days_high(self):
        alerts = evaluate_alerts(NOW, leads=[lead("L1", 8)])
        assert len(alerts) == 1
        assert alerts[0].kind == AlertKind.LEAD_STALE
        assert alerts[0].severity == AlertSeverity.HIGH
        assert alerts[0].id == "SLA_LEAD_L1"
        assert alerts[0].source_reference == "L1"

    def test_fourteen_days_still_high(self):
        alerts = evaluate_alerts(NOW, leads=[lead("L1", 14)])
        assert alerts[0].severity == AlertSeverity.HIGH

    def test_fifteen_days_critical(self):
        alerts = evaluate_alerts(NOW, leads=[lead("L1", 15)])
        assert alerts[0].severity == AlertSeverity.CRITICAL

    def test_message_has_name_and_days(self):
        alerts = evaluate_alerts(NOW, leads=[lead("L1", 10, name="Padaria Sol")])
        assert "Padaria Sol" in alerts[0].message
        assert "10 dias" in alerts[0].message

    @pytest.mark.parametrize("status", ["Qualificado", "Visita_Agendada", "Convertido", "Perdido"])
    def test_past_new_never_alerts(self, status):
        assert evaluate_alerts(NOW, leads=[lead("L1", 90, status=status)]) == []

    def test_future_entry_date_no_alert(self):
        assert evaluate_alerts(NOW, leads=[lead("L1", -3)]) == []


class TestExpiredProposal:
    def test_fifteen_days_no_alert(self):
        assert evaluate_alerts(NOW, proposals=[proposal("P1", 15)]) == []

    def test_sixteen_days_medium(self):
        alerts = evaluate_alerts(NOW, proposals=[proposal("P1", 16)])
        assert alerts[0].kind == AlertKind.PROPOSAL_EXPIRED
        assert alerts[0].severity == AlertSeverity.MEDIUM
        assert alerts[0].id == "SLA_PROP_P1"

    def test_thirty_one_days_critical(self):
        alerts = evaluate_alerts(NOW, proposals=[proposal("P1", 31)])
        assert alerts[0].severity == AlertSeverity.CRITICAL

    def test_only_sent_status(self):
        assert evaluate_alerts(NOW, proposals=[proposal("P1", 60, status="Aprovada")]) == []


class TestLowStock:
    def test_balance_equal_reorder_point_high(self):
        alerts = evaluate_alerts(NOW, items=[item("I1", 20)], movements=moves("I1", entries=30, exits=10))
        assert len(alerts) == 1
        assert alerts[0].kind == AlertKind.LOW_STOCK
        assert alerts[0].severity == AlertSeverity.HIGH
        assert alerts[0].id == "SLA_STOCK_I1"

    def test_balance_zero_critical(self):
        alerts = evaluate_alerts(NOW, items=[item("I1", 20)], movements=moves("I1", entries=10, exits=10))
        assert alerts[0].severity == AlertSeverity.CRITICAL

    def test_negative_balance_critical(self):
        alerts = evaluate_alerts(NOW, items=[item("I1", 20)], movements=moves("I1", entries=5, exits=8))
        assert alerts[0].severity == AlertSeverity.CRITICAL

    def test_balance_above_reorder_point_no_alert(self):
        assert evaluate_alerts(NOW, items=[item("I1", 20)], movements=moves("I1", entries=21)) == []

    def test_negative_reorder_point_above_threshold_no_alert(self):
        # Solde -3, point de commande -5: pas encore atteint
        assert evaluate_alerts(NOW, items=[item("I1", -5)], movements=moves("I1", exits=3)) == []

    def test_negative_reorder_point_reached_critical(self):
        alerts = evaluate_alerts(NOW, items=[item("I1", -5)], movements=moves("I1", exits=6))
        assert len(alerts) == 1
        assert alerts[0].severity == AlertSeverity.CRITICAL

    def test_item_without_movements_is_zero(self):
        alerts = evaluate_alerts(NOW, items=[item("I1", 5)], movements=[])
        assert alerts[0].severity == AlertSeverity.CRITICAL

    def test_message_reports_balance_unit_and_reorder_point(self):
        alerts = evaluate_alerts(
            NOW, items=[item("I1", 5, name="Inversor 5kW", unit="pç")], movements=moves("I1", entries=3)
        )
        assert alerts[0].message == 'Estoque de "Inversor 5kW" está baixo: 3 pç (Mínimo: 5)'

    def test_balances_are_per_item(self):
        balances = stock_balances(moves("A", entries=10, exits=4) + moves("B", entries=2))
        assert balances == {"A": 6, "B": 2}

    def test_movements_unavailable_skips_rule(self):
        assert evaluate_alerts(NOW, items=[item("I1", 5)], movements=None) == []


class TestOverduePurchase:
    def test_thirty_days_no_alert(self):
        assert evaluate_alerts(NOW, purchases=[purchase("C1", 30)]) == []

    def test_thirty_one_days_medium(self):
        alerts = evaluate_alerts(NOW, purchases=[purchase("C1", 31)])
        assert alerts[0].kind == AlertKind.PURCHASE_OVERDUE
        assert alerts[0].severity == AlertSeverity.MEDIUM
        assert alerts[0].id == "SLA_PURCHASE_C1"

    def test_no_escalation(self):
        alerts = evaluate_alerts(NOW, purchases=[purchase("C1", 400)])
        assert alerts[0].severity == AlertSeverity.MEDIUM

    def test_only_pending(self):
        assert evaluate_alerts(NOW, purchases=[purchase("C1", 90, status="Entregue")]) == []

    def test_threshold_is_configurable(self):
        alerts = evaluate_alerts(NOW, purchases=[purchase("C1", 21)], rules={"purchase_overdue_days": 20})
        assert len(alerts) == 1


class TestEngine:
    def test_scenario_three_alerts(self):
        alerts = evaluate_alerts(
            NOW,
            leads=[lead("L1", 10)],
            proposals=[proposal("P1", 20)],
            items=[item("I1", 5)],
            movements=moves("I1", entries=5, exits=2),
            purchases=[],
        )
        got = {(a.kind, a.severity) for a in alerts}
        assert len(alerts) == 3
        assert got == {
            (AlertKind.LEAD_STALE, AlertSeverity.HIGH),
            (AlertKind.PROPOSAL_EXPIRED, AlertSeverity.MEDIUM),
            (AlertKind.LOW_STOCK, AlertSeverity.HIGH),
        }

    def test_ids_are_idempotent(self):
        kwargs = dict(
            leads=[lead("L1", 10), lead("L2", 20)],
            proposals=[proposal("P1", 40)],
            items=[item("I1", 5)],
            movements=[],
            purchases=[purchase("C1", 45)],
        )
        first = {a.id for a in evaluate_alerts(NOW, **kwargs)}
        second = {a.id for a in evaluate_alerts(NOW + timedelta(minutes=10), **kwargs)}
        assert first == second

    def test_detected_at_is_evaluation_instant(self):
        alerts = evaluate_alerts(NOW, leads=[lead("L1", 10)])
        assert alerts[0].detected_at == NOW.isoformat()

    def test_sorted_by_severity_desc(self):
        alerts = evaluate_alerts(
            NOW,
            proposals=[proposal("P1", 20)],
            leads=[lead("L1", 30)],
            purchases=[purchase("C1", 31)],
        )
        ranks = [a.severity.rank for a in alerts]
        assert ranks == sorted(ranks, reverse=True)
        assert alerts[0].severity == AlertSeverity.CRITICAL

    def test_partial_fetch_failure(self):
        alerts = evaluate_alerts(
            NOW,
            leads=[lead("L1", 10)],
            proposals=[proposal("P1", 20)],
            items=[item("I1", 5)],
            movements=moves("I1", entries=3),
            purchases=None,
        )
        kinds = {a.kind for a in alerts}
        assert kinds == {AlertKind.LEAD_STALE, AlertKind.PROPOSAL_EXPIRED, AlertKind.LOW_STOCK}

    def test_bad_record_does_not_block_batch(self, caplog):
        broken = {"id": "L_BAD", "name": "X", "status": "Novo", "entry_date": "not a date"}
        missing = {"id": "L_MISSING", "name": "Y", "status": "Novo"}
        with caplog.at_level(logging.WARNING, logger="sla_rules"):
            alerts = evaluate_alerts(NOW, leads=[broken, lead("L1", 10), missing])
        assert [a.id for a in alerts] == ["SLA_LEAD_L1"]
        assert "L_BAD" in caplog.text

    def test_aware_now_accepted(self):
        now = datetime.now(timezone.utc)
        alerts = evaluate_alerts(now, leads=[lead("L1", 20, now=datetime.now())])
        assert len(alerts) == 1


class TestAcknowledgements:
    def test_overlay_from_id_set(self):
        acknowledged = {"SLA_LEAD_L1"}
        alerts = evaluate_alerts(NOW, leads=[lead("L1", 10), lead("L2", 10)], acknowledged=acknowledged)
        resolved = {a.id: a.resolved for a in alerts}
        assert resolved == {"SLA_LEAD_L1": True, "SLA_LEAD_L2": False}
        assert acknowledged == {"SLA_LEAD_L1"}

    def test_overlay_from_records(self):
        records = {"SLA_LEAD_L1": {"id": "SLA_LEAD_L1", "resolved_at": "2026-10-18T09:00:00+00:00",
                                   "resolved_by": "ana@solar.com"}}
        alerts = evaluate_alerts(NOW, leads=[lead("L1", 10)], acknowledged=records)
        assert alerts[0].resolved is True
        assert alerts[0].resolved_by == "ana@solar.com"

    def test_acknowledged_id_without_condition_produces_nothing(self):
        assert evaluate_alerts(NOW, leads=[lead("L1", 2)], acknowledged={"SLA_LEAD_L1"}) == []


class TestThresholdTables:
    def test_first_match_wins(self):
        table = build_threshold_tables()[AlertKind.LEAD_STALE]
        assert severity_above(15, table) == AlertSeverity.CRITICAL
        assert severity_above(8, table) == AlertSeverity.HIGH
        assert severity_above(7, table) is None

    def test_overrides_merge_with_defaults(self):
        tables = build_threshold_tables({"lead_stale_days": 3})
        assert tables[AlertKind.LEAD_STALE] == [(14, AlertSeverity.CRITICAL), (3, AlertSeverity.HIGH)]


class TestSummary:
    def test_compliance_index(self):
        alerts = evaluate_alerts(
            NOW, leads=[lead("L1", 10), lead("L2", 20), lead("L3", 9), lead("L4", 30)],
            acknowledged={"SLA_LEAD_L1"},
        )
        summary = summarize_alerts(alerts)
        assert summary["total"] == 4
        assert summary["active"] == 3
        assert summary["resolved"] == 1
        assert summary["compliance_index"] == 25.0
        assert summary["by_severity"]["critical"] == 2
        assert summary["by_severity"]["high"] == 1
        assert summary["by_kind"] == {"LEAD_STALE": 3}

    def test_empty_is_fully_compliant(self):
        assert summarize_alerts([])["compliance_index"] == 100.0
