"""
Tests for storage row mapping.

Rows arrive with Spanish column names and several spellings per stage;
these tests pin the normalization rules and their defaults.
"""
import inspect
import pytest
from datetime import datetime

from convivencia.models.domain import CaseStage, Severity
from convivencia.services.deadlines import add_business_days, compute_legal_deadline
from convivencia.services.repository import map_severity, map_stage, row_to_case
from convivencia.services.repository import mapping
from convivencia.services.repository.mapping import (
    case_from_dict, case_to_dict, parse_timestamp,
)


NOW = datetime(2025, 4, 1, 8, 0)


class TestMapSeverity:

    @pytest.mark.parametrize("raw,expected", [
        ("leve", Severity.LOW),
        ("grave", Severity.RELEVANT),
        ("relevante", Severity.RELEVANT),
        ("expulsion", Severity.SEVERE_EXPULSION),
        ("gravisima_expulsion", Severity.SEVERE_EXPULSION),
        ("SEVERE_EXPULSION", Severity.SEVERE_EXPULSION),
    ])
    def test_known_values(self, raw, expected):
        assert map_severity(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "desconocida"])
    def test_unknown_defaults_to_relevant(self, raw):
        assert map_severity(raw) == Severity.RELEVANT


class TestMapStage:

    @pytest.mark.parametrize("raw,expected", [
        ("notificado", CaseStage.NOTIFIED),
        ("descargos", CaseStage.REBUTTAL),
        ("resolucion_pendiente", CaseStage.RESOLUTION_PENDING),
        ("cerrado", CaseStage.CLOSED_SANCTION),
        ("cerrado_gcc", CaseStage.CLOSED_MEDIATION),
        ("RECONSIDERATION", CaseStage.RECONSIDERATION),
    ])
    def test_known_values(self, raw, expected):
        assert map_stage(raw) == expected

    def test_unknown_defaults_to_investigation(self):
        assert map_stage("algo_raro") == CaseStage.INVESTIGATION
        assert map_stage(None) == CaseStage.INVESTIGATION


class TestParseTimestamp:

    def test_z_suffix_becomes_naive_utc(self):
        assert parse_timestamp("2025-01-01T10:00:00Z") == datetime(2025, 1, 1, 10, 0)

    def test_offset_converted_to_utc(self):
        assert parse_timestamp("2025-01-01T07:00:00-03:00") == datetime(2025, 1, 1, 10, 0)

    def test_empty_is_none(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None


class TestRowToCase:

    def test_full_row(self):
        row = {
            "id": "uuid-1",
            "folio": "EXP-2025-010",
            "tipo_falta": "expulsion",
            "etapa_proceso": "descargos",
            "fecha_inicio": "2025-01-01T10:00:00Z",
            "plazo_fatal": "2025-01-15T10:00:00Z",
            "creado_por": "u7",
            "acciones_previas": True,
            "estudiantes": {"nombre_completo": "P. Díaz", "curso": "1° Medio"},
        }

        case = row_to_case(row, now=NOW)

        assert case.folio == "EXP-2025-010"
        assert case.db_id == "uuid-1"
        assert case.student_name == "P. Díaz"
        assert case.student_course == "1° Medio"
        assert case.severity == Severity.SEVERE_EXPULSION
        assert case.stage == CaseStage.REBUTTAL
        assert case.fatal_deadline == datetime(2025, 1, 15, 10, 0)
        assert case.owner_id == "u7"
        assert case.prior_actions_on_file is True
        assert case.get_milestone("h-council") is not None

    def test_minimal_row_defaults(self):
        case = row_to_case({"id": "uuid-2"}, now=NOW)

        assert case.folio == "uuid-2"
        assert case.student_name == "Sin nombre"
        assert case.severity == Severity.RELEVANT
        assert case.stage == CaseStage.INVESTIGATION
        assert case.opened_at == NOW
        assert case.fatal_deadline == add_business_days(NOW, 45)
        assert case.prior_actions_on_file is False
        assert case.get_milestone("h-council") is None

    def test_student_as_list(self):
        row = {"id": "x", "estudiantes": [{"nombre_completo": "R. Vera", "curso": "5° A"}]}
        assert row_to_case(row, now=NOW).student_name == "R. Vera"

    def test_empty_student_list(self):
        assert row_to_case({"id": "x", "estudiantes": []}, now=NOW).student_name == "Sin nombre"

    def test_stage_falls_back_to_estado_legal(self):
        row = {"id": "x", "estado_legal": "notificado"}
        assert row_to_case(row, now=NOW).stage == CaseStage.NOTIFIED

    def test_deadline_before_opening_is_recomputed(self):
        row = {
            "id": "x",
            "tipo_falta": "leve",
            "fecha_inicio": "2025-04-01T08:00:00",
            "plazo_fatal": "2025-03-01T08:00:00",
        }
        case = row_to_case(row, now=NOW)
        assert case.fatal_deadline == compute_legal_deadline(NOW, Severity.LOW)


class TestCacheSerialization:

    def test_case_dict_preserves_fields(self):
        case = row_to_case({"id": "x", "folio": "EXP-9", "tipo_falta": "expulsion"}, now=NOW)
        case.get_milestone("h2").completed = True
        case.get_milestone("h2").evidence_url = "https://docs.example/notif.pdf"

        restored = case_from_dict(case_to_dict(case))

        assert restored == case

    def test_conversions_are_per_record(self):
        public = {
            name for name, value in inspect.getmembers(mapping, inspect.isfunction)
            if value.__module__ == mapping.__name__ and not name.startswith("_")
        }
        assert public == {
            "map_severity", "map_stage", "parse_timestamp", "row_to_case",
            "milestone_to_dict", "milestone_from_dict",
            "case_to_dict", "case_from_dict",
            "entry_to_dict", "entry_from_dict",
        }
