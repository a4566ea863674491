"""
Tests for the command parser (strict and free-text grammars).
"""

from datetime import date

import pytest

from ..models import Command
from ..parser import match_keyword, parse_command, resolve_appointment_type

TODAY = date(2026, 1, 10)


# ============================================================================
# Strict grammar
# ============================================================================

class TestStrictGrammar:
    """Test the '|' separated grammar"""

    def test_schedule_fields(self):
        intent = parse_command("AGENDAR|Sol|2026-02-25|16:00|PARTICULAR", TODAY)
        assert intent.command is Command.SCHEDULE
        assert intent.fields == {
            "patient": "Sol",
            "date": "2026-02-25",
            "time": "16:00",
            "type": "PARTICULAR",
        }
        assert intent.errors == []

    def test_keyword_is_case_and_accent_insensitive(self):
        intent = parse_command("agéndar | Sol | 25/2 | 16 | os", TODAY)
        assert intent.command is Command.SCHEDULE
        assert intent.fields["date"] == "2026-02-25"
        assert intent.fields["time"] == "16:00"
        assert intent.fields["type"] == "OS"

    def test_missing_type_defaults_to_particular(self):
        intent = parse_command("AGENDAR|Sol|2026-02-25|16:00", TODAY)
        assert intent.fields["type"] == "PARTICULAR"

    def test_missing_fields_pass_through_empty(self):
        intent = parse_command("AGENDAR|Sol", TODAY)
        assert intent.command is Command.SCHEDULE
        assert intent.fields["date"] == ""
        assert intent.fields["time"] == ""

    def test_unparsable_date_passes_raw_value(self):
        intent = parse_command("AGENDAR|Sol|31/02|16:00", TODAY)
        assert intent.fields["date"] == "31/02"
        assert intent.errors

    def test_reschedule(self):
        intent = parse_command("REPROGRAMAR|abc-123|26/2|17:30", TODAY)
        assert intent.command is Command.RESCHEDULE
        assert intent.fields == {"id": "abc-123", "date": "2026-02-26", "time": "17:30"}

    def test_payment_detail_is_optional(self):
        assert parse_command("PAGADO|abc-123", TODAY).fields == {"id": "abc-123", "detail": ""}
        assert parse_command("PAGADO|abc-123|efectivo", TODAY).fields["detail"] == "efectivo"

    def test_note_keeps_separator_in_text(self):
        intent = parse_command("NOTA|abc-123|trae estudios|y receta", TODAY)
        assert intent.fields == {"id": "abc-123", "note": "trae estudios|y receta"}

    @pytest.mark.parametrize("text,command,field_name", [
        ("LISTAR|2026-02-25", Command.LIST, "date"),
        ("BUSCAR|Sol", Command.SEARCH, "patient"),
        ("CANCELAR|abc-123", Command.CANCEL, "id"),
        ("ESTADO|abc-123", Command.STATUS, "id"),
    ])
    def test_single_field_commands(self, text, command, field_name):
        intent = parse_command(text, TODAY)
        assert intent.command is command
        assert list(intent.fields) == [field_name]

    def test_help(self):
        intent = parse_command("AYUDA|", TODAY)
        assert intent.command is Command.HELP
        assert intent.fields == {}

    def test_unknown_keyword(self):
        intent = parse_command("HOLA|Sol", TODAY)
        assert intent.command is Command.UNRECOGNIZED
        assert not intent.recognized


# ============================================================================
# Free-text grammar
# ============================================================================

class TestFreeTextGrammar:
    """Test keyword-prefix matching and token heuristics"""

    def test_schedule_matches_strict_equivalent(self):
        free = parse_command("Agendá Sol 25/2 16:00 particular", TODAY)
        strict = parse_command("AGENDAR|Sol|2026-02-25|16:00|PARTICULAR", TODAY)
        assert free == strict

    def test_schedule_multi_word_name_and_os(self):
        intent = parse_command("agendar Juan Pérez 5/3 10 OS", TODAY)
        assert intent.fields == {
            "patient": "Juan Pérez",
            "date": "2026-03-05",
            "time": "10:00",
            "type": "OS",
        }

    def test_schedule_time_before_date(self):
        intent = parse_command("Agendar Sol 16:00 25/2", TODAY)
        assert intent.fields["patient"] == "Sol"
        assert intent.fields["date"] == "2026-02-25"
        assert intent.fields["time"] == "16:00"

    def test_schedule_drops_repeated_keyword_tokens(self):
        intent = parse_command("Agenda: agendar Sol 25/2 16", TODAY)
        assert intent.fields["patient"] == "Sol"

    def test_schedule_obra_social_phrase(self):
        intent = parse_command("Agendá Rosa 25/2 16 por obra social", TODAY)
        assert intent.fields["patient"] == "Rosa"
        assert intent.fields["type"] == "OS"

    def test_schedule_marker_followed_by_punctuation(self):
        intent = parse_command("Agendá Sol 25/2 16 OS,", TODAY)
        assert intent.fields["patient"] == "Sol"
        assert intent.fields["type"] == "OS"

    def test_schedule_without_date_reports_error(self):
        intent = parse_command("Agendá Sol mañana 16", TODAY)
        assert intent.command is Command.SCHEDULE
        assert intent.fields["date"] is None
        assert intent.errors

    def test_reschedule_three_tokens(self):
        intent = parse_command("Reprogramá abc-123 26/2 17:30", TODAY)
        assert intent.command is Command.RESCHEDULE
        assert intent.fields == {"id": "abc-123", "date": "2026-02-26", "time": "17:30"}
        assert intent.errors == []

    def test_reschedule_unparsable_tokens_are_none(self):
        intent = parse_command("reprogramar abc-123 pronto", TODAY)
        assert intent.fields == {"id": "abc-123", "date": None, "time": None}
        assert intent.errors

    def test_payment_splits_at_first_whitespace(self):
        intent = parse_command("pagado abc-123 transferencia 5000", TODAY)
        assert intent.command is Command.PAY
        assert intent.fields == {"id": "abc-123", "detail": "transferencia 5000"}

    def test_payment_without_detail(self):
        assert parse_command("pago abc-123", TODAY).fields == {"id": "abc-123", "detail": ""}

    def test_note(self):
        intent = parse_command("Nota abc-123 trae estudios", TODAY)
        assert intent.fields == {"id": "abc-123", "note": "trae estudios"}

    def test_list_parses_date(self):
        assert parse_command("listar 25/2", TODAY).fields == {"date": "2026-02-25"}

    def test_search_takes_remainder(self):
        intent = parse_command("Buscá María José", TODAY)
        assert intent.command is Command.SEARCH
        assert intent.fields == {"patient": "María José"}

    def test_cancel_and_status(self):
        assert parse_command("cancelar abc-123", TODAY).fields == {"id": "abc-123"}
        assert parse_command("estado abc-123", TODAY).command is Command.STATUS

    @pytest.mark.parametrize("text", ["hola", "", None, "   ", "quiero un turno"])
    def test_unrecognized(self, text):
        assert parse_command(text, TODAY).command is Command.UNRECOGNIZED


class TestHelpers:
    """Test keyword matching and type resolution"""

    def test_match_keyword_order(self):
        assert match_keyword("AGENDA SOL") is Command.SCHEDULE
        assert match_keyword("PAGO X") is Command.PAY
        assert match_keyword("AYUDA") is Command.HELP
        assert match_keyword("SALUDOS") is None

    @pytest.mark.parametrize("text,expected", [
        ("OS", "OS"),
        ("o.s.", "OS"),
        ("OS,", "OS"),
        ("por O.S", "OS"),
        ("Obra Social", "OS"),
        ("prepaga", "OS"),
        ("particular", "PARTICULAR"),
        ("", "PARTICULAR"),
        ("Oscar", "PARTICULAR"),
        ("Rosa", "PARTICULAR"),
    ])
    def test_resolve_appointment_type(self, text, expected):
        assert resolve_appointment_type(text) == expected
