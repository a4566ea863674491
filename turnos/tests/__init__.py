"""
Tests for the Turnos appointment assistant

Test suite covering:
- Input normalization and both parser grammars
- Appointment engine lifecycle, conflicts and best-effort calendar sync
- Store backends (in-memory, Redis, Google Sheets)
- Calendar adapter, reply formatting and outbound delivery
- Webhook and API endpoints

Run tests with:
    python -m pytest turnos/tests/ -v
    python -m pytest turnos/tests/test_engine.py -v
"""
