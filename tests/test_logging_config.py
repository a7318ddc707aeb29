"""Log formatter tests."""

import json
import logging

from portal.middleware.logging_config import JSONFormatter, ScopedFormatter


def _record(**extra):
    record = logging.LogRecord("portal.services.phase_transition_service", logging.INFO,
                               __file__, 1, "Phase transition project=%s", (7,), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    def test_json_carries_lifecycle_fields(self):
        payload = json.loads(JSONFormatter().format(
            _record(project_id=7, phase="uat", actor="pm-7", event_type="phase.transition"),
        ))
        assert payload["message"] == "Phase transition project=7"
        assert payload["level"] == "INFO"
        assert {k: payload[k] for k in ("project_id", "phase", "actor", "event_type")} == {
            "project_id": 7, "phase": "uat", "actor": "pm-7", "event_type": "phase.transition",
        }

    def test_json_omits_absent_fields(self):
        payload = json.loads(JSONFormatter().format(_record()))
        assert "project_id" not in payload
        assert "duration_ms" not in payload

    def test_scoped_line(self):
        line = ScopedFormatter().format(_record(project_id=7, event_type="phase.transition"))
        assert line.endswith(
            "portal.services.phase_transition_service [project_id=7 event_type=phase.transition] "
            "Phase transition project=7"
        )
        assert "[" not in ScopedFormatter().format(_record())
