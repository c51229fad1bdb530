from __future__ import annotations

import logging

from buzzex_trader.core.logger import _mask_sensitive, log_performance, setup_logging


def test_mask_sensitive_masks_credentials_and_scrubs_strings():
    event = {
        "api_secret": "supersecretvalue",
        "api_key": "short",
        "url": "https://api.buzzex.io/tapi?key=abc123&nonce=9",
        "nested": {"body": "method=trade&sign=deadbeef"},
    }
    out = _mask_sensitive(None, None, dict(event))
    assert out["api_secret"] == "supe****alue"
    assert out["api_key"] == "****"
    assert "abc123" not in out["url"]
    assert "deadbeef" not in out["nested"]["body"]


def test_setup_logging_silences_httpx(tmp_path):
    root = logging.getLogger()
    previous = root.handlers[:]
    try:
        setup_logging(log_level="DEBUG", log_dir=str(tmp_path))
        assert logging.getLogger("httpx").level >= logging.WARNING
        assert (tmp_path / "buzzex_trader.log").exists()
    finally:
        for h in root.handlers[:]:
            h.close()
            root.removeHandler(h)
        for h in previous:
            root.addHandler(h)


class _RecordingLogger:
    def __init__(self):
        self.records = []

    def debug(self, event, **kw):
        self.records.append(("debug", event, kw))

    def warning(self, event, **kw):
        self.records.append(("warning", event, kw))


def test_log_performance_reports_failures():
    rec = _RecordingLogger()
    try:
        with log_performance(rec, "trade", pair="ETH_BTC"):
            raise RuntimeError("boom")
    except RuntimeError:
        pass
    level, event, kw = rec.records[0]
    assert level == "warning"
    assert event == "trade failed"
    assert kw["pair"] == "ETH_BTC"
    assert kw["error"] == "boom"
