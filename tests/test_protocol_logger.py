"""
Tests for the in-memory protocol frame log.
"""

from smc100cc_ctrl.protocol.logger import ProtocolLogger


class TestProtocolLogger:

    def test_tx_description(self):
        log = ProtocolLogger()
        log.log_tx(b"1PA12.500000\r\n")

        (message,) = log.get_messages()
        assert message["direction"] == "TX"
        assert message["text"] == "1PA12.500000[0D][0A]"
        assert message["decoded"] == {"description": "Move to 12.500000"}

    def test_rx_decoding(self):
        log = ProtocolLogger()
        log.log_rx(b"1TS000028")
        log.log_rx(b"1TP3.5")
        log.log_rx(b"1TEH")
        log.log_rx(b"1IDCC_SIM")

        decoded = [m["decoded"] for m in log.get_messages()]
        assert decoded[0]["description"] == "MOVING"
        assert decoded[1] == {"position": 3.5}
        assert decoded[2]["code"] == "NOT_ALLOWED_NOT_REFERENCED"
        assert decoded[3] == {"stage_id": "CC_SIM"}

    def test_bad_reply_counts_as_error(self):
        log = ProtocolLogger()
        log.log_rx(b"1TEZ")
        log.log_rx(b"")

        messages = log.get_messages()
        assert "Unknown error code" in messages[0]["error"]
        assert messages[1]["error"] == "Empty response (timeout?)"
        assert log.get_stats()["error_count"] == 2

    def test_bounded_buffer_and_limit(self):
        log = ProtocolLogger(max_messages=3)
        for _ in range(5):
            log.log_tx(b"1TS\r\n")

        assert len(log.get_messages()) == 3
        assert len(log.get_messages(limit=2)) == 2
        assert log.get_stats()["tx_count"] == 5

    def test_disabled(self):
        log = ProtocolLogger()
        log.enabled = False
        log.log_tx(b"1TS\r\n")
        log.log_error("boom")
        assert log.get_messages() == []

    def test_clear(self):
        log = ProtocolLogger()
        log.log_tx(b"1TS\r\n")
        log.log_error("Read timeout", b"1TS0")
        log.clear()

        assert log.get_messages() == []
        assert log.get_stats()["error_count"] == 0

    def test_round_trip_latency_and_command_counts(self):
        now = [10.0]
        log = ProtocolLogger(clock=lambda: now[0])

        log.log_tx(b"1TS\r\n")
        now[0] += 0.012
        log.log_rx(b"1TS000033")
        log.log_tx(b"1TS\r\n")
        log.log_tx(b"1OR\r\n")

        rx = log.get_messages()[1]
        assert rx["command"] == "TS"
        assert rx["latency_ms"] == 12.0
        stats = log.get_stats()
        assert stats["last_latency_ms"] == 12.0
        assert stats["commands"] == {"TS": 2, "OR": 1}

    def test_error_breaks_pairing(self):
        now = [0.0]
        log = ProtocolLogger(clock=lambda: now[0])

        log.log_tx(b"1TP\r\n")
        log.log_error("Read timeout after 2000 ms")
        log.log_rx(b"1TP1.0")

        assert log.get_messages()[-1]["latency_ms"] is None
