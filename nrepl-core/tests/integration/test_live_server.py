"""
Integration tests against a live nREPL server.

Tests verify that:
1. Sessions are created, reused and closed
2. Eval results aggregate values and output across frames
3. Timeouts surface with the eval's id and can be interrupted
4. The connectivity probe works on a healthy connection

Run with: NREPL_TEST_PORT=7888 pytest tests/integration/test_live_server.py -v
"""

import pytest

from nrepl_client import OperationTimeoutError, SessionState

pytestmark = pytest.mark.integration


# ============================================================================
# Session Tests
# ============================================================================


class TestSessions:
    """Test the session lifecycle against a real server."""

    def test_describe_lists_core_ops(self, live_client):
        """Server should advertise the ops the client relies on."""
        description = live_client.describe()
        for op in ["clone", "close", "describe", "eval", "interrupt"]:
            assert description.supports(op), f"server does not advertise {op}"

    def test_clone_and_close(self, live_client):
        """Clone should activate a session and close should release it."""
        session = live_client.clone()
        assert session
        assert live_client.state == SessionState.ACTIVE

        live_client.close()
        assert live_client.session is None
        assert live_client.state == SessionState.CONNECTED


# ============================================================================
# Eval Tests
# ============================================================================


class TestEval:
    """Test evaluation results."""

    def test_simple_value(self, live_client):
        """Arithmetic should come back as its printed value."""
        result = live_client.eval("(+ 1 2 3)")
        assert result.value == "6"
        assert not result.has_error

    def test_output_captured(self, live_client):
        """Printed output should be collected separately from the value."""
        result = live_client.eval('(println "Hello from Python!")')
        assert result.output == "Hello from Python!\n"
        assert result.value == "nil"

    def test_state_persists_in_session(self, live_client):
        """Definitions should survive between evals in one session."""
        live_client.eval("(def answer 42)")
        assert live_client.eval("answer").value == "42"

    def test_error_flagged(self, live_client):
        """Exceptions should set has_error and report on stderr."""
        result = live_client.eval("(/ 1 0)")
        assert result.has_error
        assert result.value is None


# ============================================================================
# Timeout Tests
# ============================================================================


class TestTimeouts:
    """Test eval deadlines and interruption."""

    def test_eval_timeout_then_interrupt(self, live_client):
        """A slow eval should time out and accept an interrupt for its id."""
        with pytest.raises(OperationTimeoutError) as exc_info:
            live_client.eval_with_timeout("(Thread/sleep 2000)", 0.2)
        assert exc_info.value.request_id

        live_client.interrupt(exc_info.value.request_id)
        assert live_client.eval("(+ 1 1)").value == "2"

    def test_probe(self, live_client):
        """is_connected should succeed on a healthy connection."""
        assert live_client.is_connected()


# ============================================================================
# Main
# ============================================================================


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
