"""Prometheus metrics instrumentation for the relay and the call client.

Metrics are exposed by the relay app at /metrics. The client process
updates the same registry; expose it with start_metrics_server() if needed.

Metrics exported:
- relay_active_connections: Gauge of identities currently connected to the relay
- relay_messages_total: Counter of relay frames by message type and outcome
- signaling_reconnect_attempts_total: Counter of client reconnect attempts
- call_session_transitions_total: Counter of call session state changes

Usage:
    from peercall.services.metrics import relay_messages

    relay_messages.labels(type='call-offer', outcome='routed').inc()
"""

from prometheus_client import Counter, Gauge, start_http_server
import logging

logger = logging.getLogger(__name__)

# Relay connections
relay_active_connections = Gauge(
    'relay_active_connections',
    'Number of identities currently connected to the relay'
)

# Relay traffic
relay_messages = Counter(
    'relay_messages_total',
    'Relay frames handled',
    labelnames=['type', 'outcome']  # outcome: routed, offline, presence, dropped
)

# Client reconnection
reconnect_attempts = Counter(
    'signaling_reconnect_attempts_total',
    'Reconnect attempts made by the signaling channel',
    labelnames=['result']  # result: success, failure
)

# Session state machine
session_transitions = Counter(
    'call_session_transitions_total',
    'Call session state changes',
    labelnames=['state']
)


def start_metrics_server(port: int = 8001):
    """Start Prometheus metrics HTTP server."""
    try:
        start_http_server(port)
        logger.info(f"✅ Metrics server started on port {port}")
    except Exception as e:
        logger.error(f"❌ Failed to start metrics server: {e}")
