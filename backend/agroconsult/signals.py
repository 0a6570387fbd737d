# Overview: In-process pub/sub hooks the realtime chat transport subscribes to.

"""
Realtime fan-out hooks.

The websocket/chat transport lives outside this service. It connects to these
blinker signals (Flask's own signalling library) and pushes to connected
clients. Senders never wait on or depend on receivers: publish() runs after
the database commit and a failing receiver is logged, not propagated.
"""

from __future__ import annotations

from blinker import Namespace
from flask import current_app

_signals = Namespace()

notification_created = _signals.signal("notification-created")
adjustment_request_changed = _signals.signal("adjustment-request-changed")


def publish(signal, **payload) -> None:
    try:
        signal.send(current_app._get_current_object(), **payload)
    except Exception:
        current_app.logger.exception("Realtime receiver failed for %s", signal.name)
