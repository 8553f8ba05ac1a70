# Overview: Notification signals for real-time consumers (dashboards, socket bridges).

from __future__ import annotations

from blinker import Namespace
from flask import current_app

_signals = Namespace()

# payload: the persisted Sale as a dict
sale_created = _signals.signal("sale-created")

# payload: {"product_id", "branches": [{"id", "quantity"}], "document_id"?}
# or {"type": "bulk", "document_id", "count"} after a bulk transfer/import
stock_updated = _signals.signal("stock-updated")


def emit(signal, payload: dict) -> None:
    """
    Fire-and-forget delivery, at most once.

    A failing subscriber is logged and never propagates into the operation
    that emitted the event; with no subscribers this is a no-op.
    """
    if not signal.receivers:
        return
    try:
        signal.send(current_app._get_current_object(), payload=payload)
    except Exception:
        current_app.logger.exception("Subscriber failed while handling %s", signal.name)
