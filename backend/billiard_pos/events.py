# Overview: Outbound event channel (blinker signals) for live dashboards and other subscribers.

from __future__ import annotations

import logging

from blinker import ANY, Namespace
"""
Event Channel Invariants

- publish() is called only after the state change has been committed.
- Delivery is best-effort and at-most-once: each receiver runs independently,
  a failing receiver is logged and skipped, and nothing propagates back to the
  operation that published.
"""

# Child of the Flask app logger ("billiard_pos"), so app log handlers apply.
logger = logging.getLogger(__name__)

pos_signals = Namespace()

table_changed = pos_signals.signal("table-changed")
tables_updated = pos_signals.signal("tables-updated")
order_changed = pos_signals.signal("order-changed")
transaction_completed = pos_signals.signal("transaction-completed")
inventory_changed = pos_signals.signal("inventory-changed")


def publish(signal, **payload) -> int:
    """
    Deliver payload to every receiver of signal. Returns how many receivers
    completed without raising.
    """
    delivered = 0
    for receiver in list(signal.receivers_for(ANY)):
        try:
            receiver(signal.name, **payload)
            delivered += 1
        except Exception:
            logger.exception("Event receiver failed for %s", signal.name)
    return delivered
