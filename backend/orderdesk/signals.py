# Overview: Domain signals emitted after committed state changes.

from blinker import Namespace

_signals = Namespace()

# Sent by order_service.confirm_order after the confirmation is committed.
# Receivers get the application as sender and the order as `order`.
order_confirmed = _signals.signal("order-confirmed")
