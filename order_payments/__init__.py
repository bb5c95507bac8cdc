"""
Order Payments - payment processing for monetary orders.

An order is created as pending and then charged against an external
settlement gateway until it reaches a terminal paid state. This package holds
the order/payment state machine, the per-order lease that prevents double
charging, the failed-attempt throttle and the gateway client.
"""

__version__ = "1.0.0"
