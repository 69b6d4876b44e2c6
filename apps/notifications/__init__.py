"""Event outbox and delivery to the external notifier."""
