"""Test doubles shared by the billing tests."""


class ListEmitter:
    """Audit emitter collecting events in memory."""

    events = []

    def emit(self, event):
        ListEmitter.events.append(event)
