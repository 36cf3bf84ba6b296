"""Signals published by the agent commissions services."""

from django.db import transaction
from django.dispatch import Signal

# Sent once per domain event after the change is committed.
# Receivers get ``event`` (a DomainEvent instance) as a keyword argument.
domain_event = Signal()


def send(sender, events):
    for event in events:
        domain_event.send(sender=sender, event=event)


def publish(sender, events, using=None):
    """
    Send ``events`` when the transaction on ``using`` commits.

    Outside a transaction they are sent immediately; if the enclosing
    transaction rolls back they are never sent.
    """
    events = list(events)
    if events:
        transaction.on_commit(lambda: send(sender, events), using=using)
