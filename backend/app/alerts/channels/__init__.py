"""
channels — Delivery paths for alerts and location updates.

    in_process  — primary channel: ephemeral publish/subscribe, no queuing
    mailbox     — fallback channel: single-slot persisted envelope

Ordering and fallback policy live in alerts.broadcaster.
"""
