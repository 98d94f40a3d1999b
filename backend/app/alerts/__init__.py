"""
alerts — SOS alert construction, broadcast and observer-side reconciliation.

Sub-modules:
    identifiers     — alert ids, reporter tokens, timestamps
    models          — Data structures shared across the system
    builder         — Builds an alert from identity + location + facilities
    channels/       — Primary pub/sub channel and single-slot fallback mailbox
    broadcaster     — Primary-then-fallback publishing
    store           — Observer-side alert collection
    observer        — Dashboard runtime: subscribe, poll, reconcile, persist
    session         — Reporter runtime: SOS state machine, location sharing
"""
