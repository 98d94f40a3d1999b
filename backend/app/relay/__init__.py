"""
Relay server support.

    client.py  — async HTTP client used by reporters to submit alerts
    hub.py     — the relay's in-memory alert cache and event fan-out
"""
