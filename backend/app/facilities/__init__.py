"""
facilities — Fixed reference points (police stations, hospitals).

Sub-modules:
    models    — Facility / NearestFacility value types
    catalog   — the built-in Bengaluru catalog and JSON catalog loading
    resolver  — exhaustive nearest-facility selection
"""
