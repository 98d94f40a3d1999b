"""
test_alert_builder.py — Identifiers, the Alert record and build_alert().

Covers:
    • Id / token formats
    • Alert wire format (camelCase), parsing, immutability
    • apply_patch only touching mutable fields
    • End-to-end build for a reporter in central Bengaluru

Run with:
    pytest tests/test_alert_builder.py -v
"""

from __future__ import annotations

import dataclasses
import re
from datetime import datetime, timezone

import pytest

from backend.app.alerts.builder import build_alert
from backend.app.alerts.identifiers import (
    new_blockchain_id,
    new_relay_alert_id,
    new_reporter_alert_id,
    new_transaction_hash,
    utc_timestamp,
)
from backend.app.alerts.models import Alert, AlertStatus, MailboxEnvelope, ReporterIdentity
from backend.app.core.errors import EmptyFacilitySetError
from backend.app.facilities.catalog import FacilityCatalog, default_catalog
from backend.app.spatial.geo import Location


REPORTER_LOCATION = Location(12.9716, 77.5946)
FIXED_NOW = datetime(2025, 9, 22, 10, 30, 0, 123000, tzinfo=timezone.utc)


def _make_identity(name: str = "Asha Rao", id_number: str = "P1234567") -> ReporterIdentity:
    return ReporterIdentity(
        full_name=name,
        id_number=id_number,
        contact="+919800000000",
        blockchain_id="0x" + "ab" * 20,
    )


def _make_alert(**overrides) -> Alert:
    alert = build_alert(_make_identity(), REPORTER_LOCATION, default_catalog(), now=FIXED_NOW)
    return dataclasses.replace(alert, **overrides) if overrides else alert


# ═══════════════════════════════════════════════════════════════════════════
# Identifiers
# ═══════════════════════════════════════════════════════════════════════════

class TestIdentifiers:

    def test_reporter_id_format(self):
        assert re.fullmatch(r"id_[0-9a-z]{9}[0-9a-z]+", new_reporter_alert_id())

    def test_reporter_id_encodes_time_in_base36(self):
        alert_id = new_reporter_alert_id(now_ms=36 ** 3)
        assert alert_id.endswith("1000")
        assert len(alert_id) == 3 + 9 + 4

    def test_relay_id_format(self):
        assert re.fullmatch(r"alert_1758537000000_[0-9a-z]{9}", new_relay_alert_id(1758537000000))

    def test_ids_unique(self):
        assert len({new_reporter_alert_id() for _ in range(200)}) == 200

    def test_blockchain_id(self):
        assert re.fullmatch(r"0x[0-9a-f]{40}", new_blockchain_id())

    def test_transaction_hash(self):
        assert re.fullmatch(r"0x[0-9a-f]{64}", new_transaction_hash())

    def test_utc_timestamp_format(self):
        assert utc_timestamp(FIXED_NOW) == "2025-09-22T10:30:00.123Z"


# ═══════════════════════════════════════════════════════════════════════════
# Alert record
# ═══════════════════════════════════════════════════════════════════════════

class TestAlertRecord:

    def test_to_dict_camel_case(self):
        d = _make_alert().to_dict()
        assert set(d) == {
            "id", "userName", "idNumber", "blockchainId", "contact",
            "latitude", "longitude", "nearestPolice", "nearestHospital",
            "timestamp", "status", "transactionHash", "sentToPolice", "sentToHospital",
        }
        assert d["userName"] == "Asha Rao"
        assert d["nearestPolice"]["name"] == "Cubbon Park Police Station"
        assert d["timestamp"] == "2025-09-22T10:30:00.123Z"

    def test_from_dict_restores_record(self):
        alert = _make_alert()
        assert Alert.from_dict(alert.to_dict()) == alert

    def test_from_dict_keeps_unknown_status(self):
        d = _make_alert().to_dict()
        d["status"] = "escalated"
        assert Alert.from_dict(d).status == "escalated"

    @pytest.mark.parametrize("missing", ["id", "latitude", "nearestPolice"])
    def test_from_dict_rejects_incomplete(self, missing):
        d = _make_alert().to_dict()
        del d[missing]
        with pytest.raises(KeyError):
            Alert.from_dict(d)

    def test_frozen(self):
        alert = _make_alert()
        with pytest.raises(dataclasses.FrozenInstanceError):
            alert.status = "resolved"


class TestApplyPatch:

    def test_status_and_flags_merged(self):
        alert = _make_alert()
        patched = alert.apply_patch({"status": "resolved", "sentToPolice": True})
        assert patched.status == "resolved"
        assert patched.sent_to_police is True
        assert patched.sent_to_hospital is False
        assert alert.status == "pending"

    def test_enum_status_accepted(self):
        assert _make_alert().apply_patch({"status": AlertStatus.DISPATCHED}).status == "dispatched"

    def test_flags_independent_of_status(self):
        patched = _make_alert().apply_patch({"sentToHospital": True})
        assert patched.status == "pending"
        assert patched.sent_to_hospital is True

    def test_immutable_fields_ignored(self):
        alert = _make_alert()
        patched = alert.apply_patch({
            "id": "other", "userName": "Mallory", "latitude": 0.0,
            "nearestPolice": None, "transactionHash": "0x00",
        })
        assert patched == alert

    def test_non_bool_flags_ignored(self):
        alert = _make_alert()
        patched = alert.apply_patch({"sentToPolice": "false", "sentToHospital": 1})
        assert patched is alert

    def test_null_status_ignored(self):
        alert = _make_alert()
        assert alert.apply_patch({"status": None}) is alert
        assert alert.apply_patch({"status": None, "sentToPolice": True}).status == "pending"

    def test_empty_patch_returns_same(self):
        alert = _make_alert()
        assert alert.apply_patch({}) is alert


class TestMailboxEnvelope:

    def test_wire_shape(self):
        env = MailboxEnvelope(timestamp=1758537000000, data={"lat": 1.0, "lng": 2.0})
        assert env.to_dict() == {"timestamp": 1758537000000, "data": {"lat": 1.0, "lng": 2.0}}
        assert MailboxEnvelope.from_dict(env.to_dict()) == env

    def test_missing_data(self):
        with pytest.raises(KeyError):
            MailboxEnvelope.from_dict({"timestamp": 1})


# ═══════════════════════════════════════════════════════════════════════════
# Builder
# ═══════════════════════════════════════════════════════════════════════════

class TestBuildAlert:

    def test_end_to_end_bengaluru(self):
        alert = _make_alert()
        assert alert.nearest_police.facility.name == "Cubbon Park Police Station"
        assert alert.nearest_police.distance_km < 1.0
        assert alert.nearest_hospital.facility.name == "Manipal Hospital"
        assert alert.status == "pending"
        assert alert.sent_to_police is False
        assert alert.sent_to_hospital is False
        assert alert.is_pending

    def test_fresh_ids_and_hashes(self):
        a = _make_alert()
        b = _make_alert()
        assert a.id != b.id
        assert a.transaction_hash != b.transaction_hash
        assert a.id.startswith("id_")

    def test_custom_id_factory(self):
        alert = build_alert(
            _make_identity(), REPORTER_LOCATION, default_catalog(),
            id_factory=lambda: "fixed-id",
        )
        assert alert.id == "fixed-id"

    def test_location_and_identity_copied(self):
        alert = _make_alert()
        assert alert.location == REPORTER_LOCATION
        assert alert.reporter.id_number == "P1234567"

    def test_empty_police_catalog(self):
        catalog = FacilityCatalog(police=(), hospitals=default_catalog().hospitals)
        with pytest.raises(EmptyFacilitySetError) as exc:
            build_alert(_make_identity(), REPORTER_LOCATION, catalog)
        assert exc.value.details["kind"] == "police"

    def test_empty_hospital_catalog(self):
        catalog = FacilityCatalog(police=default_catalog().police, hospitals=())
        with pytest.raises(EmptyFacilitySetError) as exc:
            build_alert(_make_identity(), REPORTER_LOCATION, catalog)
        assert exc.value.details["kind"] == "hospital"
