"""Tests for IncidentService authorization and read paths."""

import pytest

from core.errors import InvalidInput, NotFound, Unauthorized
from core.models import Caller, Category, ResponderProfile, Role

from conftest import offset, register_responder


class TestSubmit:
    def test_responder_cannot_submit(self, service, hospital):
        with pytest.raises(Unauthorized):
            service.submit_report(hospital, offset())

    def test_unknown_category(self, service, reporter):
        with pytest.raises(InvalidInput):
            service.submit_report(reporter, offset(), category="flood")
        assert len(service.store.snapshot()) == 0

    def test_location_must_be_geopoint(self, service, reporter):
        with pytest.raises(InvalidInput):
            service.submit_report(reporter, (51.5, -0.12))

    def test_result_dict(self, service, reporter):
        res = service.submit_report(reporter, offset())
        d = res.to_dict()
        assert d == {"report_id": res.report.report_id, "incident_id": res.incident.incident_id, "cluster_new": True}

    def test_report_timestamp_from_clock(self, service, reporter, clock):
        res = service.submit_report(reporter, offset())
        assert res.report.created_at == clock.now
        assert res.incident.created_at == clock.now


class TestReportVisibility:
    def test_owner_sees_report(self, service, reporter):
        res = service.submit_report(reporter, offset(), category=Category.MEDICAL)
        got = service.get_report(reporter, res.report.report_id)
        assert got.category is Category.MEDICAL

    def test_other_reporter_cannot_see(self, service, reporter, other_reporter):
        res = service.submit_report(reporter, offset())
        with pytest.raises(Unauthorized):
            service.get_report(other_reporter, res.report.report_id)

    def test_responder_cannot_see(self, service, reporter, hospital):
        res = service.submit_report(reporter, offset())
        with pytest.raises(Unauthorized):
            service.get_report(hospital, res.report.report_id)

    def test_missing_report(self, service, reporter):
        with pytest.raises(NotFound):
            service.get_report(reporter, "report-missing")

    def test_list_reports_own_only_in_order(self, service, reporter, other_reporter, clock):
        first = service.submit_report(reporter, offset())
        clock.advance(minutes=1)
        service.submit_report(other_reporter, offset(north_m=10))
        clock.advance(minutes=1)
        second = service.submit_report(reporter, offset(north_m=5_000))
        ids = [r.report_id for r in service.list_reports(reporter)]
        assert ids == [first.report.report_id, second.report.report_id]
        assert len(service.list_reports(other_reporter)) == 1


class TestIncidentSummary:
    def test_summary(self, service, reporter):
        res = service.submit_report(reporter, offset())
        assert service.get_incident_summary(res.incident.incident_id).report_count == 1

    def test_missing(self, service):
        with pytest.raises(NotFound):
            service.get_incident_summary("incident-missing")


class TestResponders:
    def test_nearby_requires_profile(self, service):
        stranger = Caller(caller_id="hospital-9", role=Role.RESPONDER)
        with pytest.raises(Unauthorized):
            service.nearby_incidents(stranger)

    def test_nearby_requires_responder_role(self, service, reporter):
        with pytest.raises(Unauthorized):
            service.nearby_incidents(reporter)

    def test_profile_registration(self, service, clock):
        caller = Caller(caller_id="hospital-3", role=Role.RESPONDER)
        profile = service.register_profile(caller, ResponderProfile(responder_id="hospital-3", location=offset(), phone="+44"))
        assert profile.updated_at == clock.now
        assert service.get_profile("hospital-3").phone == "+44"

    def test_cannot_register_someone_elses_profile(self, service, hospital, other_hospital):
        with pytest.raises(Unauthorized):
            service.register_profile(other_hospital, ResponderProfile(
                responder_id="hospital-1", location=offset(north_m=50_000), radius_m=100_000))
        assert service.get_profile("hospital-1").location == offset()

    def test_reporter_cannot_register_profile(self, service, reporter):
        with pytest.raises(Unauthorized):
            service.register_profile(reporter, ResponderProfile(responder_id="user-1", location=offset()))
        with pytest.raises(NotFound):
            service.get_profile("user-1")

    def test_radius_above_cap_rejected(self, service, hospital):
        cap = service.settings.max_geofence_radius_m
        with pytest.raises(InvalidInput):
            register_responder(service, "hospital-1", offset(), radius_m=cap + 1)
        assert service.get_profile("hospital-1").radius_m is None
        assert register_responder(service, "hospital-1", offset(), radius_m=cap) == hospital

    def test_missing_profile(self, service):
        with pytest.raises(NotFound):
            service.get_profile("hospital-9")

    def test_radius_for(self, service):
        default = ResponderProfile(responder_id="h", location=offset())
        custom = ResponderProfile(responder_id="h", location=offset(), radius_m=2_500)
        assert service.radius_for(default) == service.settings.geofence_radius_m
        assert service.radius_for(custom) == 2_500

    def test_moving_profile_moves_geofence(self, service, reporter, hospital):
        iid = service.submit_report(reporter, offset()).incident.incident_id
        register_responder(service, "hospital-1", offset(north_m=30_000))
        assert service.nearby_incidents(hospital) == []
        with pytest.raises(Unauthorized):
            service.accept(hospital, iid)
