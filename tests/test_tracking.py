from medicrew.core import tracking


def test_tracking_enabled():
    result = {"triage_level": "urgent"}
    assert tracking.tracking_enabled(True, result, (1.0, 2.0), "granted")
    assert not tracking.tracking_enabled(False, result, (1.0, 2.0), "granted")
    assert not tracking.tracking_enabled(True, None, (1.0, 2.0), "granted")
    assert not tracking.tracking_enabled(True, result, None, "granted")
    assert not tracking.tracking_enabled(True, result, (1.0, 2.0), "denied")


def test_is_due():
    assert tracking.is_due(None, 15)
    assert not tracking.is_due(100.0, 15, now=110.0)
    assert tracking.is_due(100.0, 15, now=115.0)


def test_apply_tracking_update():
    result = {"nearby_doctors_list": [{"doctor_id": "a"}], "real_time_tracking": {"status": "tracking"}}
    assert tracking.apply_tracking_update(result, {}) is result
    assert tracking.apply_tracking_update(result, {"nearby_doctors_list": None}) is result
    merged = tracking.apply_tracking_update(
        result, {"nearby_doctors_list": [{"doctor_id": "b"}], "real_time_tracking": {"status": "updated"}}
    )
    assert merged["nearby_doctors_list"] == [{"doctor_id": "b"}]
    assert merged["real_time_tracking"] == {"status": "updated"}
    assert result["nearby_doctors_list"] == [{"doctor_id": "a"}]


def test_refresh_uses_parsed_summary():
    seen = {}

    def fetch(location, summary):
        seen["args"] = (location, summary)
        return {"nearby_doctors_list": [{"doctor_id": "c"}]}

    out = tracking.refresh_doctors({"parsed_summary": "sore throat"}, (1.0, 2.0), "raw text", fetch)
    assert seen["args"] == ((1.0, 2.0), "sore throat")
    assert out["nearby_doctors_list"] == [{"doctor_id": "c"}]


def test_refresh_failure_keeps_previous_list():
    result = {"nearby_doctors_list": [{"doctor_id": "a"}]}

    def fetch(location, summary):
        raise ConnectionError("offline")

    assert tracking.refresh_doctors(result, (1.0, 2.0), "x", fetch) is result


def test_empty_update_clears_offline_doctors():
    result = {"nearby_doctors_list": [{"doctor_id": "a"}], "real_time_tracking": {"status": "tracking"}}

    def fetch(location, summary):
        return {"nearby_doctors_list": [], "real_time_tracking": {"status": "no_doctors"}}

    out = tracking.refresh_doctors(result, (1.0, 2.0), "x", fetch)
    assert out["nearby_doctors_list"] == []
    assert out["real_time_tracking"] == {"status": "no_doctors"}
