from guardian_backend.app import models
from guardian_backend.app.relay import RelayMode, RelayState


def test_get_thresholds_bootstraps_defaults(client, db_session):
    body = client.get("/api/thresholds").json()

    assert body == {
        "status": "success",
        "temp_threshold": 30.0,
        "temp_low_threshold": 18.0,
        "hum_threshold": 90.0,
        "auto_relay": True,
        "relay_command": "OFF",
        "relay_reason": "default",
    }
    assert db_session.query(models.ThresholdConfig).count() == 1


def test_get_thresholds_second_call_is_system(client, db_session):
    client.get("/api/thresholds")
    body = client.get("/api/thresholds").json()

    assert body["relay_reason"] == "system"
    assert db_session.query(models.ThresholdConfig).count() == 1


def test_get_thresholds_reports_manual_mode(client, seed_config):
    seed_config(mode=RelayMode.MANUAL, relay=RelayState.ON, humidity_threshold=70.0)

    body = client.get("/api/thresholds").json()

    assert body["auto_relay"] is False
    assert body["relay_command"] == "ON"
    assert body["hum_threshold"] == 70.0


def test_update_without_recognized_fields_is_noop(client, seed_config, stored_config):
    seed_config()

    body = client.get("/api/thresholds/update", params={"colour": "blue"}).json()

    assert body["status"] == "error"
    assert body["message"] == "No valid fields to update"
    assert body["affected_rows"] == 0
    assert body["received_data"] == {"colour": "blue"}
    assert stored_config().temp_high_threshold == 30.0


def test_update_without_input(client):
    body = client.get("/api/thresholds/update").json()

    assert body["status"] == "error"
    assert body["message"] == "No input data received"


def test_update_without_recognized_fields_on_empty_table_creates_row(client, db_session):
    body = client.get("/api/thresholds/update", params={"colour": "blue"}).json()

    assert body["status"] == "error"
    assert body["message"] == "No valid fields to update"
    assert db_session.query(models.ThresholdConfig).count() == 1


def test_update_without_input_leaves_table_empty(client, db_session):
    client.get("/api/thresholds/update")

    assert db_session.query(models.ThresholdConfig).count() == 0


def test_post_huge_integer_threshold_is_dropped(client, seed_config, stored_config):
    seed_config()

    body = client.post("/api/thresholds/update", json={
        "temp_high_threshold": 10**400,
        "humidity_threshold": 55,
    }).json()

    assert body["status"] == "success"
    assert body["updated_values"]["temp_high_threshold"] == 30.0
    assert body["updated_values"]["humidity_threshold"] == 55.0
    config = stored_config()
    assert config.temp_high_threshold == 30.0
    assert config.humidity_threshold == 55.0


def test_range_enforcement(client, seed_config, stored_config):
    seed_config()

    body = client.get("/api/thresholds/update", params={
        "temp_high_threshold": "150",
        "humidity_threshold": "50",
    }).json()
    assert body["status"] == "success"
    assert body["updated_values"]["temp_high_threshold"] == 30.0
    assert body["updated_values"]["humidity_threshold"] == 50.0

    body = client.get("/api/thresholds/update", params={
        "temp_high_threshold": "99",
        "humidity_threshold": "-5",
    }).json()
    assert body["status"] == "success"
    assert body["updated_values"]["temp_high_threshold"] == 99.0
    assert body["updated_values"]["humidity_threshold"] == 50.0

    config = stored_config()
    assert config.temp_high_threshold == 99.0
    assert config.humidity_threshold == 50.0


def test_only_out_of_range_fields_means_no_valid_fields(client, seed_config):
    seed_config()

    body = client.get("/api/thresholds/update", params={"temp_low_threshold": "-80"}).json()

    assert body["status"] == "error"
    assert body["message"] == "No valid fields to update"


def test_post_json_switches_to_manual(client, seed_config, stored_config):
    seed_config(mode=RelayMode.AUTO)

    body = client.post("/api/thresholds/update", json={"auto_relay": False, "temp_low_threshold": 16}).json()

    assert body["status"] == "success"
    assert body["affected_rows"] == 1
    assert body["message"] == "Settings updated successfully"
    assert body["updated_values"] == {
        "temp_high_threshold": 30.0,
        "temp_low_threshold": 16.0,
        "humidity_threshold": 90.0,
        "auto_relay": "no",
    }
    debug = body["debug_info"]
    assert debug["input_auto_relay"] is False
    assert debug["converted_auto_relay"] == "no"
    assert debug["current_db_auto_relay"] == "yes"
    assert debug["final_db_auto_relay"] == "no"
    assert debug["threshold_records_found"] == 1
    assert debug["previous_values"]["temp_low_threshold"] == 18.0

    assert stored_config().auto_relay_control == RelayMode.MANUAL


def test_query_auto_relay_yes_switches_to_auto(client, seed_config, stored_config):
    seed_config(mode=RelayMode.MANUAL)

    body = client.get("/api/thresholds/update", params={"auto_relay": "yes"}).json()

    assert body["status"] == "success"
    assert stored_config().auto_relay_control == RelayMode.AUTO


def test_unrecognized_auto_relay_is_dropped(client, seed_config, stored_config):
    seed_config(mode=RelayMode.MANUAL)

    body = client.get("/api/thresholds/update", params={
        "auto_relay": "sometimes",
        "humidity_threshold": "80",
    }).json()

    assert body["status"] == "success"
    assert body["debug_info"]["auto_relay_rejected"] is True
    assert body["debug_info"]["converted_auto_relay"] is None
    config = stored_config()
    assert config.auto_relay_control == RelayMode.MANUAL
    assert config.humidity_threshold == 80.0


def test_same_values_report_no_changes(client, seed_config):
    seed_config()

    body = client.get("/api/thresholds/update", params={"temp_high_threshold": "30"}).json()

    assert body["status"] == "success"
    assert body["affected_rows"] == 0
    assert body["message"] == "Settings confirmed (no changes needed)"


def test_update_on_empty_table_creates_row(client, db_session):
    body = client.get("/api/thresholds/update", params={"humidity_threshold": "65"}).json()

    assert body["status"] == "success"
    assert body["debug_info"]["threshold_records_found"] == 0
    assert body["updated_values"]["auto_relay"] == "yes"
    assert db_session.query(models.ThresholdConfig).count() == 1


def test_update_does_not_touch_relay_state(client, seed_config, stored_config):
    seed_config(mode=RelayMode.MANUAL, relay=RelayState.ON)

    client.get("/api/thresholds/update", params={"temp_high_threshold": "35"})

    assert stored_config().current_relay_state == RelayState.ON


def test_switching_to_auto_lets_sensors_drive_relay(client, seed_config):
    seed_config(mode=RelayMode.MANUAL, relay=RelayState.ON)

    client.post("/api/thresholds/update", json={"auto_relay": 1})
    body = client.get("/api/ingest", params={"motion": "CLEAR"}).json()

    assert body["mode"] == "AUTO"
    assert body["relay_command"] == "OFF"


def test_post_non_object_body(client):
    body = client.post("/api/thresholds/update", json=[1, 2, 3]).json()

    assert body["status"] == "error"
    assert body["message"] == "No input data received"


def test_post_malformed_json(client):
    response = client.post(
        "/api/thresholds/update",
        content="{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "error"
