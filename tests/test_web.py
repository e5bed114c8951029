"""
Tests for the Flask REST API using the Flask test client.
Mutations are queued, so tests step the engine before checking state.
"""
import pytest

from interfaces import StationSizeConfig
from models import StationEngine, VentPumpDirection, get_simulation_parameters
from web.app import create_app
from helpers import T0


@pytest.fixture
def engine():
    return StationEngine(config=StationSizeConfig.small(), profile_name="GasVentPump",
                         seed="web", start_time=T0)


@pytest.fixture
def client(engine):
    app = create_app(engine)
    app.config['TESTING'] = True
    return app.test_client()


def test_status(client):
    data = client.get('/api/status').get_json()
    assert data['station']['name'] == "Small"
    assert len(data['vents']) == 2


def test_list_and_get_vent(client):
    vents = client.get('/api/vents').get_json()
    assert [v['name'] for v in vents] == ["Vent_1", "Vent_2"]

    data = client.get('/api/vents/1').get_json()
    assert data['status']['room'] == "Room_1"
    assert data['sync']['atmos_sync_data']['direction'] == "RELEASING"


def test_missing_vent_is_404(client):
    assert client.get('/api/vents/42').status_code == 404
    assert client.post('/api/vents/42/state', json={'enabled': False}).status_code == 404
    assert client.get('/api/vents/42/analyze').status_code == 404


def test_set_state_is_queued(client, engine):
    resp = client.post('/api/vents/1/state', json={'direction': 'Siphoning'})
    assert resp.status_code == 202
    assert engine.get_vent(1).regulator.config.direction == VentPumpDirection.RELEASING

    engine.step(0.5)
    assert engine.get_vent(1).regulator.config.direction == VentPumpDirection.SIPHONING

    audit = client.get('/api/audit?device=Vent_1').get_json()
    assert audit['count'] == 1
    assert audit['records'][0]['field'] == "direction"


def test_set_state_validation(client):
    resp = client.post('/api/vents/1/state', json={'pump_power': "lots"})
    assert resp.status_code == 400
    assert resp.get_json()['field'] == "pump_power"

    assert client.post('/api/vents/1/state', json={}).status_code == 400


def test_signal_requires_linkable_vent(client):
    resp = client.post('/api/vents/1/signal/Depressurize')
    assert resp.status_code == 400


def test_signal_on_linked_station():
    linked = StationEngine(config=StationSizeConfig.small(), profile_name="GasVentPumpLinked",
                           start_time=T0)
    client = create_app(linked).test_client()
    assert client.post('/api/vents/2/signal/Depressurize').status_code == 202
    linked.step(0.5)
    cfg = linked.get_vent(2).regulator.config
    assert cfg.direction == VentPumpDirection.SIPHONING
    assert cfg.external_pressure_bound == 0.0


def test_unlock_flow(client, engine):
    engine.atmosphere.get_containing_mixture("Room_1").multiply(0.01)
    engine.step(1.0)

    assert client.post('/api/vents/1/unlock', json={'user': 'engineer'}).status_code == 202
    engine.step(1.0)
    assert client.get('/api/vents/1').get_json()['status']['unlock_pending'] is True

    assert client.post('/api/vents/1/unlock/cancel').status_code == 202
    engine.step(1.0)
    assert client.get('/api/vents/1').get_json()['status']['unlock_pending'] is False


def test_device_update(client, engine):
    resp = client.post('/api/vents/2/device', json={'powered': False, 'alarm': 'Danger'})
    assert resp.status_code == 202
    assert resp.get_json()['queued'] == ['powered', 'alarm']
    engine.step(0.5)
    reg = engine.get_vent(2).regulator
    assert not reg.powered
    assert not reg.config.enabled


def test_device_update_validation(client):
    assert client.post('/api/vents/1/device', json={'alarm': 'Panic'}).status_code == 400
    assert client.post('/api/vents/1/device', json={'colour': 'red'}).status_code == 400


def test_device_flags_must_be_booleans(client, engine):
    """
    Tests a flag sent as the string "false" is refused rather than read as truthy.

    Why: bool("false") is True, so a request to power off would leave the vent on.
    """
    resp = client.post('/api/vents/1/device', json={'powered': 'false'})
    assert resp.status_code == 400
    assert resp.get_json()['error'] == "powered must be a boolean"
    assert client.post('/api/vents/1/device', json={'welded': 1}).status_code == 400
    assert client.post('/api/vents/1/device', json={'anchored': None}).status_code == 400

    engine.step(0.5)
    reg = engine.get_vent(1).regulator
    assert reg.powered is True
    assert reg.welded is False
    assert reg.anchored is True


def test_analyze(client):
    data = client.get('/api/vents/1/analyze').get_json()
    assert data['node'] == "pipe"
    assert data['mixture']['pressure'] == pytest.approx(1000.0, rel=1e-3)


def test_profiles(client):
    data = client.get('/api/profiles').get_json()
    assert "GasVentPump" in data
    assert data["GasVentPumpLinked"]['can_link'] is True


def test_simulation_params(client):
    data = client.get('/api/admin/simulation-params').get_json()
    assert 'lockout' in data['by_category']

    resp = client.post('/api/admin/simulation-params', json={'pump_power': 5.0, 'bogus': 1})
    body = resp.get_json()
    assert body['results'] == {'pump_power': True, 'bogus': False}
    assert body['success'] is False
    assert get_simulation_parameters().get('pump_power') == 1.0

    client.post('/api/admin/simulation-params', json={'breach_rate': 0.5})
    client.post('/api/admin/simulation-params/reset', json={'key': 'breach_rate'})
    assert get_simulation_parameters().get('breach_rate') == 0.05


def test_scenario_trigger(client, engine):
    resp = client.post('/api/admin/scenario', json={'scenario': 'Atmos Danger', 'duration': 30})
    assert resp.status_code == 200
    assert engine.scenario_manager.active_scenario == "Atmos Danger"

    assert client.post('/api/admin/scenario', json={'scenario': 'Tornado'}).status_code == 400
    assert client.post('/api/admin/scenario', json={}).status_code == 400


def test_auto_scenario_frequency(client, engine):
    resp = client.post('/api/admin/scenario', json={'auto_frequency': 600})
    assert resp.status_code == 200
    assert resp.get_json()['message'] == "Auto-scenario frequency set to 600s"
    assert client.get('/api/status').get_json()['auto_scenario_frequency'] == 600
    assert engine.scenario_manager.active_scenario == "Normal"

    resp = client.post('/api/admin/scenario', json={'auto_frequency': 'often'})
    assert resp.status_code == 400
    assert engine.scenario_manager.auto_change_frequency == 600

    client.post('/api/admin/scenario', json={'auto_frequency': 0})
    assert engine.scenario_manager.auto_change_frequency == 0
