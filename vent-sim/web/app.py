"""
Flask REST API for the vent simulator.
Reads come straight from the engine; every mutation is queued and applied
by the engine at the start of its next step.
"""
import logging
from flask import Flask, jsonify, request

from models import (
    StationEngine, VentPumpConfig, InvalidPayloadError, AtmosAlarmType,
    get_simulation_parameters, set_state_packet
)
from profiles import PROFILES

logger = logging.getLogger("WebAPI")


def create_app(engine: StationEngine) -> Flask:
    """
    Factory function to create Flask app with injected engine.
    """
    app = Flask(__name__)
    app.config['engine'] = engine

    def find_vent(vent_id: int):
        return app.config['engine'].get_vent(vent_id)

    @app.route('/api/status')
    def get_status():
        """Station snapshot: time, scenario, loop pressure, rooms and vents."""
        return jsonify(app.config['engine'].get_status())

    @app.route('/api/vents')
    def get_vents():
        return jsonify(app.config['engine'].get_vents_status())

    @app.route('/api/vents/<int:vent_id>')
    def get_vent(vent_id: int):
        eng = app.config['engine']
        status = eng.get_vent_status(vent_id)
        if status is None:
            return jsonify({'error': 'Vent not found'}), 404
        return jsonify({
            'status': status,
            'sync': eng.sync(vent_id),
        })

    @app.route('/api/vents/<int:vent_id>/state', methods=['POST'])
    def set_vent_state(vent_id: int):
        """
        Replace a vent's config. Fields left out keep their current value.

        Request body:
        {
            "enabled": true,
            "direction": "RELEASING",
            "pressure_checks": ["EXTERNAL"],
            "external_pressure_bound": 101.325
        }
        """
        vent = find_vent(vent_id)
        if not vent:
            return jsonify({'error': 'Vent not found'}), 404

        data = request.get_json(silent=True)
        if not data:
            return jsonify({'error': 'Request body required'}), 400

        try:
            VentPumpConfig.from_dict(data, base=vent.regulator.config)
        except InvalidPayloadError as e:
            return jsonify({'error': str(e), 'field': e.field}), 400

        app.config['engine'].send_packet(vent_id, set_state_packet(data))
        logger.info(f"Queued set_state for {vent.name}")
        return jsonify({'success': True, 'queued': True}), 202

    @app.route('/api/vents/<int:vent_id>/signal/<port>', methods=['POST'])
    def send_signal(vent_id: int, port: str):
        vent = find_vent(vent_id)
        if not vent:
            return jsonify({'error': 'Vent not found'}), 404
        if not vent.regulator.profile.can_link:
            return jsonify({'error': f'{vent.name} has no signal ports'}), 400
        app.config['engine'].queue_command(vent_id, 'signal', port)
        return jsonify({'success': True, 'queued': True, 'port': port}), 202

    @app.route('/api/vents/<int:vent_id>/unlock', methods=['POST'])
    def start_unlock(vent_id: int):
        """Start releasing the under-pressure lockout by hand."""
        vent = find_vent(vent_id)
        if not vent:
            return jsonify({'error': 'Vent not found'}), 404
        data = request.get_json(silent=True) or {}
        user = str(data.get('user', 'manual'))
        app.config['engine'].queue_command(vent_id, 'unlock', user)
        return jsonify({'success': True, 'queued': True}), 202

    @app.route('/api/vents/<int:vent_id>/unlock/cancel', methods=['POST'])
    def cancel_unlock(vent_id: int):
        vent = find_vent(vent_id)
        if not vent:
            return jsonify({'error': 'Vent not found'}), 404
        data = request.get_json(silent=True) or {}
        reason = str(data.get('reason', 'interrupted'))
        app.config['engine'].queue_command(vent_id, 'cancel_unlock', reason)
        return jsonify({'success': True, 'queued': True}), 202

    @app.route('/api/vents/<int:vent_id>/device', methods=['POST'])
    def update_device(vent_id: int):
        """
        Change physical device conditions.

        Request body (all optional):
        {"powered": true, "welded": false, "anchored": true, "alarm": "Danger"}
        """
        vent = find_vent(vent_id)
        if not vent:
            return jsonify({'error': 'Vent not found'}), 404
        data = request.get_json(silent=True)
        if not data:
            return jsonify({'error': 'Request body required'}), 400

        if 'alarm' in data:
            try:
                AtmosAlarmType(data['alarm'])
            except ValueError:
                return jsonify({'error': f"Unknown alarm type: {data['alarm']}"}), 400
        for key in ('powered', 'welded', 'anchored'):
            if key in data and not isinstance(data[key], bool):
                return jsonify({'error': f"{key} must be a boolean"}), 400

        eng = app.config['engine']
        queued = []
        for key, kind in (('powered', 'power'), ('welded', 'weld'), ('anchored', 'anchor'), ('alarm', 'alarm')):
            if key in data:
                eng.queue_command(vent_id, kind, data[key])
                queued.append(key)
        if not queued:
            return jsonify({'error': 'No device fields given'}), 400
        return jsonify({'success': True, 'queued': queued}), 202

    @app.route('/api/vents/<int:vent_id>/analyze')
    def analyze_vent(vent_id: int):
        """Gas analyzer scan of the vent's active pipe segment."""
        if not find_vent(vent_id):
            return jsonify({'error': 'Vent not found'}), 404
        result = app.config['engine'].analyze(vent_id)
        if result is None:
            return jsonify({'error': 'No pipe node to analyze'}), 404
        return jsonify(result)

    @app.route('/api/audit')
    def get_audit():
        device = request.args.get('device')
        records = app.config['engine'].audit_log.records(device)
        return jsonify({
            'records': [r.to_dict() for r in records],
            'count': len(records)
        })

    @app.route('/api/profiles')
    def get_profiles():
        return jsonify({name: p.to_dict() for name, p in PROFILES.items()})

    # --- Admin ---

    @app.route('/api/admin/simulation-params', methods=['GET'])
    def get_simulation_params():
        params = get_simulation_parameters()
        return jsonify({
            'params': params.get_all(),
            'by_category': params.get_by_category()
        })

    @app.route('/api/admin/simulation-params', methods=['POST'])
    def update_simulation_params():
        """Update simulation parameters. Values are clamped to their range."""
        data = request.get_json(silent=True)
        if not data:
            return jsonify({'error': 'Request body required'}), 400
        try:
            results = get_simulation_parameters().set_multiple(data)
        except (TypeError, ValueError) as e:
            return jsonify({'error': f'Invalid parameter value: {e}'}), 400
        return jsonify({'success': all(results.values()), 'results': results})

    @app.route('/api/admin/simulation-params/reset', methods=['POST'])
    def reset_simulation_params():
        data = request.get_json(silent=True) or {}
        get_simulation_parameters().reset(data.get('key'))
        return jsonify({'success': True})

    @app.route('/api/admin/scenario', methods=['POST'])
    def trigger_scenario():
        """
        Start a scenario, or set how often one is picked at random.

        Request body:
        {"scenario": "Hull Breach", "duration": 300}
        or
        {"auto_frequency": 600}
        """
        data = request.get_json(silent=True)
        if not data:
            return jsonify({'error': 'Request body required'}), 400

        auto_frequency = data.get('auto_frequency')
        if auto_frequency is not None:
            try:
                app.config['engine'].set_auto_scenario_frequency(int(auto_frequency))
            except (TypeError, ValueError):
                return jsonify({'error': 'Invalid frequency value'}), 400
            if 'scenario' not in data:
                return jsonify({'success': True,
                                'message': f"Auto-scenario frequency set to {auto_frequency}s"})

        if 'scenario' not in data:
            return jsonify({'error': 'scenario is required'}), 400
        try:
            duration = int(data.get('duration', 300))
        except (TypeError, ValueError):
            return jsonify({'error': 'duration must be an integer'}), 400
        message = app.config['engine'].trigger_scenario(data['scenario'], duration)
        if message.startswith("Unknown"):
            return jsonify({'error': message}), 400
        return jsonify({'success': True, 'message': message})

    return app


class WebServer:
    """
    Web server wrapper running the Flask app in a background thread.
    """

    def __init__(self, engine: StationEngine, host: str = "0.0.0.0", port: int = 8080):
        self._engine = engine
        self._host = host
        self._port = port
        self._app = None
        self._thread = None
        self._server = None

    def start(self) -> None:
        """Start the web server in a background thread."""
        import threading

        self._app = create_app(self._engine)
        self._thread = threading.Thread(
            target=self._run_server,
            daemon=True
        )
        self._thread.start()
        logger.info(f"Web API started on http://{self._host}:{self._port}")

    def _run_server(self) -> None:
        """Run Flask server."""
        # Use werkzeug directly for threaded operation
        from werkzeug.serving import make_server
        self._server = make_server(self._host, self._port, self._app, threaded=True)
        self._server.serve_forever()

    def stop(self) -> None:
        """Stop the web server."""
        if self._server is not None:
            self._server.shutdown()
        logger.info("Web server stopped")
