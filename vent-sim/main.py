"""
Vent Simulator Main Entry Point

Runs the station engine and the web API, and logs a short station summary
at a fixed interval.
"""
__version__ = "0.1.0"

import asyncio
import logging
import os

from models import StationEngine, VentPumpState
from web.app import WebServer

# Configure Logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=logging.INFO
)
logger = logging.getLogger("Main")


class VentSimulator:
    """
    Main orchestrator (only coordinates components).
    """

    def __init__(self, engine: StationEngine, web_server: WebServer = None,
                 report_interval: float = 10.0):
        self._engine = engine
        self._web = web_server
        self._report_interval = report_interval

    async def initialize(self) -> None:
        """Initialize all components."""
        logger.info(f"Initializing Vent Simulator v{__version__}...")

        # Start physics engine
        self._engine.start()

        # Start web server if configured
        if self._web:
            self._web.start()

        logger.info("Vent Simulator initialized")

    async def run(self) -> None:
        """Run the main reporting loop."""
        logger.info("Entering Main Report Loop")
        while True:
            self._report()
            await asyncio.sleep(self._report_interval)

    def _report(self) -> None:
        status = self._engine.get_status()
        locked = [v['name'] for v in status['vents'] if v['visual_state'] == VentPumpState.LOCKOUT.value]
        logger.info(f"{status['simulation_time']} loop {status['pipe_pressure']:.1f} kPa, "
                    f"scenario {status['active_scenario']}, "
                    f"{len(locked)} of {len(status['vents'])} vents locked out")

    def stop(self) -> None:
        """Stop all components."""
        logger.info("Stopping Vent Simulator...")
        self._engine.stop()
        if self._web:
            self._web.stop()
        logger.info("Vent Simulator stopped")


async def main():
    """Application entry point."""
    engine = StationEngine()
    web = WebServer(engine, host="0.0.0.0", port=int(os.environ.get("WEB_PORT", "8080")))

    simulator = VentSimulator(engine, web)

    try:
        await simulator.initialize()
        await simulator.run()
    finally:
        simulator.stop()


def run():
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
