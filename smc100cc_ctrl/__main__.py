"""
Main entry point for the SMC100CC stage controller daemon.

Usage:
    python -m smc100cc_ctrl [--config CONFIG_PATH] [--simulator]
"""

import argparse
import sys
import logging
import signal

import uvicorn

from smc100cc_ctrl import __version__
from smc100cc_ctrl.config.loader import load_config, ConfigurationError
from smc100cc_ctrl.utils.logging_setup import setup_logging
from smc100cc_ctrl.api.app import create_app
from smc100cc_ctrl.api.bridge import PropertyBridge
from smc100cc_ctrl.api.routes import router as stage_router
from smc100cc_ctrl.stage.controller import StageController
from smc100cc_ctrl.simulator.mock_transport import MockDiscovery, MockTransport, SimulatedController
from smc100cc_ctrl.simulator.web_api import router as simulator_router
from smc100cc_ctrl.protocol.serial_transport import SerialTransport
from smc100cc_ctrl.protocol.discovery import SerialDiscovery, list_available_ports


logger = logging.getLogger(__name__)


# Global resources for cleanup
stage_controller = None


def signal_handler(signum, frame):
    """Handle shutdown signals (SIGINT, SIGTERM)."""
    logger.info(f"Received signal {signum}, shutting down...")

    if stage_controller:
        stage_controller.shutdown()

    sys.exit(0)


def main():
    """Main application entry point."""
    global stage_controller

    parser = argparse.ArgumentParser(description="SMC100CC stage controller daemon")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to configuration file (default: $SMC100CC_CONFIG or config.json)"
    )
    parser.add_argument(
        "--simulator",
        action="store_true",
        help="Use the simulated controller regardless of config.json"
    )
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.logging)

    logger.info("=" * 60)
    logger.info(f"SMC100CC stage controller v{__version__}")
    logger.info("=" * 60)

    use_simulator = args.simulator or config.simulator.enabled
    simulator = None

    if use_simulator:
        logger.info("Using SIMULATOR mode")
        simulator = SimulatedController(config.simulator, config.stage.controller_address)
        transport = MockTransport(simulator)
        discovery = MockDiscovery(simulator)
    else:
        logger.info("Using REAL HARDWARE mode")
        available_ports = list_available_ports()
        if available_ports:
            logger.info(f"Available serial ports: {', '.join(p.name for p in available_ports)}")
        else:
            logger.warning("No serial ports found on system")

        transport = SerialTransport(config.serial)
        discovery = SerialDiscovery(config.serial)
        logger.info(f"Looking for USB device {discovery.identity}")

    stage_controller = StageController(transport, discovery, config.serial, config.stage)
    bridge = PropertyBridge(stage_controller.dispatcher, config.stage.property_name)
    stage_controller.set_publisher(bridge)

    app = create_app(config)

    # Store dependencies in app.state for access by route handlers
    app.state.controller = stage_controller
    app.state.bridge = bridge
    app.state.simulator = simulator
    app.state.config = config

    app.include_router(stage_router)
    if use_simulator:
        app.include_router(simulator_router)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    stage_controller.start()

    logger.info(f"Starting property bridge on {config.server.ip}:{config.server.port}")
    logger.info("Press Ctrl+C to stop")

    try:
        uvicorn.run(
            app,
            host=config.server.ip,
            port=config.server.port,
            log_level=config.logging.level.lower(),
            access_log=False
        )
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    except Exception as e:
        logger.error(f"Server error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        if stage_controller:
            stage_controller.shutdown()

        logger.info("Shutdown complete")


if __name__ == "__main__":
    main()
