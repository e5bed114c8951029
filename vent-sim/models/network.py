"""
Device network command handling for vent pumps.
Packets are plain dicts keyed by "command"; framing and addressing belong
to whatever carries them.
"""
import logging
from typing import Any, Dict, Optional

from .audit import AuditSink, emit_best_effort
from .errors import InvalidPayloadError
from .vent import VentPumpConfig, VentPumpRegulator

logger = logging.getLogger("DeviceNetwork")

COMMAND = "command"
CMD_SYNC_DATA = "atmos_sync_data"
CMD_SET_STATE = "set_state"


def sync_request() -> Dict[str, Any]:
    """Packet asking a vent for its current config."""
    return {COMMAND: CMD_SYNC_DATA}


def set_state_packet(config: Dict[str, Any]) -> Dict[str, Any]:
    """Packet replacing a vent's config."""
    return {COMMAND: CMD_SET_STATE, CMD_SET_STATE: config}


class VentPumpNetworkHandler:
    """Answers sync requests and applies set-state commands."""

    def __init__(self, audit_sink: Optional[AuditSink] = None):
        self._audit_sink = audit_sink

    def handle_packet(self, regulator: VentPumpRegulator,
                      packet: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Process one packet addressed to a vent.

        Returns:
            The reply packet for sync requests, None otherwise
        """
        if not isinstance(packet, dict) or COMMAND not in packet:
            logger.debug(f"{regulator.name}: dropping packet without command")
            return None

        cmd = packet[COMMAND]
        if cmd == CMD_SYNC_DATA:
            return {COMMAND: CMD_SYNC_DATA, CMD_SYNC_DATA: regulator.config.to_dict()}

        if cmd == CMD_SET_STATE:
            data = packet.get(CMD_SET_STATE)
            if data is None:
                logger.warning(f"{regulator.name}: set_state without payload ignored")
                return None
            try:
                new_config = VentPumpConfig.from_dict(data, base=regulator.config)
            except InvalidPayloadError as e:
                logger.warning(f"{regulator.name}: set_state rejected, {e}")
                return None

            records = regulator.apply_remote_config(new_config)
            emit_best_effort(self._audit_sink, records)
            return None

        logger.debug(f"{regulator.name}: unknown command '{cmd}'")
        return None
