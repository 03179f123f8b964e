"""Matter server node driven over MQTT."""

import asyncio
import copy
import json
import logging
from functools import partial
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

from constants import DEFAULT_BASE_TOPIC, GATEWAY_CONNECT_TIMEOUT, MQTT_KEEPALIVE, MQTT_QOS
from errors import GatewayStartError
from gateway import CommandCallback, NodeConfig, ProtocolGateway
from models import AttributeTree, EndpointDescription, GatewayState, InboundCommand
from topics import (
    parse_command_topic,
    topic_command_pattern,
    topic_endpoint_config,
    topic_endpoint_state,
    topic_node_config,
    topic_status,
)

logger = logging.getLogger(__name__)


class MqttGateway(ProtocolGateway):
    """Publishes the endpoint tree for a Matter server node sidecar and receives its commands."""

    def __init__(
        self,
        host: str,
        port: int,
        base_topic: str = DEFAULT_BASE_TOPIC,
        client: Optional[mqtt.Client] = None,
    ):
        self.host = host
        self.port = port
        self.base = base_topic
        self.client = client or mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message

        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._handler: Optional[CommandCallback] = None
        self._endpoints: Dict[str, EndpointDescription] = {}
        self._state = GatewayState()
        self._started = False
        self._tasks = set()

    @property
    def started(self) -> bool:
        return self._started

    @property
    def state(self) -> GatewayState:
        return copy.copy(self._state)

    @property
    def endpoint_ids(self):
        return list(self._endpoints)

    def set_command_handler(self, handler: CommandCallback):
        self._handler = handler

    async def start(self, config: NodeConfig):
        """Connect to the broker and publish the node configuration."""
        if self._started:
            return
        self.loop = asyncio.get_running_loop()
        connect = partial(self.client.connect, self.host, self.port, keepalive=MQTT_KEEPALIVE)
        try:
            await asyncio.wait_for(self.loop.run_in_executor(None, connect), timeout=GATEWAY_CONNECT_TIMEOUT)
        except asyncio.TimeoutError as e:
            raise GatewayStartError(f"Timed out connecting to MQTT broker at {self.host}:{self.port}") from e
        except (OSError, ValueError) as e:
            raise GatewayStartError(f"Failed to connect to MQTT broker at {self.host}:{self.port}: {e}") from e
        self.client.loop_start()
        logger.info(f"Connected to MQTT broker at {self.host}:{self.port}")

        self.publish_retained(topic_node_config(self.base), json.dumps(config.to_payload()))
        self._started = True
        self._state.ready = True
        logger.info(f"Matter server node '{config.unique_id}' configured on port {config.port}")

    async def stop(self):
        """Close MQTT connection."""
        if not self._started:
            return
        self._started = False
        self._state = GatewayState()
        try:
            self.client.loop_stop()
        finally:
            self.client.disconnect()

    def publish_retained(self, topic: str, payload: str):
        """Publish a retained message."""
        # retained so the node sidecar picks up the tree after a restart
        self.client.publish(topic, payload=payload, qos=MQTT_QOS, retain=True)
        logger.debug(f"Published to {topic}: {payload}")

    async def add_endpoint(self, endpoint: EndpointDescription):
        if endpoint.id in self._endpoints:
            raise ValueError(f"Endpoint {endpoint.id} already exists")
        self._endpoints[endpoint.id] = copy.deepcopy(endpoint)
        self.publish_retained(topic_endpoint_config(self.base, endpoint.id), json.dumps(endpoint.to_payload()))
        self.publish_retained(topic_endpoint_state(self.base, endpoint.id), json.dumps(endpoint.attributes))
        logger.info(f"Added endpoint {endpoint.id} ({endpoint.device_type})")

    async def remove_endpoint(self, endpoint_id: str):
        if self._endpoints.pop(endpoint_id, None) is None:
            logger.debug(f"Endpoint {endpoint_id} already removed")
            return
        # empty retained payloads clear the topics
        self.publish_retained(topic_endpoint_state(self.base, endpoint_id), "")
        self.publish_retained(topic_endpoint_config(self.base, endpoint_id), "")
        logger.info(f"Removed endpoint {endpoint_id}")

    async def set_attributes(self, endpoint_id: str, patch: AttributeTree):
        endpoint = self._endpoints.get(endpoint_id)
        if endpoint is None:
            logger.debug(f"Dropping update for unknown endpoint {endpoint_id}: {patch}")
            return
        for cluster, attributes in patch.items():
            endpoint.attributes.setdefault(cluster, {}).update(attributes)
        self.publish_retained(topic_endpoint_state(self.base, endpoint_id), json.dumps(endpoint.attributes))

    def attributes(self, endpoint_id: str) -> Optional[AttributeTree]:
        endpoint = self._endpoints.get(endpoint_id)
        return copy.deepcopy(endpoint.attributes) if endpoint else None

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        """Handle MQTT connection."""
        if reason_code == 0:
            logger.info("Connected to MQTT broker successfully")
        else:
            logger.warning(f"Connected to MQTT broker with code {reason_code}")
        client.subscribe(topic_command_pattern(self.base), qos=MQTT_QOS)
        client.subscribe(topic_status(self.base), qos=MQTT_QOS)
        logger.info(f"Subscribed to: {topic_command_pattern(self.base)}, {topic_status(self.base)}")

    def _on_message(self, client, userdata, msg):
        """Handle incoming MQTT message."""
        try:
            topic = msg.topic
            payload = (msg.payload or b"").decode("utf-8", errors="replace").strip()
            data = json.loads(payload) if payload else {}
            if not isinstance(data, dict):
                logger.warning(f"Ignoring non-object payload on {topic}")
                return

            if topic == topic_status(self.base):
                self._call_soon(self._update_status, data)
                return

            endpoint_id = parse_command_topic(self.base, topic)
            if endpoint_id is None:
                logger.debug(f"Ignoring malformed topic: {topic}")
                return
            if "cluster" not in data or "command" not in data:
                logger.warning(f"Command on {topic} is missing cluster/command: {payload}")
                return

            cmd = InboundCommand(
                endpoint_id=endpoint_id,
                cluster=str(data["cluster"]),
                command=str(data["command"]),
                args=data.get("args") or {},
            )
            logger.info(f"Received command from Matter: endpoint {endpoint_id} {cmd.cluster}.{cmd.command}")
            # push into asyncio loop safely from MQTT thread
            self._call_soon(self._dispatch, cmd)

        except Exception as e:
            logger.error(f"Error handling MQTT message: {e}", exc_info=True)

    def _call_soon(self, fn, arg: Any):
        if self.loop is None:
            logger.debug("Dropping MQTT message received before start")
            return
        self.loop.call_soon_threadsafe(fn, arg)

    def _update_status(self, data: Dict[str, Any]):
        self._state.commissioned = bool(data.get("commissioned", False))
        self._state.qr_pairing_code = data.get("qrPairingCode")
        self._state.manual_pairing_code = data.get("manualPairingCode")
        logger.info(f"Matter node status: commissioned={self._state.commissioned}")

    def _dispatch(self, cmd: InboundCommand):
        if self._handler is None:
            logger.warning(f"No command handler, dropping {cmd.cluster}.{cmd.command} for {cmd.endpoint_id}")
            return
        task = asyncio.ensure_future(self._handler(cmd))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Future):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Command handler failed: {exc}", exc_info=exc)
