"""Main Homey2Matter bridge application."""

import asyncio
import logging
import os
from typing import Any, Dict, Optional

import yaml
from aiohttp import web

from bridge_manager import BridgeManager
from constants import (
    DEFAULT_API_HOST,
    DEFAULT_API_PORT,
    DEFAULT_BASE_TOPIC,
    DEFAULT_CONFIG_EXAMPLE_FILE,
    DEFAULT_CONFIG_FILE,
    DEFAULT_DISCRIMINATOR,
    DEFAULT_MATTER_PORT,
    DEFAULT_PASSCODE,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PRODUCT_ID,
    DEFAULT_PRODUCT_NAME,
    DEFAULT_SETTINGS_FILE,
    DEFAULT_UNIQUE_ID,
    DEFAULT_VENDOR_ID,
    DEFAULT_VENDOR_NAME,
)
from gateway import NodeConfig
from homey_client import HomeyClient
from management_api import create_app
from mqtt_gateway import MqttGateway
from settings_store import SettingsStore

logger = logging.getLogger(__name__)


def load_config(path: str = DEFAULT_CONFIG_FILE) -> Dict[str, Any]:
    """Load and validate configuration file."""
    if not os.path.exists(path):
        raise FileNotFoundError(
            f"Configuration file '{path}' not found. "
            f"Please copy '{DEFAULT_CONFIG_EXAMPLE_FILE}' to '{path}' "
            f"and update with your settings."
        )

    try:
        with open(path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in '{path}': {e}")

    if not config:
        raise ValueError(f"'{path}' is empty")

    # Validate required sections
    for section in ('homey', 'mqtt', 'matter'):
        if section not in config:
            raise ValueError(f"Missing '{section}' section in configuration")

    # Validate required keys
    homey_config = config.get('homey') or {}
    for key in ('address', 'token'):
        if key not in homey_config:
            raise ValueError(f"Missing 'homey.{key}' in configuration")

    mqtt_config = config.get('mqtt') or {}
    for key in ('host', 'port'):
        if key not in mqtt_config:
            raise ValueError(f"Missing 'mqtt.{key}' in configuration")

    return config


def node_config_from(config: Dict[str, Any]) -> NodeConfig:
    matter = config.get('matter') or {}
    return NodeConfig(
        unique_id=str(matter.get('unique_id', DEFAULT_UNIQUE_ID)),
        serial_number=matter.get('serial_number'),
        port=int(matter.get('port', DEFAULT_MATTER_PORT)),
        passcode=int(matter.get('passcode', DEFAULT_PASSCODE)),
        discriminator=int(matter.get('discriminator', DEFAULT_DISCRIMINATOR)),
        vendor_id=int(matter.get('vendor_id', DEFAULT_VENDOR_ID)),
        vendor_name=matter.get('vendor_name', DEFAULT_VENDOR_NAME),
        product_id=int(matter.get('product_id', DEFAULT_PRODUCT_ID)),
        product_name=matter.get('product_name', DEFAULT_PRODUCT_NAME),
        device_name=matter.get('device_name', DEFAULT_PRODUCT_NAME),
    )


class Homey2Matter:
    """Main bridge application."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config if config is not None else load_config()
        homey_config = self.config['homey']
        mqtt_config = self.config['mqtt']
        storage_config = self.config.get('storage') or {}
        api_config = self.config.get('api') or {}

        self.homey = HomeyClient(
            homey_config['address'],
            homey_config['token'],
            poll_interval=float(homey_config.get('poll_interval', DEFAULT_POLL_INTERVAL)),
        )
        self.gateway = MqttGateway(
            mqtt_config['host'],
            int(mqtt_config['port']),
            base_topic=mqtt_config.get('base_topic', DEFAULT_BASE_TOPIC),
        )
        self.settings = SettingsStore(storage_config.get('settings_path', DEFAULT_SETTINGS_FILE))
        self.manager = BridgeManager(
            self.homey,
            self.gateway,
            self.settings,
            node_config=node_config_from(self.config),
        )
        self.api_host = api_config.get('host', DEFAULT_API_HOST)
        self.api_port = int(api_config.get('port', DEFAULT_API_PORT))
        self._runner: Optional[web.AppRunner] = None
        self.running = False

    async def start(self):
        """Start the bridge and serve the management API until stopped."""
        self.running = True
        await self.manager.start()

        state = self.manager.get_state()
        logger.info(
            f"Matter bridge running. commissioned={state.commissioned} "
            f"manual_pairing_code={state.manual_pairing_code}"
        )

        self._runner = web.AppRunner(create_app(self.manager))
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.api_host, self.api_port)
        await site.start()
        logger.info(f"Management API listening on http://{self.api_host}:{self.api_port}")

        # Wait until cancelled
        await asyncio.Event().wait()

    async def stop(self):
        """Stop the bridge."""
        if not self.running:
            return
        self.running = False

        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        try:
            await self.manager.stop()
        finally:
            await self.homey.close()
