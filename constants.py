"""Constants for the Homey2Matter bridge."""

# Matter device types (matter.js names)
DEVICE_TYPE_ON_OFF_LIGHT = "OnOffLightDevice"
DEVICE_TYPE_DIMMABLE_LIGHT = "DimmableLightDevice"
DEVICE_TYPE_COLOR_TEMPERATURE_LIGHT = "ColorTemperatureLightDevice"
DEVICE_TYPE_EXTENDED_COLOR_LIGHT = "ExtendedColorLightDevice"
DEVICE_TYPE_ON_OFF_PLUG_IN_UNIT = "OnOffPlugInUnitDevice"
DEVICE_TYPE_DIMMABLE_PLUG_IN_UNIT = "DimmablePlugInUnitDevice"
DEVICE_TYPE_TEMPERATURE_SENSOR = "TemperatureSensorDevice"
DEVICE_TYPE_HUMIDITY_SENSOR = "HumiditySensorDevice"
DEVICE_TYPE_LIGHT_SENSOR = "LightSensorDevice"
DEVICE_TYPE_OCCUPANCY_SENSOR = "OccupancySensorDevice"
DEVICE_TYPE_CONTACT_SENSOR = "ContactSensorDevice"
DEVICE_TYPE_THERMOSTAT = "ThermostatDevice"
DEVICE_TYPE_WINDOW_COVERING = "WindowCoveringDevice"
DEVICE_TYPE_DOOR_LOCK = "DoorLockDevice"
DEVICE_TYPE_AGGREGATOR = "AggregatorEndpoint"

# Matter device type ids, published alongside the names
DEVICE_TYPE_IDS = {
    DEVICE_TYPE_ON_OFF_LIGHT: 0x0100,
    DEVICE_TYPE_DIMMABLE_LIGHT: 0x0101,
    DEVICE_TYPE_COLOR_TEMPERATURE_LIGHT: 0x010C,
    DEVICE_TYPE_EXTENDED_COLOR_LIGHT: 0x010D,
    DEVICE_TYPE_ON_OFF_PLUG_IN_UNIT: 0x010A,
    DEVICE_TYPE_DIMMABLE_PLUG_IN_UNIT: 0x010B,
    DEVICE_TYPE_TEMPERATURE_SENSOR: 0x0302,
    DEVICE_TYPE_HUMIDITY_SENSOR: 0x0307,
    DEVICE_TYPE_LIGHT_SENSOR: 0x0106,
    DEVICE_TYPE_OCCUPANCY_SENSOR: 0x0107,
    DEVICE_TYPE_CONTACT_SENSOR: 0x0015,
    DEVICE_TYPE_THERMOSTAT: 0x0301,
    DEVICE_TYPE_WINDOW_COVERING: 0x0202,
    DEVICE_TYPE_DOOR_LOCK: 0x000A,
    DEVICE_TYPE_AGGREGATOR: 0x000E,
}

# Matter clusters (matter.js behavior names)
CLUSTER_ON_OFF = "onOff"
CLUSTER_LEVEL_CONTROL = "levelControl"
CLUSTER_COLOR_CONTROL = "colorControl"
CLUSTER_TEMPERATURE_MEASUREMENT = "temperatureMeasurement"
CLUSTER_HUMIDITY_MEASUREMENT = "relativeHumidityMeasurement"
CLUSTER_ILLUMINANCE_MEASUREMENT = "illuminanceMeasurement"
CLUSTER_OCCUPANCY_SENSING = "occupancySensing"
CLUSTER_BOOLEAN_STATE = "booleanState"
CLUSTER_THERMOSTAT = "thermostat"
CLUSTER_WINDOW_COVERING = "windowCovering"
CLUSTER_DOOR_LOCK = "doorLock"
CLUSTER_BRIDGED_BASIC_INFORMATION = "bridgedDeviceBasicInformation"

# Attribute ranges
LEVEL_MIN = 1
LEVEL_MAX = 254
HUE_MAX = 254
SATURATION_MAX = 254
HUE_DEGREES = 360
MIREDS_MIN = 147  # ~6800K, coolest
MIREDS_MAX = 500  # 2000K, warmest
TEMPERATURE_MIN = -27315  # 0.01 degC
TEMPERATURE_MAX = 32767
HEATING_SETPOINT_MIN = 700
HEATING_SETPOINT_MAX = 3000
HUMIDITY_MAX = 10000  # 0.01 %
ILLUMINANCE_MIN = 1
ILLUMINANCE_MAX = 0xFFFE
PERCENT100THS_MAX = 10000

# colorControl.colorMode
COLOR_MODE_HUE_SATURATION = 0
COLOR_MODE_XY = 1
COLOR_MODE_TEMPERATURE = 2

# thermostat.systemMode
SYSTEM_MODE_OFF = 0
SYSTEM_MODE_AUTO = 1
SYSTEM_MODE_COOL = 3
SYSTEM_MODE_HEAT = 4

# doorLock.lockState
LOCK_STATE_LOCKED = 1
LOCK_STATE_UNLOCKED = 2

# Identity strings in the basic information clusters
MAX_IDENTITY_LENGTH = 32
ELLIPSIS = "..."

# Default configuration paths
DEFAULT_CONFIG_FILE = "homey2matter.yaml"
DEFAULT_CONFIG_EXAMPLE_FILE = "homey2matter.yaml.example"
DEFAULT_SETTINGS_FILE = "settings.json"

# Environment overrides
ENV_CONFIG_FILE = "HOMEY2MATTER_CONFIG"
ENV_LOG_LEVEL = "HOMEY2MATTER_LOG_LEVEL"

# Settings keys
SETTING_ENABLED_DEVICE_IDS = "enabledDeviceIds"

# Matter node defaults
DEFAULT_MATTER_PORT = 5540
DEFAULT_PASSCODE = 20202021
DEFAULT_DISCRIMINATOR = 3840
DEFAULT_VENDOR_ID = 65521
DEFAULT_PRODUCT_ID = 32768
DEFAULT_VENDOR_NAME = "Athom B.V."
DEFAULT_PRODUCT_NAME = "Homey Matter Bridge"
DEFAULT_UNIQUE_ID = "homey"

# MQTT settings
DEFAULT_BASE_TOPIC = "homey2matter"
MQTT_QOS = 1
MQTT_KEEPALIVE = 60

# Management API
DEFAULT_API_HOST = "0.0.0.0"
DEFAULT_API_PORT = 8099

# Timeouts (seconds)
HOMEY_REQUEST_TIMEOUT = 10.0
GATEWAY_CONNECT_TIMEOUT = 10.0
DEVICE_COMMAND_TIMEOUT = 15.0

# Refresh interval (seconds)
DEFAULT_POLL_INTERVAL = 5
