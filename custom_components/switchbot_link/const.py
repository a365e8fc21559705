"""Constants for the SwitchBot Link integration."""

DOMAIN = "switchbot_link"

# Credentials (entry.data)
CONF_TOKEN = "token"
CONF_SECRET = "secret"

# Tunables (entry.options / per-device overrides)
CONF_DEVICES = "devices"
CONF_DEVICE_ID = "device_id"
CONF_DEVICE_TYPE = "device_type"
CONF_HUB_ID = "hub_id"
CONF_ADDRESS = "address"
CONF_NAME = "name"
CONF_CONNECTION_TYPE = "connection_type"
CONF_REFRESH_RATE = "refresh_rate"
CONF_UPDATE_RATE = "update_rate"
CONF_PUSH_RATE = "push_rate"
CONF_REFRESH_DELAY = "refresh_delay"
CONF_ASSUME_STOPPED_AFTER = "assume_stopped_after"
CONF_MAX_RETRIES = "max_retries"
CONF_DELAY_BETWEEN_RETRIES = "delay_between_retries"
CONF_REQUEST_TIMEOUT = "request_timeout"
CONF_SCAN_DURATION = "scan_duration"
CONF_OFFLINE_IS_OFF = "offline_is_off"
CONF_MIN_LUX = "min_lux"
CONF_MAX_LUX = "max_lux"
CONF_MIN_KELVIN = "min_kelvin"
CONF_MAX_KELVIN = "max_kelvin"
CONF_SET_MIN = "set_min"
CONF_SET_MAX = "set_max"
CONF_OPEN_MODE = "open_mode"
CONF_CLOSE_MODE = "close_mode"
CONF_WEBHOOK = "webhook"
CONF_WEBHOOK_HOST = "webhook_host"
CONF_WEBHOOK_PORT = "webhook_port"
CONF_WEBHOOK_URL = "webhook_url"
CONF_MQTT_URL = "mqtt_url"
CONF_MQTT_OPTIONS = "mqtt_options"

# Connection types as offered to the user
CONNECTION_BLE = "BLE"
CONNECTION_OPENAPI = "OpenAPI"
CONNECTION_BLE_OPENAPI = "BLE/OpenAPI"

CURTAIN_MODE_SILENT = "silent"
CURTAIN_MODE_PERFORMANCE = "performance"

DEFAULT_REFRESH_RATE = 120
MIN_REFRESH_RATE = 5
DEFAULT_UPDATE_RATE = 1.0
DEFAULT_PUSH_RATE = 0.1
DEFAULT_REFRESH_DELAY = 15.0
DEFAULT_ASSUME_STOPPED_AFTER = 10.0
DEFAULT_MAX_RETRIES = 5
DEFAULT_DELAY_BETWEEN_RETRIES = 1.0
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_SCAN_DURATION = 1.0
DEFAULT_WEBHOOK_PORT = 8090

# Cloud quota: 10k requests per account per day
DAILY_REQUEST_QUOTA = 10000

# Light level anchors (lux) for the 1-20 bucket scale
DEFAULT_MIN_LUX = 1.0
DEFAULT_MAX_LUX = 6001.0
LIGHT_LEVEL_BUCKETS = 20

# Kelvin range used when a device does not report its own
COLOR_TEMP_KELVIN_MIN = 2000
COLOR_TEMP_KELVIN_MAX = 9000
COLOR_TEMP_KELVIN_STEP = 100
COLOR_TEMP_MIRED_MIN = 140
COLOR_TEMP_MIRED_MAX = 500

LOW_BATTERY_THRESHOLD = 10

# Cloud API (v1.1)
API_BASE = "https://api.switch-bot.com/v1.1"
API_SUCCESS_CODES = (100, 200)

# Hub id reported for devices that talk to the cloud directly
HUB_ID_NONE = "000000000000"

STORAGE_FILE = ".storage/switchbot_link_state.json"

MQTT_TOPIC_PREFIX = "homebridge-switchbot"
