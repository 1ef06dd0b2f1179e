"""Constants for the Honeywell Unified integration."""
from datetime import timedelta

DOMAIN = "honeywell_unified"

# Configuration
CONF_VENDOR = "vendor"
CONF_CONSUMER_KEY = "consumer_key"
CONF_CONSUMER_SECRET = "consumer_secret"
CONF_AUTH_CODE = "auth_code"
CONF_TOKEN = "token"
CONF_REFRESH_INTERVAL = "refresh_interval"

CONF_SMART_CONTROL = "smart_control"
CONF_PRIMARY_THERMOSTAT = "primary_thermostat"
CONF_TEMPERATURE_SENSORS = "temperature_sensors"
CONF_OCCUPANCY_SENSORS = "occupancy_sensors"
CONF_SENSOR_LINKS = "sensor_links"
CONF_DESIRED_SETPOINT = "desired_setpoint"
CONF_CONTROL_OFFSET = "control_offset"

# Defaults
DEFAULT_REFRESH_INTERVAL = 10  # minutes, 0 disables polling
REFRESH_INTERVAL_CHOICES = [0, 1, 2, 5, 10, 15, 30]
DEFAULT_CONTROL_OFFSET = 1.0
DEFAULT_THROTTLE_DELAY = 1.0  # seconds between vendor calls
CONTROL_REFRESH_DELAY = 5  # seconds before confirming a pushed change
SMART_CONTROL_STARTUP_DELAY = 5  # seconds

# Token renewal
TOKEN_RENEWAL_MARGIN = timedelta(minutes=5)
TOKEN_RENEWAL_RETRY_DELAY = timedelta(seconds=60)

# Coordinator
MAX_CONSECUTIVE_ERRORS = 5

# Persistence
STORAGE_VERSION = 1
STORAGE_KEY = f"{DOMAIN}.credentials"

# Services
SERVICE_REFRESH_TOKEN = "refresh_token"

