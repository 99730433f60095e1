"""Constants for the tanklink device connectivity core."""

from __future__ import annotations

from typing import Final

# Transport
DEFAULT_PORT: Final = 81
WS_SCHEME: Final = "ws"

# Timeouts (seconds)
PROBE_TIMEOUT: Final = 5.0
HANDSHAKE_TIMEOUT: Final = 10.0

# Reconnect policy (milliseconds)
RECONNECT_BASE_INTERVAL_MS: Final = 3000
RECONNECT_MAX_INTERVAL_MS: Final = 30000
MAX_RECONNECT_ATTEMPTS: Final = 10

# Heartbeat (seconds)
HEARTBEAT_INTERVAL: Final = 30.0
HEARTBEAT_GRACE: Final = 15.0
HEARTBEAT_MISS_THRESHOLD: Final = 3
BACKGROUND_HEARTBEAT_INTERVAL: Final = 60.0

# Response-time thresholds used to grade the link (seconds)
QUALITY_EXCELLENT_RTT: Final = 2.0
QUALITY_GOOD_RTT: Final = 5.0

# Discovery
SCAN_BATCH_SIZE: Final = 20
HOST_OCTET_RANGE: Final = range(1, 255)
QUICK_SCAN_CANDIDATES: Final[tuple[str, ...]] = (
    "192.168.1.100",
    "192.168.1.101",
    "192.168.4.1",
    "192.168.0.100",
    "10.0.0.100",
)
COMMON_SUBNETS: Final[tuple[str, ...]] = (
    "192.168.1",
    "192.168.0",
    "10.0.0",
    "172.16.0",
)

# Message types understood by the controller firmware
MSG_HANDSHAKE: Final = "handshake"
MSG_GET_ALL_DATA: Final = "getAllData"
MSG_GET_HOME_DATA: Final = "getHomeData"
MSG_GET_SETTING_DATA: Final = "getSettingData"
MSG_GET_SENSOR_DATA: Final = "getSensorData"
MSG_GET_WIFI_CONFIG: Final = "getWiFiConfig"
MSG_GET_SYSTEM_STATUS_TEXT: Final = "getSystemStatusText"
MSG_UPDATE_SETTINGS: Final = "updateSettings"
MSG_SETTING_DATA: Final = "settingData"
MSG_WIFI_CONFIG: Final = "wifiConfig"
MSG_SYSTEM_RESET: Final = "systemReset"
MSG_MOTOR1_ON: Final = "motor1On"
MSG_MOTOR1_OFF: Final = "motor1Off"
MSG_MOTOR2_ON: Final = "motor2On"
MSG_MOTOR2_OFF: Final = "motor2Off"

# Inbound types published by the firmware
MSG_HOME_DATA: Final = "homeData"
MSG_ALL_DATA: Final = "allData"
MSG_SENSOR_DATA: Final = "sensorData"
MSG_MOTOR_STATE: Final = "motorState"
MSG_CONFIG_UPDATE: Final = "configUpdate"
MSG_WIFI_CONFIG_UPDATE: Final = "wifiConfigUpdate"

# Older firmware only parses these as bare words, not JSON objects.
BARE_COMMAND_TYPES: Final[frozenset[str]] = frozenset(
    {
        MSG_GET_ALL_DATA,
        MSG_GET_HOME_DATA,
        MSG_GET_SETTING_DATA,
        MSG_GET_SENSOR_DATA,
        MSG_GET_WIFI_CONFIG,
        MSG_SYSTEM_RESET,
        MSG_MOTOR1_ON,
        MSG_MOTOR1_OFF,
        MSG_MOTOR2_ON,
        MSG_MOTOR2_OFF,
    }
)
