"""
Core constants for ThermoBand thermal-therapy band control.
"""

# Advertised name of the band (matched against name and local-name fields)
DEVICE_NAME = "TherapyBand"

# GATT service and characteristics (must match band firmware)
SERVICE_UUID = "12345678-1234-1234-1234-1234567890ab"
MODE_CHAR_UUID = "12345678-1234-1234-1234-1234567890ac"
SET_POINT_CHAR_UUID = "12345678-1234-1234-1234-1234567890ad"
TIMER_CHAR_UUID = "12345678-1234-1234-1234-1234567890ae"
TEMPERATURE_CHAR_UUID = "12345678-1234-1234-1234-1234567890af"

# Temperature set-point ranges in °C, inclusive
HOT_TEMP_MIN = 25
HOT_TEMP_MAX = 55
COLD_TEMP_MIN = 10
COLD_TEMP_MAX = 24
DEFAULT_TEMPERATURE = 15

# Timeouts
SCAN_TIMEOUT_MS = 10_000
CONNECT_TIMEOUT_S = 10.0

# Timer
TICK_INTERVAL_S = 1.0
TIMER_MAX_MINUTES = 90
QUICK_TIMER_MINUTES = (5, 10, 15, 20)

# Preset slots
MAX_PRESETS = 3

# Application metadata
__version__ = "0.1.0"
__description__ = "CLI and REPL interface for controlling a BLE thermal-therapy band"
