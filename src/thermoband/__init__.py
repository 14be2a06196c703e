"""
ThermoBand - Thermal Therapy Band Control Library

A Python library for controlling a wearable hot/cold therapy band via Bluetooth.
"""

__version__ = "0.1.0"
__description__ = "CLI and REPL interface for controlling a BLE thermal-therapy band"

from .controller import TherapyController
from .display import DisplayManager
from .models import Mode, Preset, Result, ResultCode, TherapySession
from .presets import PresetBook
from .scanner import DeviceScanner

__all__ = [
    "TherapyController",
    "DisplayManager",
    "DeviceScanner",
    "PresetBook",
    "Mode",
    "Preset",
    "Result",
    "ResultCode",
    "TherapySession",
]
