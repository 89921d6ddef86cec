"""
EMI Bridge

Polls typed measurements from an EMI energy meter over Modbus RTU and
republishes each decoded value on an MQTT topic.
"""

__version__ = "1.0.0"
