"""
EMI Bridge Services

- device/      - Modbus RTU transport and register value decoding
- acquisition/ - per-data-load scheduling and the batch loop
- publish/     - MQTT broker sessions
"""
