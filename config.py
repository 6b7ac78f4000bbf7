"""Configuration constants for the rendezvous relay."""

import os

# Relay server settings
RELAY_SERVER_HOST = "0.0.0.0"  # Listen address for relay server
RELAY_SERVER_PORT = int(os.environ.get("PORT", 3000))  # WebSocket port (PaaS hosts set $PORT)
RELAY_SERVER_CERT_FILE = None  # Path to TLS certificate (None for unencrypted)
RELAY_SERVER_KEY_FILE = None  # Path to TLS private key
RELAY_MAX_MESSAGE_SIZE = 10 * 1024 * 1024  # Maximum message size (10MB for screen frames)
RELAY_PING_INTERVAL = 25  # Seconds between keep-alive pings
RELAY_PING_TIMEOUT = 60  # Seconds without pong before a peer is considered gone

# Pairing settings
RELAY_PAIRING_MODE = "code"  # "code" (pairing codes) or "broadcast" (auto-discovery)
RELAY_PAIRING_CODE_TTL = 3600  # Pairing code lifetime in seconds (1 hour)
RELAY_PAIRING_SWEEP_INTERVAL = 3600  # Seconds between expired-code sweeps
RELAY_PAIRING_CODE_MIN = 100000  # Smallest 6-digit code
RELAY_PAIRING_CODE_MAX = 999999  # Largest 6-digit code

# Routing settings
RELAY_NACK_UNROUTABLE = False  # Report unroutable messages back to the sender

# Status HTTP server settings
STATUS_SERVER_HOST = "0.0.0.0"
STATUS_SERVER_PORT = 8080

# Logging settings
LOG_FILE = None  # Path to log file (None logs to the console)
LOG_LEVEL = "INFO"
