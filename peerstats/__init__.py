"""peerstats - per-peer VPN telemetry collector."""
__version__ = "0.3.0"
