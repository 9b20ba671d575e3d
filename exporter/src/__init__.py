"""
Exporter package for the TP-Link HS110 energy pipeline.

Discovers HS110 smart plugs on the local network over UDP broadcast, queries
each plug's energy meter over its ciphered TCP protocol, sanitizes counter
spikes against the previous run, and hands the resulting measurement to
BigQuery and the Kubernetes state ConfigMap.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""
