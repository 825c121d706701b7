"""
arqnet - Stop-and-Wait ARQ with shortest-path discovery.

Subpackages:
- arq: frame codec, connections, timers and the ARQ state machine
- routing: link table, forwarder and path discovery
- channel: Gilbert-Elliot burst error channel model
- layers: node reactor, physical links and applications
- utils: logging and metrics
"""
