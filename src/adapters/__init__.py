"""Adapters that connect the core ports to real storage and transports."""
