"""Standalone EVPN gateway agent built on :mod:`evpn_bridge`."""

from .config import AgentConfig, load_config  # noqa: F401

__all__ = ["AgentConfig", "load_config"]
