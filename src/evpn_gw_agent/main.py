"""Entry point for the EVPN gateway agent."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from threading import Event

from evpn_bridge import (
    Decoders,
    EventBus,
    ForwardingKind,
    InMemoryTopologyStore,
    ObjectKind,
    Reconciler,
    SubscriptionListener,
)
from evpn_bridge.drivers import FileSwitchDriver, wait_for_ready
from evpn_p4.pool import ResourcePools

from .config import load_config
from .representors import load_representors
from .watchers import FileTopologyWatcher

LOG = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the EVPN gateway agent")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("/etc/evpn-gw/agent.yaml"),
        help="Path to the agent configuration file",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log at debug level",
    )

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    config = load_config(args.config)
    representors = load_representors(config.interfaces)

    store = InMemoryTopologyStore()
    bus = EventBus()
    switch = FileSwitchDriver(config.switch.path)
    decoders = Decoders.build(ResourcePools(), representors, store)
    reconciler = Reconciler(store, switch, decoders, component=config.component)

    if not wait_for_ready(
        switch, timeout=config.p4.ready_timeout, interval=config.p4.ready_interval
    ):
        LOG.error("switch at %s never became ready", config.p4.address)
        return 1
    if not reconciler.install_static_entries():
        LOG.warning("some static entries could not be installed")

    stop_event = Event()

    listeners = []
    for kind in ObjectKind:
        listeners.append(
            SubscriptionListener(bus, kind, reconciler.handle_topology, stop_event)
        )
    for kind in ForwardingKind:
        listeners.append(
            SubscriptionListener(bus, kind, reconciler.handle_forwarding, stop_event)
        )
    for listener in listeners:
        listener.start()

    watchers = []
    for watcher_cfg in config.watchers:
        if watcher_cfg.type == "file":
            watcher = FileTopologyWatcher(
                store=store,
                bus=bus,
                path=watcher_cfg.path,
                interval=watcher_cfg.interval,
                stop_event=stop_event,
            )
        else:
            raise ValueError(f"unsupported watcher type '{watcher_cfg.type}'")
        watcher.start()
        watchers.append(watcher)

    if not watchers:
        LOG.warning("no topology watchers configured, only static entries apply")

    def _shutdown(signum, frame):  # pragma: no cover - signal handler
        LOG.info("received signal %s, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    try:
        while not stop_event.is_set():
            stop_event.wait(1.0)
    except KeyboardInterrupt:  # pragma: no cover - fallback if signal not set
        stop_event.set()

    for watcher in watchers:
        watcher.join()
    for listener in listeners:
        listener.shutdown()
    reconciler.remove_static_entries()

    LOG.info("evpn gateway agent stopped")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
