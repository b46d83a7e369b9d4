#!/usr/bin/env python3
"""Translate a topology file into evpn_gw_control table entries (dry run)."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import yaml

REPO_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from evpn_bridge import (  # noqa: E402
    Decoders,
    ForwardingEvent,
    ForwardingKind,
    InMemoryTopologyStore,
    ObjectEvent,
    ObjectKind,
    Operation,
    Reconciler,
)
from evpn_bridge.drivers import FileSwitchDriver  # noqa: E402
from evpn_gw_agent.config import load_config  # noqa: E402
from evpn_gw_agent.representors import load_representors  # noqa: E402
from evpn_gw_agent.watchers import parse_topology  # noqa: E402
from evpn_p4.objects import ComponentState  # noqa: E402
from evpn_p4.pool import ResourcePools  # noqa: E402

LOG = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("deploy/evpn-gw/agent.yaml"),
        help="Agent configuration providing the port representors",
    )
    parser.add_argument(
        "--topology",
        type=Path,
        default=Path("deploy/evpn-gw/topology.yaml"),
        help="Topology file to translate",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Write the resulting table state here instead of stdout",
    )
    parser.add_argument(
        "--no-static",
        action="store_true",
        help="Leave out the static entries installed at start-up",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO, stream=sys.stderr
    )

    config = load_config(args.config)
    representors = load_representors(config.interfaces)
    state = parse_topology(yaml.safe_load(args.topology.read_text()) or {})

    store = InMemoryTopologyStore()
    switch = FileSwitchDriver()
    decoders = Decoders.build(ResourcePools(), representors, store)
    reconciler = Reconciler(store, switch, decoders, component=config.component)

    if not args.no_static:
        reconciler.install_static_entries()

    for kind in ObjectKind:
        for obj in state.objects[kind].values():
            store.put(obj)

    failures = 0
    for kind in ObjectKind:
        for obj in state.objects[kind].values():
            status = reconciler.handle_topology(
                ObjectEvent(kind, obj.name, obj.resource_version)
            )
            if status.status is not ComponentState.SUCCESS:
                LOG.warning("%s '%s': %s", kind.value, obj.name, status.details)
                failures += 1

    for kind in (
        ForwardingKind.NEXTHOP,
        ForwardingKind.L2_NEXTHOP,
        ForwardingKind.ROUTE,
        ForwardingKind.FDB,
    ):
        for obj in state.forwarding[kind].values():
            event = ForwardingEvent(kind, Operation.ADDED, obj)
            if not reconciler.handle_forwarding(event):
                failures += 1

    rendered = json.dumps(switch.snapshot(), indent=2, sort_keys=True)
    if args.output:
        args.output.write_text(rendered + "\n")
        LOG.info("wrote %d entries to %s", len(switch), args.output)
    else:
        print(rendered)
    if failures:
        LOG.warning("%d objects failed to translate", failures)
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
