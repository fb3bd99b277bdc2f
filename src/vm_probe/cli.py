#!/usr/bin/env python3
"""
vmprobe - Command Line Interface

Lists VMs with their guest OS and live resource usage, and attaches or
ejects ISO images.
"""

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from common.exceptions import VMProbeError
from common.logging_config import LogContext, setup_logging

from .config import BACKENDS, ProbeConfig, check, load_config
from .core.executor import VirshExecutor
from .core.host import VirshHost
from .core.probe_manager import ProbeManager
from .dashboard import collect_rows, render_table
from .formatting import UNKNOWN, format_cpu_time_ns, format_memory_pair

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """Objects shared by every command in one run."""
    config: ProbeConfig
    manager: ProbeManager
    inventory: VirshHost


def build_session(config: ProbeConfig) -> Session:
    virsh = VirshExecutor(uri=config.uri, binary=config.virsh_binary)
    return Session(
        config=config,
        manager=ProbeManager.from_config(config),
        inventory=VirshHost(virsh, timeout=config.rpc_timeout),
    )


def cmd_scan(args, session: Session) -> int:
    """Print the VM status table."""
    try:
        rows = collect_rows(
            session.manager,
            session.manager.host.iter_vms(),
            workers=session.config.workers,
        )
    except VMProbeError as e:
        print(f"Failed to list VMs: {e.message}")
        return 1

    if not rows:
        print("No VMs found.")
        return 0

    print(render_table(rows))
    return 0


def cmd_os(args, session: Session) -> int:
    """Print the guest OS of one VM."""
    with LogContext(vm_name=args.vm, probe="os"):
        os_name = session.manager.get_os(args.vm)
    print(os_name or UNKNOWN)
    return 0


def cmd_metrics(args, session: Session) -> int:
    """Print live memory and CPU usage of one VM."""
    with LogContext(vm_name=args.vm, probe="metrics"):
        info = session.manager.get_metrics(args.vm)

    print(f"State:    {info.state or UNKNOWN}")
    print(f"vCPUs:    {info.vcpus if info.vcpus is not None else UNKNOWN}")
    print(f"Memory:   {format_memory_pair(info.used_memory_kib, info.max_memory_kib)}")
    print(f"CPU time: {format_cpu_time_ns(info.cpu_time_ns)}")
    return 0


def cmd_devices(args, session: Session) -> int:
    """List block devices of one VM."""
    devices = session.inventory.block_devices(args.vm)
    if not devices:
        print(f"{args.vm} has no block devices.")
        return 0

    print(f"{'Type':8} {'Device':8} {'Target':8} Source")
    for dev in devices:
        print(f"{dev.type:8} {dev.device:8} {dev.target:8} {dev.source or '-'}")
    return 0


def cmd_mount(args, session: Session) -> int:
    """Attach an ISO image to a VM's CD-ROM drive."""
    device = session.inventory.attach_iso(args.vm, args.iso, target=args.target)
    print(f"Mounted {args.iso} on {args.vm} ({device.target})")
    return 0


def cmd_eject(args, session: Session) -> int:
    """Eject the media in a VM's CD-ROM drive."""
    device = session.inventory.eject_iso(args.vm, target=args.target)
    print(f"Ejected media from {args.vm} ({device.target})")
    return 0


def cmd_menu(args, session: Session, read: Callable[[str], str] = input) -> int:
    """Startup scan, then the interactive menu."""
    cmd_scan(args, session)
    print()

    while True:
        print("1) Mount ISO")
        print("2) Scan VMs")
        print("3) Exit")
        try:
            choice = read("Select option: ").strip()
        except EOFError:
            print()
            return 0

        if choice == "1":
            try:
                vm = read("VM name: ").strip()
                iso = read("ISO path: ").strip()
            except EOFError:
                print()
                return 0
            if not vm or not iso:
                print("VM name and ISO path are required.")
                continue
            try:
                device = session.inventory.attach_iso(vm, iso)
                print(f"Mounted {iso} on {vm} ({device.target})")
            except VMProbeError as e:
                print(f"Mount failed: {e.message}")
        elif choice == "2":
            cmd_scan(args, session)
        elif choice == "3":
            return 0
        else:
            print("Unknown option")
        print()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vmprobe",
        description="Guest OS and resource overview for libvirt VMs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  vmprobe                          # Status table of all VMs (same as "scan")
  vmprobe os web01                 # Guest OS of one VM
  vmprobe metrics web01            # Memory and CPU time
  vmprobe mount web01 ~/iso/x.iso  # Attach ISO to the CD-ROM drive
  vmprobe menu                     # Startup scan, then the Mount ISO / Scan / Exit menu
        """,
    )
    parser.add_argument("-c", "--connect", dest="uri",
                        help="libvirt URI (default: $LIBVIRT_URI or qemu:///system)")
    parser.add_argument("--backend", choices=BACKENDS,
                        help="Enumeration and metrics backend")
    parser.add_argument("--ttl", type=float, help="OS cache TTL in seconds")
    parser.add_argument("--timeout", type=float, help="Guest agent RPC timeout in seconds")
    parser.add_argument("-j", "--workers", type=int, help="Parallel probes for scan")
    parser.add_argument("--config", type=Path, help="Config file path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug output")
    parser.add_argument("--log-file", type=Path, help="Write a debug log to this file")
    parser.add_argument("--json-logs", action="store_true", help="JSON format for --log-file")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    scan_parser = subparsers.add_parser("scan", help="Status table of all VMs")
    scan_parser.set_defaults(func=cmd_scan)

    os_parser = subparsers.add_parser("os", help="Detect the guest OS of a VM")
    os_parser.add_argument("vm")
    os_parser.set_defaults(func=cmd_os)

    metrics_parser = subparsers.add_parser("metrics", help="Show live memory and CPU time")
    metrics_parser.add_argument("vm")
    metrics_parser.set_defaults(func=cmd_metrics)

    devices_parser = subparsers.add_parser("devices", help="List block devices")
    devices_parser.add_argument("vm")
    devices_parser.set_defaults(func=cmd_devices)

    mount_parser = subparsers.add_parser("mount", help="Attach an ISO image")
    mount_parser.add_argument("vm")
    mount_parser.add_argument("iso")
    mount_parser.add_argument("-t", "--target", help="CD-ROM target (default: first CD-ROM)")
    mount_parser.set_defaults(func=cmd_mount)

    eject_parser = subparsers.add_parser("eject", help="Eject CD-ROM media")
    eject_parser.add_argument("vm")
    eject_parser.add_argument("-t", "--target", help="CD-ROM target (default: first CD-ROM)")
    eject_parser.set_defaults(func=cmd_eject)

    menu_parser = subparsers.add_parser("menu", help="Interactive menu")
    menu_parser.set_defaults(func=cmd_menu)

    return parser


def apply_overrides(config: ProbeConfig, args) -> ProbeConfig:
    """Command-line flags win over file and environment settings."""
    if args.uri:
        config.uri = args.uri
    if args.backend:
        config.backend = args.backend
    if args.ttl is not None:
        config.cache_ttl = args.ttl
    if args.timeout is not None:
        config.rpc_timeout = args.timeout
    if args.workers is not None:
        config.workers = args.workers
    return check(config)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        log_file=args.log_file,
        json_logs=args.json_logs,
    )

    try:
        config = apply_overrides(load_config(args.config), args)
        session = build_session(config)
        func = getattr(args, "func", cmd_scan)
        return func(args, session)
    except VMProbeError as e:
        logger.debug("command failed", exc_info=True)
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except RuntimeError as e:
        # e.g. libvirt backend selected without libvirt-python
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print()
        return 130


if __name__ == "__main__":
    sys.exit(main())
