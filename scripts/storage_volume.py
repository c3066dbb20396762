#!/usr/bin/env python3
"""
storage_volume.py - Manage RAID volumes on Dell servers using StorageVolumeComponent

Drives one lifecycle operation (create, read, update, delete or import) for a
volume described in a YAML file, and prints the resulting state as YAML.
"""

import os
import sys
import logging
import argparse
from typing import Any, Dict, List, Optional

import yaml

# Add project root to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../')))

from storagebot.components.storage_volume_component import StorageVolumeComponent
from storagebot.config import load_config, load_volume_state
from storagebot.errors import StorageBotError
from storagebot.mutex import EndpointMutexRegistry


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Set up logging configuration"""
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )
    return logging.getLogger("storage-volume")


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description="Manage RAID volumes through the Redfish API")

    parser.add_argument("operation", choices=["create", "read", "update", "delete", "import"],
                        help="Lifecycle operation to run")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--state", help="YAML file with the desired (or current) volume state")
    parser.add_argument("--prior", help="YAML file with the prior volume state (update only)")
    parser.add_argument("--import-id", help="JSON import identity (import only)")

    # Server configuration, overrides the config file and environment
    parser.add_argument("--server", help="iDRAC address")
    parser.add_argument("--user", help="iDRAC username")
    parser.add_argument("--password", help="iDRAC password")

    parser.add_argument("--output", help="Write the resulting state to this YAML file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return parser.parse_args(argv)


def run_operation(args: argparse.Namespace, registry: EndpointMutexRegistry,
                  logger: logging.Logger) -> Optional[Dict[str, Any]]:
    """
    Run the requested operation.

    Returns:
        The resulting volume state, or None after a delete
    """
    overrides = {'endpoint': args.server, 'username': args.user, 'password': args.password}
    state: Dict[str, Any] = {}

    if args.operation == 'import':
        if not args.import_id:
            raise ValueError("--import-id is required for import")
        server, state = StorageVolumeComponent.import_state(args.import_id)
        overrides = {
            'endpoint': args.server or server['endpoint'],
            'username': args.user or server['username'],
            'password': args.password or server['password'],
            'verify_cert': not server['ssl_insecure'],
        }
    else:
        if not args.state:
            raise ValueError(f"--state is required for {args.operation}")
        state = load_volume_state(args.state)

    config = load_config(args.config, overrides=overrides)
    component = StorageVolumeComponent(config, registry=registry, logger=logger)

    if args.operation == 'create':
        return component.create(state)
    if args.operation in ('read', 'import'):
        result, found = component.read(state)
        if not found:
            logger.warning(f"Volume {state.get('id')} no longer exists")
            return None
        return result
    if args.operation == 'update':
        if not args.prior:
            raise ValueError("--prior is required for update")
        return component.update(state, load_volume_state(args.prior))

    component.delete(state)
    return None


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function that runs one lifecycle operation

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    args = parse_arguments(argv)
    logger = setup_logging(args.verbose)
    registry = EndpointMutexRegistry(logger=logger)

    try:
        result = run_operation(args, registry, logger)
    except (StorageBotError, ValueError) as e:
        logger.error(f"Volume {args.operation} failed: {e}")
        return 1

    if result is not None:
        rendered = yaml.safe_dump(dict(result), sort_keys=False)
        if args.output:
            with open(args.output, 'w') as f:
                f.write(rendered)
            logger.info(f"Wrote volume state to {args.output}")
        else:
            print(rendered)

    logger.info(f"Volume {args.operation} completed on {args.server or 'configured endpoint'}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
