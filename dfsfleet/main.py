#!/usr/bin/env python3
"""
Startup routine and administrative entry point of the scheduler.

Usage:
    # Show acquisition progress and orphaned volumes
    python -m dfsfleet.main --config scheduler.yaml status
    
    # Forget the registered framework id so the next start registers anew
    python -m dfsfleet.main --config scheduler.yaml reset-framework-id
"""

import argparse
import json
import sys
from dataclasses import dataclass
from typing import List, Optional

from dfsfleet.scheduler.offers import OfferEvaluator
from dfsfleet.scheduler.provider import ConstraintProvider
from dfsfleet.state.registry import StateRegistry
from dfsfleet.state.serializer import SerializationError
from dfsfleet.state.store import StateFactory, StoreError
from dfsfleet.utils.config import Config, ConfigError, FrameworkConfig
from dfsfleet.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@dataclass
class SchedulerComponents:
    """Object graph of a running scheduler."""
    config: FrameworkConfig
    state: StateRegistry
    provider: ConstraintProvider
    evaluator: OfferEvaluator


def build_components(config: FrameworkConfig) -> SchedulerComponents:
    """
    Construct the state registry and the constraint engine.
    
    Args:
        config: Validated framework configuration
    
    Returns:
        Wired components
    """
    state = StateRegistry(config, StateFactory(config))
    provider = ConstraintProvider(state, config)
    evaluator = OfferEvaluator(state, provider)
    return SchedulerComponents(
        config=config,
        state=state,
        provider=provider,
        evaluator=evaluator,
    )


def status_report(components: SchedulerComponents) -> dict:
    """Summary of acquisition progress."""
    state = components.state
    constraint = components.provider.get_next_constraint()
    framework_id = state.get_framework_id()
    
    return {
        "framework_id": framework_id.value if framework_id else None,
        "phase": components.provider.phase.value,
        "next_role": constraint.role if constraint else None,
        "journal_nodes": len(state.journal_nodes()),
        "name_nodes": len(state.name_nodes()),
        "name_nodes_initialized": state.name_nodes_initialized(),
        "data_nodes": len(state.data_nodes()),
        "orphaned_volumes": sorted(v.persistence_id for v in state.orphaned_volumes()),
    }


def parse_args(argv: Optional[List[str]] = None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description='dfsfleet - distributed file system scheduler'
    )
    
    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='YAML configuration file (default: built-in defaults)'
    )
    
    parser.add_argument(
        '--log-level',
        type=str,
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: from configuration)'
    )
    
    parser.add_argument(
        '--log-format',
        type=str,
        default='console',
        choices=['json', 'console'],
        help='Log output format (default: console)'
    )
    
    parser.add_argument(
        'command',
        choices=['status', 'reset-framework-id'],
        help='Action to perform'
    )
    
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    
    try:
        raw_config = Config(args.config)
        config = FrameworkConfig.from_config(raw_config)
    except ConfigError as e:
        configure_logging(log_level="ERROR", log_format=args.log_format, log_output="stderr")
        logger.error("Invalid configuration", error=str(e))
        return 2
    
    configure_logging(
        log_level=args.log_level or raw_config.get("logging.level", "INFO"),
        log_format=args.log_format,
        log_output="stderr",
    )
    
    logger.info(
        "Starting dfsfleet",
        framework_name=config.framework_name,
        role=config.role,
        zk_address=config.zk_address,
        state_backend=config.state_backend,
    )
    
    try:
        components = build_components(config)
        
        if args.command == 'reset-framework-id':
            components.state.remove_framework_id()
        else:
            print(json.dumps(status_report(components), indent=2))
    
    except (StoreError, SerializationError) as e:
        logger.error("State store error", error=str(e))
        return 1
    
    return 0


if __name__ == '__main__':
    sys.exit(main())
