#!/usr/bin/env python3
"""
Command Line Interface for Stream Archiver
"""

import sys
import logging
import argparse
from typing import List, Optional

from .archiver import StreamArchiver
from .config import load_config, check_writable
from .errors import ConfigError, DestinationOpenError

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='stream-archiver',
        description='Archive a live audio stream to hourly files',
    )
    parser.add_argument(
        '--url',
        help='Broadcast stream URL. On the internal network this should be '
             'a URL to the streaming appliance.')
    parser.add_argument(
        '--dest',
        help='Directory to write archives to. This must exist and be writable.')
    parser.add_argument('--config', '-c', help='Configuration file (TOML)')
    parser.add_argument('--timezone',
                        help='Timezone for archive file names, e.g. America/Chicago')
    parser.add_argument('--max-retries', type=int,
                        help='Consecutive stream errors tolerated before giving up')
    parser.add_argument('--quiet', '-q', action='store_true',
                        help='When set, debug logging will be hidden.')
    return parser


def setup_logging(level: str):
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        root_logger.addHandler(handler)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for stream-archiver command"""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
        config = config.replace(
            url=args.url,
            root_dir=args.dest,
            timezone=args.timezone,
            max_retries=args.max_retries,
            log_level='INFO' if args.quiet else None,
        )
    except ConfigError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    setup_logging(config.log_level)
    logger = logging.getLogger(__name__)

    try:
        check_writable(config.root_dir)
        archiver = StreamArchiver(config)
        return archiver.run()
    except (ConfigError, DestinationOpenError) as e:
        logger.error(f"Cannot start archiver: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
