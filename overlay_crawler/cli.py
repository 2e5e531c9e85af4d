"""
Command line entry point: crawl an overlay network from one node and write
the session report as JSON.
"""

import argparse
import asyncio
import json
import logging

from .crawler import CrawlConfig, CrawlController
from .normalize import DEFAULT_PORT
from .session import CrawlInvariantError
from .transport import DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)


def print_summary(crawler: CrawlController, output: str):
    """Print crawl summary."""
    session = crawler.session
    summary = session.summary()

    print()
    print("╔" + "═" * 68 + "╗")
    title = "  CRAWL CANCELLED" if session.cancelled else "  CRAWL COMPLETE!"
    print("║" + title.center(68) + "║")
    print("╠" + "═" * 68 + "╣")
    print(f"║  Entry: {summary['entry']}".ljust(69) + "║")
    print(f"║  Started: {session.start}".ljust(69) + "║")
    print(f"║  Finished: {session.end}".ljust(69) + "║")
    print(f"║  Nodes crawled: {summary['crawled']:,}".ljust(69) + "║")
    print(f"║  Nodes failed: {summary['failed']:,}".ljust(69) + "║")
    print(f"║  Unique peer keys: {len(crawler.peers):,}".ljust(69) + "║")
    print(f"║  Deepest hop: {summary['max_hops']}".ljust(69) + "║")
    print(f"║  Report: {output}".ljust(69) + "║")
    print("╚" + "═" * 68 + "╝")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Crawl a peer-to-peer overlay network starting at one node',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Crawl from a node on the default port:
  overlay-crawl s1.ripple.com

  # Crawl with a lower concurrency and a 2 minute budget:
  overlay-crawl 10.0.0.1:51235 --max-in-flight 10 --deadline 120
        """
    )

    parser.add_argument('entry', type=str,
                        help='Entry node as host or host:port')
    parser.add_argument('--max-in-flight', type=int, default=30,
                        help='Maximum concurrent fetches (default: 30)')
    parser.add_argument('--default-port', type=int, default=DEFAULT_PORT,
                        help=f'Port used when a peer reports none (default: {DEFAULT_PORT})')
    parser.add_argument('--timeout', type=float, default=DEFAULT_TIMEOUT,
                        help=f'Per-node fetch timeout in seconds (default: {DEFAULT_TIMEOUT})')
    parser.add_argument('--verify-tls', action='store_true',
                        help='Verify node TLS certificates')
    parser.add_argument('--deadline', type=float, default=None,
                        help='Stop admitting new fetches after this many seconds')
    parser.add_argument('--output', type=str, default='crawl.json',
                        help='Output JSON file for the session report (default: crawl.json)')
    parser.add_argument('--peers-output', type=str, default=None,
                        help='Also write merged peer records keyed by public key')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Log every fetch')
    return parser


def main(argv=None) -> int:
    """Main function."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(asctime)s - %(levelname)s - %(message)s')
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    config = CrawlConfig(
        max_in_flight=args.max_in_flight,
        default_port=args.default_port,
        timeout=args.timeout,
        verify_tls=args.verify_tls,
        deadline=args.deadline
    )
    crawler = CrawlController(config=config)

    try:
        session = asyncio.run(crawler.get_crawl(args.entry))
    except CrawlInvariantError as e:
        logger.error(f"Crawl aborted on internal error: {e}")
        return 1
    except KeyboardInterrupt:
        logger.error("Interrupted by user")
        return 1

    with open(args.output, 'w') as f:
        json.dump(session.to_dict(), f, indent=2)
    logger.info(f"Saved session report to {args.output}")

    if args.peers_output:
        with open(args.peers_output, 'w') as f:
            json.dump(crawler.peers.to_dict(), f, indent=2)
        logger.info(f"Saved {len(crawler.peers)} peer records to {args.peers_output}")

    print_summary(crawler, args.output)
    return 0


if __name__ == '__main__':
    exit(main())
