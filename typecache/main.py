import argparse
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

from typecache.config import Config
from typecache.demo import run_demo


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO),
                        format='[typecache] %(message)s')


def main(argv=None) -> int:
    """Entry point for the stale-OID demonstration"""
    config = Config(load_env_file=False)

    parser = argparse.ArgumentParser(
        prog="typecache-demo",
        description="Recreate an enum type under a live connection and watch the type cache recover.",
    )
    parser.add_argument("url", nargs="?", default=config.database_url,
                        help="PostgreSQL URL (defaults to TYPECACHE_DATABASE_URL)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log cache activity at DEBUG level")
    args = parser.parse_args(argv)

    configure_logging("DEBUG" if args.verbose else config.log_level)

    if not args.url:
        parser.print_usage(sys.stderr)
        print(f"{parser.prog}: error: no POSTGRESQL_URL given and TYPECACHE_DATABASE_URL is not set",
              file=sys.stderr)
        return 2

    config.database_url = args.url
    valid, message = config.validate()
    if not valid:
        print(f"❌ {message}", file=sys.stderr)
        return 2

    return run_demo(args.url, config)


if __name__ == "__main__":
    sys.exit(main())
