import argparse
import sys

from linkvault.config import configure_logging, load_settings
from linkvault.fetch import ExtractionError, Strategy, fetch_metadata
from linkvault.util.containers import InFlightSet


def parse_args():
    parser = argparse.ArgumentParser(description="Fetch and enrich metadata for a link")

    # Required argument
    parser.add_argument("url", help="URL to fetch metadata for")

    # Optional arguments
    parser.add_argument(
        "--strategy",
        choices=["auto", *[s.value for s in Strategy]],
        default="auto",
        help="How to fetch the page (default: auto, which checks it with a plain GET first)",
    )
    parser.add_argument(
        "--no-enrich",
        action="store_true",
        help="Skip AI tag ranking/generation and categorization",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)",
    )

    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    configure_logging(args.log_level.upper())

    strategy = None if args.strategy == "auto" else Strategy(args.strategy)
    try:
        metadata = fetch_metadata(
            args.url,
            load_settings(),
            InFlightSet(),
            strategy=strategy,
            enrich_result=not args.no_enrich,
        )
    except ExtractionError as e:
        print(e, file=sys.stderr)
        sys.exit(1)

    print(metadata.model_dump_json(by_alias=True, indent=2))
