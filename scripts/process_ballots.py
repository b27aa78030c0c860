#!/usr/bin/env python3
"""
Load contestants and ranked ballots into a DuckDB file for tabulation.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from data.ballot_loader import BallotLoader  # noqa: E402

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Process ranked ballot data")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--json", help="Election JSON with 'contestants' and 'ballots' lists"
    )
    source.add_argument(
        "--rankings", help="Long-format CSV with ballot_id, contestant_id, rank"
    )
    parser.add_argument(
        "--contestants", help="CSV with id, name columns (required with --rankings)"
    )
    parser.add_argument(
        "--db", required=True, help="Path to DuckDB database file to create or replace"
    )

    args = parser.parse_args()

    if args.rankings and not args.contestants:
        parser.error("--contestants is required with --rankings")

    for path in (args.json, args.rankings, args.contestants):
        if path and not Path(path).exists():
            logger.error(f"File not found: {path}")
            sys.exit(1)

    try:
        with BallotLoader(args.db) as loader:
            logger.info("=== Loading Ballot Data ===")
            if args.json:
                stats = loader.load_json(args.json)
            else:
                loader.load_contestants_csv(args.contestants)
                stats = loader.load_rankings_csv(args.rankings)

            print(f"✓ Loaded {stats['contestants']} contestants")
            print(f"✓ Loaded {stats['total_ballots']} ballots")
            print(f"✓ Loaded {stats['ranking_rows']} rankings")

            if stats["ballots_without_rankings"] > 0:
                print(
                    f"⚠️  Warning: {stats['ballots_without_rankings']} ballots rank nobody"
                )
            if stats["unknown_contestant_rows"] > 0:
                print(
                    f"⚠️  Warning: {stats['unknown_contestant_rows']} rankings reference unknown contestants"
                )
            if stats["ballots_with_repeats"] > 0:
                print(
                    f"⚠️  Warning: {stats['ballots_with_repeats']} ballots rank a contestant twice"
                )

            if stats["duplicate_ballot_ids"] > 0:
                print(
                    f"⚠️  Warning: {stats['duplicate_ballot_ids']} ballot ids are shared by several ballots (each still counts)"
                )

            print("\nContestants:")
            for candidate in loader.get_candidates():
                print(f"  {candidate.id!s:>4}: {candidate.name}")

            print(f"\n✓ Database written to: {Path(args.db).absolute()}")

    except Exception as e:
        logger.error(f"Error processing data: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
