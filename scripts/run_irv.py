#!/usr/bin/env python3
"""
Run instant-runoff tabulation on processed ballot data.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from data.ballot_loader import BallotLoader  # noqa: E402
from tabulation.irv import MAX_ROUNDS, IRVTabulator  # noqa: E402

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Run IRV tabulation")
    parser.add_argument("--db", help="Path to DuckDB database file with processed data")
    parser.add_argument(
        "--max-rounds",
        type=int,
        default=MAX_ROUNDS,
        help=f"Give up after this many rounds (default: {MAX_ROUNDS})",
    )
    parser.add_argument("--export", help="Export results to CSV and JSON files")

    args = parser.parse_args()

    if not args.db or not Path(args.db).exists():
        logger.error(
            "Database file required and must exist. Run process_ballots.py first."
        )
        sys.exit(1)

    try:
        with BallotLoader(args.db, read_only=True) as loader:
            for table in ["contestants", "ballots", "rankings"]:
                if not loader.db.table_exists(table):
                    logger.error(
                        f"Required table '{table}' not found. Run process_ballots.py first."
                    )
                    sys.exit(1)

            ballots = loader.get_ballots()
            candidates = loader.get_candidates()

        logger.info("=== IRV Tabulation ===")
        tabulator = IRVTabulator(ballots, candidates, max_rounds=args.max_rounds)
        result = tabulator.run_tabulation()

        print(f"\nTotal ballots: {result.total_ballots}")

        print("\n=== Round-by-Round Results ===")
        round_summary = tabulator.get_round_summary()

        if round_summary.empty:
            print("No counting rounds were needed")
        else:
            for round_num in sorted(round_summary["round"].unique()):
                round_data = round_summary[round_summary["round"] == round_num]
                first = round_data.iloc[0]
                print(f"\nRound {round_num}:")
                print(
                    f"Votes counted: {first['total_votes']}  Majority: {first['majority_threshold']}"
                )

                for _, row in round_data.sort_values(
                    "votes", ascending=False
                ).iterrows():
                    status_symbol = {
                        "elected": "🏆",
                        "eliminated": "❌",
                        "continuing": "  ",
                    }.get(row["status"], "  ")

                    print(
                        f"  {status_symbol} {row['candidate_name']:25s}: {row['votes']:6d} votes"
                    )

                if first["inactive_ballots"] > 0:
                    print(
                        f"     {'Exhausted':25s}: {first['inactive_ballots']:6d} ballots"
                    )

        print("\n=== Final Result ===")
        if result.winner:
            print(f"🏆 Winner: {result.winner.name}")
        elif result.total_ballots == 0:
            print("No votes have been cast yet")
        else:
            print("⚠️  Inconclusive - no winner could be declared")

        if args.export:
            export_path = Path(args.export)

            final_results = tabulator.get_final_results()
            final_results.to_csv(export_path.with_suffix(".csv"), index=False)
            print(f"\n✓ Final results exported to: {export_path.with_suffix('.csv')}")

            rounds_path = export_path.with_stem(export_path.stem + "_rounds").with_suffix(
                ".csv"
            )
            round_summary.to_csv(rounds_path, index=False)
            print(f"✓ Round summary exported to: {rounds_path}")

            json_path = export_path.with_suffix(".json")
            with open(json_path, "w") as f:
                json.dump(result.to_dict(), f, indent=2)
            print(f"✓ Result JSON exported to: {json_path}")

        print("\n✓ IRV tabulation completed successfully")

    except Exception as e:
        logger.error(f"Error running IRV tabulation: {e}")
        import traceback

        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
