#!/usr/bin/env python3
"""
Recount processed ballot data and verify the tabulation round by round.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from data.ballot_loader import BallotLoader  # noqa: E402
from tabulation.cross_check import PyRankVoteCrossCheck  # noqa: E402
from tabulation.irv import tabulate  # noqa: E402
from tabulation.verification import ResultsVerifier  # noqa: E402

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Verify IRV tabulation results")
    parser.add_argument(
        "--db", required=True, help="Path to DuckDB database file with processed data"
    )
    parser.add_argument("--expected-winner", help="Name of the expected winner")
    parser.add_argument(
        "--cross-check",
        action="store_true",
        help="Also recount with PyRankVote and compare winners",
    )
    parser.add_argument("--export", help="Export verification report to file")

    args = parser.parse_args()

    if not Path(args.db).exists():
        logger.error("Database file not found. Run process_ballots.py first.")
        sys.exit(1)

    try:
        with BallotLoader(args.db, read_only=True) as loader:
            ballots = loader.get_ballots()
            candidates = loader.get_candidates()

        logger.info("=== Running IRV Tabulation ===")
        result = tabulate(ballots, candidates)

        logger.info("=== Verifying Results ===")
        verifier = ResultsVerifier(ballots, candidates)
        verification_results = verifier.verify_results(
            result, expected_winner=args.expected_winner
        )

        report = verifier.generate_verification_report(verification_results)
        print(report)

        cross_check_failed = False
        if args.cross_check:
            check = PyRankVoteCrossCheck(ballots, candidates).run_cross_check(result)
            print("\nPYRANKVOTE CROSS-CHECK:")
            if not check["available"]:
                print(f"⚠️  Unavailable: {check['error']}")
            elif check["agrees"]:
                print(f"✅ PyRankVote agrees: winner {check['pyrankvote_winner']}")
            else:
                print(
                    f"❌ PyRankVote winner {check['pyrankvote_winner']} differs from ours ({check['our_winner']})"
                )
                if check["tie_encountered"]:
                    print("   A tie for last place was broken by lowest id")
                else:
                    cross_check_failed = True

        if args.export:
            export_path = Path(args.export)
            with open(export_path, "w") as f:
                f.write(report)
            print(f"\n✓ Verification report exported to: {export_path}")

            checks_path = export_path.with_stem(
                export_path.stem + "_round_checks"
            ).with_suffix(".csv")
            verification_results["round_checks"].to_csv(checks_path, index=False)
            print(f"✓ Round checks exported to: {checks_path}")

        if verification_results["verification_passed"] and not cross_check_failed:
            print("\n🎉 Verification PASSED!")
            sys.exit(0)
        else:
            print("\n⚠️  Verification FAILED - see report above for details")
            sys.exit(1)

    except Exception as e:
        logger.error(f"Error during verification: {e}")
        import traceback

        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
