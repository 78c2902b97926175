"""
Issue or revoke API bearer tokens.

Usage:
    python -m services.lending.src.lending.jobs.issue_token --user-id alice
    python -m services.lending.src.lending.jobs.issue_token --revoke <token>
"""
import argparse
import logging
import sys

from services.lending.src.lending.db.engine import get_engine, init_db
from services.lending.src.lending.db.tokens_repository import ApiTokenRepository
from services.lending.src.lending.utils.log_events import configure_logging

configure_logging()
logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Manage API bearer tokens")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--user-id", type=str, help="Issue a token for this user")
    group.add_argument("--revoke", type=str, help="Revoke this token")
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Database URL (default: from settings)",
    )

    args = parser.parse_args()

    try:
        engine = get_engine(args.database_url)
        init_db(engine)
        repo = ApiTokenRepository(engine)
        if args.revoke:
            if not repo.revoke(args.revoke):
                logger.error("Token not found")
                return 1
            logger.info("Token revoked")
            return 0

        # Printed so it can be captured; it is not stored in clear
        print(repo.issue(args.user_id))
        logger.info(f"Issued token for {args.user_id}")
        return 0
    except Exception as e:
        logger.error(f"Token command failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
