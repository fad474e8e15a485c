# ABOUTME: CLI entry point for feed-rules.
# ABOUTME: Supports 'serve', 'evaluate', 'test-rule', and 'top' commands.

import argparse
import asyncio
import json
import logging
import sys

import structlog
import uvicorn

from feed_rules.config import get_settings

log = structlog.get_logger()


def configure_logging(level: str) -> None:
    """Configure structlog with a level filter from settings."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelNamesMapping().get(level.upper(), logging.INFO)
        ),
    )


def cmd_serve(args: argparse.Namespace) -> None:
    """Start the API server."""
    settings = get_settings()
    host = args.host or settings.host
    port = args.port or settings.port
    log.info("starting_server", host=host, port=port)
    uvicorn.run("feed_rules.web.app:app", host=host, port=port, reload=args.reload)


async def _with_services(func):
    """Run func(services) against an initialized database."""
    from feed_rules.db.session import close_db, get_session_factory, init_db
    from feed_rules.services import build_services

    await init_db()
    try:
        return await func(build_services(get_session_factory()))
    finally:
        await close_db()


def cmd_evaluate(args: argparse.Namespace) -> None:
    """Evaluate articles against enabled rules and print matched rule ids."""

    async def run(services):
        return await services.engine.evaluate_batch(args.article_ids)

    results = asyncio.run(_with_services(run))
    output = {
        str(article_id): [{"id": rule.id, "name": rule.name} for rule in rules]
        for article_id, rules in results.items()
    }
    print(json.dumps(output, indent=2))


def cmd_test_rule(args: argparse.Namespace) -> None:
    """Dry-run one rule against sample articles."""

    async def run(services):
        return await services.engine.test_rule(args.rule_id, args.article_ids)

    result = asyncio.run(_with_services(run))
    print(result.model_dump_json(indent=2))


def cmd_top(args: argparse.Namespace) -> None:
    """Show the most frequently matching rules."""

    async def run(services):
        return await services.stats.top_rules(args.limit)

    for health in asyncio.run(_with_services(run)):
        print(
            f"{health.rule_id:>5}  {health.match_count:>6}  {health.health_status.value:<14} "
            f"{health.time_since_last_match or 'Never':<22} {health.name}"
        )


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(prog="feed-rules", description="Feed article rule engine")
    subparsers = parser.add_subparsers(dest="command")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the JSON API")
    serve_parser.add_argument("--host", type=str, default=None)
    serve_parser.add_argument("--port", type=int, default=None)
    serve_parser.add_argument("--reload", action="store_true")

    # evaluate
    evaluate_parser = subparsers.add_parser("evaluate", help="Evaluate articles against rules")
    evaluate_parser.add_argument("article_ids", type=int, nargs="+")

    # test-rule
    test_parser = subparsers.add_parser("test-rule", help="Dry-run a rule against articles")
    test_parser.add_argument("rule_id", type=int)
    test_parser.add_argument("article_ids", type=int, nargs="+")

    # top
    top_parser = subparsers.add_parser("top", help="Show rules by match count")
    top_parser.add_argument("--limit", type=int, default=10)

    args = parser.parse_args()
    configure_logging(get_settings().log_level)

    commands = {
        "serve": cmd_serve,
        "evaluate": cmd_evaluate,
        "test-rule": cmd_test_rule,
        "top": cmd_top,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        sys.exit(1)
    command(args)


if __name__ == "__main__":
    main()
