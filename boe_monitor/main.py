"""
Main entry point for the BOE monitoring system.
"""

import argparse
import asyncio
import json
import logging
import sys

import structlog

from .core.config import settings
from .core.errors import ConfigurationError
from .orchestration import build_pipeline
from .publishing import NotificationPublisher


def setup_logging():
    """Configure structured logging."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.log_format.lower() == "console"
        else structlog.processors.JSONRenderer()
    )

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="BOE Monitoring & Analysis System"
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Analyze command
    analyze_parser = subparsers.add_parser('analyze', help='Analyze a bulletin for one or more prompts')
    analyze_parser.add_argument(
        '--prompt',
        action='append',
        required=True,
        help='Query to analyze the bulletin for (repeatable)'
    )
    analyze_parser.add_argument(
        '--date',
        type=str,
        help='Bulletin date (YYYY-MM-DD, defaults to yesterday)'
    )
    analyze_parser.add_argument(
        '--correlation-id',
        type=str,
        help='Identifier attached to every log line of this run'
    )
    analyze_parser.add_argument(
        '--publish',
        action='store_true',
        help='Publish the results to the notification topic'
    )
    analyze_parser.add_argument('--subscription-id', type=str, help='Subscription to publish for')
    analyze_parser.add_argument('--user-id', type=str, help='Subscription owner to publish for')

    # Health check command
    subparsers.add_parser('health', help='Check system health')

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    # Setup logging
    setup_logging()
    logger = structlog.get_logger(__name__)

    try:
        pipeline = build_pipeline(settings)
    except ConfigurationError as e:
        logger.error("Invalid configuration", error=e.message, details=e.details)
        sys.exit(2)

    if args.command == 'analyze':
        if args.publish and not (args.subscription_id and args.user_id):
            parser.error("--publish requires --subscription-id and --user-id")

        try:
            response = asyncio.run(
                pipeline.analyze(args.prompt, args.date, correlation_id=args.correlation_id)
            )
        except ValueError as e:
            logger.error("Invalid analysis request", error=str(e))
            sys.exit(1)

        print(json.dumps(response.model_dump(mode="json"), indent=2, ensure_ascii=False))

        if args.publish:
            try:
                publisher = NotificationPublisher()
            except ConfigurationError as e:
                logger.error("Publishing is not configured", error=e.message)
                sys.exit(2)

            result = publisher.publish(response, args.subscription_id, args.user_id)
            if not result.success:
                logger.error("Publishing failed",
                             error=result.error_message,
                             dead_lettered=result.dead_lettered)
                sys.exit(1)

        sys.exit(0 if response.status != "error" else 1)

    elif args.command == 'health':
        logger.info("Running health checks")
        health_status = asyncio.run(pipeline.health_check())

        print("\n=== System Health Check ===")
        for component, status in health_status.items():
            print(f"{component.replace('_', ' ').title()}: {'OK' if status else 'FAILED'}")

        all_healthy = all(health_status.values())
        print(f"\nOverall Status: {'HEALTHY' if all_healthy else 'ISSUES DETECTED'}")

        sys.exit(0 if all_healthy else 1)


if __name__ == "__main__":
    main()
