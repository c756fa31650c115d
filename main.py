"""
shopql entry point.

    python main.py            serve the REST gateway
    python main.py report     print the monitoring report for the configured shop
"""

import argparse
import asyncio
import json

import uvicorn
from loguru import logger

from shopql.api.server import create_app
from shopql.events import configure_logging
from shopql.graphql.types import ShopCredentials
from shopql.monitoring.health import HealthChecker
from shopql.monitoring.report import generate_report
from shopql.services.gateway import ResourceGateway
from shopql.settings import global_settings


def configured_credentials() -> ShopCredentials:
    return ShopCredentials(
        shop_domain=global_settings.shop_domain,
        access_token=global_settings.access_token,
        api_version=global_settings.api_version,
    )


async def report() -> None:
    gateway = ResourceGateway.from_settings(global_settings)
    try:
        checker = HealthChecker(gateway.client, gateway.cache, gateway.breakers, global_settings)
        result = await generate_report(
            configured_credentials(),
            checker,
            gateway.client.monitor,
            gateway.cache,
            global_settings,
        )
        print(json.dumps(result, indent=2, default=str))
    finally:
        await gateway.close()


def serve() -> None:
    logger.info(
        f"Starting shopql on {global_settings.server_host}:{global_settings.server_port}"
    )
    uvicorn.run(
        create_app(settings=global_settings),
        host=global_settings.server_host,
        port=global_settings.server_port,
        log_level=global_settings.log_level.lower(),
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="REST-style gateway for the Shopify Admin GraphQL API")
    parser.add_argument("command", nargs="?", default="serve", choices=["serve", "report"])
    args = parser.parse_args()

    configure_logging(global_settings)

    if args.command == "report":
        asyncio.run(report())
    else:
        serve()


if __name__ == "__main__":
    main()
