"""
NWC Bridge Server

Process entry point: loads configuration and keys, wires the payment
backend, dispatcher, session and shutdown coordinator together, and runs
until SIGINT or SIGTERM.
"""

import argparse
import asyncio
import logging
import sys

from .backend import LndRestBackend, PaymentBackend
from .config import BridgeConfig, ConfigError, load_config
from .dispatcher import CommandDispatcher
from .keys import KeyStoreError, NWCKeys
from .payments import PaymentTracker
from .session import SessionController
from .shutdown import ShutdownCoordinator

logger = logging.getLogger("nwc-bridge")


class NWCBridgeServer:
    """Nostr Wallet Connect bridge in front of a Lightning node."""

    def __init__(self, config: BridgeConfig, backend: PaymentBackend | None = None) -> None:
        self.config = config
        self.backend = backend
        self.keys: NWCKeys | None = None
        self.tracker = PaymentTracker()
        self.coordinator = ShutdownCoordinator()
        self.session: SessionController | None = None

    def _initialize(self) -> SessionController:
        """Load keys and build the request pipeline."""
        self.keys = NWCKeys.load_or_generate(self.config.keys_file)
        uri = self.keys.connection(self.config.relay).to_uri()
        logger.info(f"Connection URI: {uri}")

        if self.backend is None:
            self.backend = LndRestBackend(
                host=self.config.lnd_rest_host,
                macaroon_hex=self.config.lnd_macaroon_hex,
                tls_cert=self.config.lnd_tls_cert,
                route_hints=self.config.route_hints,
            )

        dispatcher = CommandDispatcher(
            keys=self.keys,
            config=self.config,
            backend=self.backend,
            tracker=self.tracker,
        )
        self.session = SessionController(
            config=self.config,
            keys=self.keys,
            dispatcher=dispatcher,
            inflight=self.coordinator,
        )
        return self.session

    async def run(self) -> None:
        """Run until a shutdown signal arrives, then drain in-flight requests."""
        logger.info("Starting NWC bridge...")
        session = self._initialize()
        self.coordinator.install_signal_handlers()

        session_task = asyncio.create_task(session.run())
        shutdown_task = asyncio.create_task(self.coordinator.wait_for_shutdown())
        try:
            await asyncio.wait(
                {session_task, shutdown_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            shutdown_task.cancel()
            session.stop()
            try:
                await session_task
            finally:
                await self.coordinator.drain()
                if self.backend is not None:
                    await self.backend.close()
        logger.info("NWC bridge stopped")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nwc-bridge",
        description="Nostr Wallet Connect (NIP-47) bridge for an LND node",
    )
    parser.add_argument("--config", help="Path to a JSON config file")
    parser.add_argument("--relay", help="Relay websocket URL")
    parser.add_argument("--keys-file", help="Location of the keys file")
    parser.add_argument("--max-amount", type=int, help="Max payment amount in sats (0 = no cap)")
    parser.add_argument("--daily-limit", type=int, help="Max spend per day in sats (0 = no cap)")
    parser.add_argument("--lnd-rest-host", help="LND REST host, e.g. 127.0.0.1:8080")
    parser.add_argument("--lnd-macaroon-hex", help="Hex encoded admin macaroon")
    parser.add_argument("--lnd-tls-cert", help="Path to LND's tls.cert")
    parser.add_argument(
        "--route-hints",
        action="store_true",
        default=None,
        help="Include route hints for private channels in invoices",
    )
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, ...)")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for the bridge."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = load_config(
            config_file=args.config,
            relay=args.relay,
            keys_file=args.keys_file,
            max_amount=args.max_amount,
            daily_limit=args.daily_limit,
            lnd_rest_host=args.lnd_rest_host,
            lnd_macaroon_hex=args.lnd_macaroon_hex,
            lnd_tls_cert=args.lnd_tls_cert,
            route_hints=args.route_hints,
            log_level=args.log_level,
        )
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    logging.getLogger().setLevel(config.log_level.upper())

    server = NWCBridgeServer(config)
    try:
        asyncio.run(server.run())
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
        sys.exit(0)
    except KeyStoreError as e:
        logger.error(str(e))
        sys.exit(1)
    except Exception:
        logger.exception("Server error")
        sys.exit(1)


if __name__ == "__main__":
    main()
