"""
Wallet Pool — Main Daemon
=========================

The entry point for the wallet pool daemon.

Startup sequence:
  1. Load config (file → env → CLI flags)
  2. Build the registry and hand it to every component
  3. Start the report API (unless --no-api)
  4. Start the reaper thread (every 60s)
  5. Run a reconciliation cycle every 5 min:
       load addresses → classify new ones → refresh bindings
       → hand SUB candidates to the provision hook → log state

Safe shutdown:
  SIGTERM / SIGINT → finish the current cycle → stop both loops → exit
"""

from __future__ import annotations
import argparse
import logging
import os
import signal
import sys
import threading
from datetime import timedelta
from pathlib import Path
from typing import Callable, Optional

from .assigner import OrderAssigner
from .classifier import AddressClassifier
from .config import CONFIG_PATH, AddressSource, PoolConfig
from .errors import ConfigError
from .marketplace import MarketplaceClient
from .models import Wallet
from .reaper import TimeoutReaper
from .registry import WalletRegistry
from .remote_status import SshStatusQuery

log = logging.getLogger("wallet_pool.pool")

Provisioner = Callable[[list[Wallet]], None]


def log_candidates(candidates: list[Wallet]) -> None:
    """Default provision hook: report the waiting wallets, rent nothing."""
    if candidates:
        log.warning("[pool] Waiting for a machine:\n" + "\n".join(w.address for w in candidates))


# ─── Wallet Pool ──────────────────────────────────────────────────────────────

class WalletPool:
    def __init__(
        self,
        registry:       WalletRegistry,
        classifier:     AddressClassifier,
        assigner:       OrderAssigner,
        reaper:         TimeoutReaper,
        address_source: Callable[[], list[str]],
        provision:      Optional[Provisioner] = None,
        cycle_interval: float = 300,
        reap_interval:  float = 60,
    ):
        self.registry       = registry
        self.classifier     = classifier
        self.assigner       = assigner
        self.reaper         = reaper
        self.address_source = address_source
        self.provision      = provision
        self.cycle_interval = cycle_interval
        self.reap_interval  = reap_interval

        self._stop = threading.Event()
        self._reaper_thread: Optional[threading.Thread] = None

    # ─── Reconciliation ───────────────────────────────────────────────────────

    def run_cycle(self) -> list[Wallet]:
        """One pass: classify → refresh → select. Returns the assignment candidates."""
        addresses  = self.address_source()
        self.classifier.check(self.registry, addresses)
        candidates = self.assigner.filter()

        if self.provision is not None and candidates:
            try:
                self.provision(candidates)
            except Exception as e:
                log.error(f"[pool] Provision hook failed: {e}", exc_info=True)

        log.info(f"[pool] Current bindings: {self.registry.snapshot()}")
        return candidates

    def run_reaper(self):
        while not self._stop.is_set():
            try:
                self.reaper.run()
            except Exception as e:
                log.error(f"[pool] Reaper pass failed: {e}", exc_info=True)
            self._stop.wait(self.reap_interval)

    # ─── Main Loop ────────────────────────────────────────────────────────────

    def run(self):
        log.info(f"Wallet pool starting — cycle every {self.cycle_interval}s, reaper every {self.reap_interval}s")

        self._reaper_thread = threading.Thread(target=self.run_reaper, name="reaper", daemon=True)
        self._reaper_thread.start()

        while not self._stop.is_set():
            try:
                self.run_cycle()
            except Exception as e:
                log.error(f"[pool] Cycle failed: {e}", exc_info=True)
            self._stop.wait(self.cycle_interval)

        log.info("Shutting down — waiting for the reaper to finish its pass…")
        self._reaper_thread.join(timeout=60)
        log.info("Wallet pool exited cleanly.")

    def stop(self):
        self._stop.set()


def build_pool(
    cfg:            PoolConfig,
    registry:       WalletRegistry,
    address_source: Callable[[], list[str]],
    provision:      Optional[Provisioner] = log_candidates,
) -> WalletPool:
    marketplace = MarketplaceClient(api_url=cfg.api_url, token=cfg.token, timeout=cfg.request_timeout)
    classifier  = AddressClassifier(
        master_url = cfg.master_url,
        sub_url    = cfg.sub_url,
        timeout    = cfg.request_timeout,
    )
    status_query = SshStatusQuery(
        user           = cfg.ssh_user,
        status_command = cfg.ssh_status_command,
        identity_file  = cfg.ssh_identity_file,
        timeout        = cfg.ssh_timeout,
    )
    assigner = OrderAssigner(registry, marketplace, status_query)
    reaper   = TimeoutReaper(
        registry,
        marketplace,
        pending_timeout = timedelta(minutes=cfg.pending_timeout_minutes),
        active_timeout  = timedelta(minutes=cfg.active_timeout_minutes),
        reset_on_cancel = cfg.reset_on_cancel,
    )
    return WalletPool(
        registry       = registry,
        classifier     = classifier,
        assigner       = assigner,
        reaper         = reaper,
        address_source = address_source,
        provision      = provision,
        cycle_interval = cfg.cycle_interval,
        reap_interval  = cfg.reap_interval,
    )


# ─── Entry Point ──────────────────────────────────────────────────────────────

def main():
    parser = argparse.ArgumentParser(description="Wallet Pool Daemon")
    parser.add_argument("--config",    type=Path, default=Path(os.getenv("WALLET_POOL_CONFIG", CONFIG_PATH)),
                        help="Path to the JSON config file")
    parser.add_argument("--api-url",   help="Marketplace API URL")
    parser.add_argument("--token",     help="Marketplace API token")
    parser.add_argument("--interval",  type=float, help="Reconciliation interval in seconds (default: 300)")
    parser.add_argument("--reap-interval", type=float, help="Reaper interval in seconds (default: 60)")
    parser.add_argument("--host",      help="Report API bind host")
    parser.add_argument("--port",      type=int, help="Report API port")
    parser.add_argument("--no-api",    action="store_true", help="Do not start the report API")
    parser.add_argument("--log-level", default=os.getenv("WALLET_POOL_LOG_LEVEL", "INFO"),
                        help="Logging level (default: INFO)")
    args = parser.parse_args()

    logging.basicConfig(
        level  = getattr(logging, str(args.log_level).upper(), logging.INFO),
        format = "[%(asctime)s] %(levelname)s %(name)s — %(message)s",
        datefmt= "%Y-%m-%dT%H:%M:%S",
    )

    try:
        cfg = PoolConfig.from_file(args.config)
    except ConfigError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    if args.api_url:
        cfg.api_url = args.api_url
    if args.token:
        cfg.token = args.token
    if args.interval:
        cfg.cycle_interval = args.interval
    if args.reap_interval:
        cfg.reap_interval = args.reap_interval
    if args.host:
        cfg.api_host = args.host
    if args.port:
        cfg.api_port = args.port
    if args.no_api:
        cfg.api_enabled = False

    if not cfg.token:
        print("ERROR: a marketplace token is required (--token, WALLET_POOL_TOKEN or config 'token')")
        sys.exit(1)

    registry = WalletRegistry()
    pool     = build_pool(cfg, registry, AddressSource(args.config, initial=cfg.addresses))

    if cfg.api_enabled:
        from .report_server import create_app, serve_in_background
        serve_in_background(create_app(registry, pool.assigner), cfg.api_host, cfg.api_port)

    signal.signal(signal.SIGTERM, lambda s, f: pool.stop())
    signal.signal(signal.SIGINT,  lambda s, f: pool.stop())

    pool.run()


if __name__ == "__main__":
    main()
