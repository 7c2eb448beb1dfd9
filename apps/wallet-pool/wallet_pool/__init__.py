"""
Wallet Pool
===========

The daemon that keeps a pool of Nimble wallets deployed on rented GPU machines.

What it does:
  1. Read the wallet addresses to track from the config file
  2. Classify each new address as MASTER or SUB via the Nimble endpoints
  3. List our marketplace orders and ask every rented machine (over SSH)
     which wallet it runs, so local bindings follow reality
  4. Hand SUB wallets without a machine to the provision hook
  5. Accept liveness reports from the machines over HTTP
  6. Cancel orders whose machine never reported (15 min) or went quiet (10 min)

Concurrency model:
  - One WalletRegistry per process, guarded by a single lock
  - The lock covers in-memory reads and writes only; HTTP and SSH calls run
    outside it and merge their results back under a short acquisition
  - The reaper runs on its own thread; the report API on uvicorn's

Requirements:
  pip install requests fastapi uvicorn

Usage:
  python -m wallet_pool --token <marketplace-token> --config ~/.wallet-pool/config.json
"""
