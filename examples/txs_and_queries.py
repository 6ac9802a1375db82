#!/usr/bin/env python3
"""
txs_and_queries.py — deploy a token wrapper, then wrap some tokens

This example shows how to:
  1) Load a signing key from a password-protected keystore
  2) Connect to a node (chain id is discovered via `status`)
  3) Store and instantiate the token wrapper contract in one transaction
  4) Query the user's balances, send 888uatom + 999uosmo to the wrapper,
     and query again

Each step waits for its transaction to be included before moving on; no
fixed sleeps.

Environment
-----------
CW_SDK_ENDPOINT   (default: http://127.0.0.1:26657)
CW_SDK_GAS_PRICE  (default: 0.025uatom)

Usage
-----
python examples/txs_and_queries.py \
  --wasm artifacts/cw_mock_token_wrapper-aarch64.wasm \
  --keystore ~/.cwcli/keys/test1.json --password 123
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from cw_sdk import Client, SDKConfig, SetToNone, SigningOptions, TransactionFailed, keystore

USER = "0x9f6de9773b30d62ce431caf26a7fd3f54f06d4071adaf9a8eadfec968bcbf022"
BANK = "0x9ada3b1fca68f9802bcf089fc31c10af1881c684ecc6f5bcdf65df35df0a8ef2"


def _print_json(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


async def run(args: argparse.Namespace) -> int:
    key = keystore.load(Path(args.keystore).expanduser(), args.password)
    opts = SigningOptions(sender=USER, signing_key=key)
    wasm = Path(args.wasm).read_bytes()

    cfg = SDKConfig.from_env()
    if args.rpc:
        cfg = SDKConfig.with_overrides(cfg, endpoint=args.rpc)

    async with await Client.connect(cfg) as client:
        try:
            wrapper, tx1 = await client.store_code_and_instantiate(
                wasm, {"bank": BANK}, b"wrapper", [], SetToNone(), opts
            )
        except TransactionFailed as e:
            print(f"deploy failed: {e}", file=sys.stderr)
            return 1
        if wrapper is None:
            print(f"deploy tx {tx1} still pending; try `wait_for` later", file=sys.stderr)
            return 2
        print("\nwrapper contract instantiated!")
        print("address:", wrapper)
        print("txhash:", tx1)

        before = await client.query_balances(USER)
        print("\nuser balances before wrapping:")
        _print_json(before.to_dict())

        tx2 = await client.transfer(wrapper, {"uatom": 888, "uosmo": 999}, opts)
        print("\ntokens wrapped!")
        print("txhash:", tx2)

        after = await client.query_balances(USER)
        print("\nuser balances after wrapping:")
        _print_json(after.to_dict())
    return 0


def main() -> int:
    ap = argparse.ArgumentParser(description="Deploy the token wrapper and wrap some tokens")
    ap.add_argument("--rpc", default=os.getenv("CW_SDK_ENDPOINT"), help="node RPC endpoint")
    ap.add_argument("--wasm", default="artifacts/cw_mock_token_wrapper-aarch64.wasm", help="wrapper contract wasm")
    ap.add_argument("--keystore", default="~/.cwcli/keys/test1.json", help="keystore file for the user")
    ap.add_argument("--password", default="123", help="keystore password")
    ap.add_argument("-v", "--verbose", action="store_true", help="log SDK activity")
    args = ap.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
