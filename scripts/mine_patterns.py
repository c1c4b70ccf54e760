"""
Reconcile one symbol's price history and print the mined buy setups as
JSON.  The series is cached in the database given by STOCK_CACHE_URL, so
repeated runs only fetch the missing days:

    python scripts/mine_patterns.py 005930 --date 20240628
"""
import argparse
import asyncio
import datetime as dt
import json
import os
import sys

sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "services", "stock_engine_py"))  # ensure local modules can be imported
from stock_core import FetchReconciler, SqlCacheStore, UpstreamFetcher, is_yyyymmdd, mine, select_relays  # type: ignore
from stock_core.config import CACHE_URL, RELAY_NAMES  # type: ignore


def date_arg(value: str) -> str:
    if not is_yyyymmdd(value):
        raise argparse.ArgumentTypeError(f"invalid date {value!r}, expected YYYYMMDD")
    return value

async def run(symbol: str, date: str, count: int) -> list:
    reconciler = FetchReconciler(SqlCacheStore(CACHE_URL), UpstreamFetcher(relays=select_relays(RELAY_NAMES)))
    series = await reconciler.reconcile(symbol, date, count)
    return [r.to_dict() for r in mine(series)]


def main(argv=None):
    parser = argparse.ArgumentParser(description="Mine successful buy setups for a symbol")
    parser.add_argument("symbol")
    parser.add_argument("--date", type=date_arg, default=dt.date.today().strftime("%Y%m%d"), help="reference date YYYYMMDD")
    parser.add_argument("--count", type=int, default=300, help="history length to fetch")
    args = parser.parse_args(argv)

    results = asyncio.run(run(args.symbol, args.date, args.count))
    if not results:
        print(f"No successful setups found for {args.symbol}", file=sys.stderr)
    print(json.dumps(results, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
