#!/usr/bin/env python3
"""
SalesDS Demo
Seeds synthetic DSR performance records, queries them, exercises the cache
tiers and runs a snapshot save/load round trip.

Usage:
    python salesds_demo.py 100                  # 100 DSR records
    python salesds_demo.py 500 --no-cache-demo  # Skip the cache tier walkthrough
    python salesds_demo.py 50 --storage ./demo  # Custom storage directory
"""

import asyncio
import argparse
import random
import shutil
import time
from pathlib import Path

import psutil

from salesds import SalesDS, ValidationError
from salesds.config import load_config
from salesds.logger import SalesDSLogger, get_logger
from salesds.schema import REGIONS, SLABS

CAPTAINS = ["A", "B", "C", "D"]


def generate_dsr(index: int, rng: random.Random) -> dict:
    """Build a DSR record whose growth stays under the default ceiling."""
    last_month = rng.randint(0, 5000)
    this_month = int(last_month * rng.uniform(0.7, 1.45)) if last_month else rng.randint(0, 500)
    return {
        "name": f"Rep {index:04d}",
        "dsrId": f"DSR{index % 1000:03d}",
        "cluster": rng.choice(REGIONS),
        "captainName": rng.choice(CAPTAINS),
        "lastMonthActual": last_month,
        "thisMonthActual": this_month,
        "slab": rng.choice(SLABS),
    }


def get_memory_usage():
    """Get current process memory usage."""
    memory_info = psutil.Process().memory_info()
    return {
        'rss_mb': memory_info.rss / (1024 * 1024),
        'system_available_mb': psutil.virtual_memory().available / (1024 * 1024)
    }


async def run_queries(ds: SalesDS):
    print("\n🔍 QUERIES")
    print("-" * 40)

    for cluster in REGIONS:
        query_start = time.time()
        results = ds.records.query("dsr", filter=lambda r, c=cluster: r["cluster"] == c)
        query_time = (time.time() - query_start) * 1000
        print(f"  {cluster:<6} {len(results):5,} records in {query_time:.2f}ms")

    top = ds.records.query("dsr", sort=[("thisMonthActual", "desc"), ("name", "asc")], limit=5)
    print("\n  Top 5 by this month's actual:")
    for record in top:
        print(f"    {record['dsrId']} | {record['name']} | {record['cluster']} | {record['thisMonthActual']:,}")

    page = ds.records.query("dsr", sort={"name": "asc"}, limit=3, offset=10)
    print(f"\n  Page at offset 10, limit 3: {[r['name'] for r in page]}")


def run_cache_demo(ds: SalesDS):
    print("\n🗂️  CACHE TIERS")
    print("-" * 40)

    payloads = {
        "summary": {"total": 1},
        "regional-report": ["x" * 40] * 50,
        "full-export": ds.records.export("dsr", "json"),
    }
    for key, value in payloads.items():
        ds.cache.set(key, value)
        tier = next((name for name in ("memory", "session", "durable") if key in ds.cache.keys(name)),
                    "not cached")
        print(f"  {key:<16} -> {tier}")

    hit = ds.cache.get("full-export") is not None
    print(f"  Auto lookup of full-export: {'hit' if hit else 'miss'}")

    ds.cache.set("short-lived", "gone soon", strategy="memory", ttl_ms=1)
    time.sleep(0.01)
    print(f"  Expired entry lookup: {ds.cache.get('short-lived', strategy='memory')!r}")
    print(f"  Cleanup removed {ds.cache.cleanup()} expired entries")


async def demo_salesds(total_records: int, run_cache: bool = True, storage_dir: str = None, seed: int = 7):
    """Main SalesDS demonstration function."""
    if storage_dir is None:
        storage_dir = f"./salesds_demo_{total_records}_storage"
    storage_path = Path(storage_dir)

    if storage_path.exists():
        print(f"🧹 Cleaning previous storage: {storage_path}")
        shutil.rmtree(storage_path)

    config = load_config(overrides={"storage": {"base_path": str(storage_path)}})
    SalesDSLogger.setup(log_dir=str(config.get_logs_path()), log_level=config.logging.level, console_output=True)
    logger = get_logger("SalesDSDemo")

    print("🚀 SALESDS DEMO")
    print("=" * 50)
    print(f"📊 Target: {total_records:,} DSR records")
    print(f"📁 Storage: {storage_path}")
    print(f"📝 Logs: {SalesDSLogger.get_log_file()}")
    print("📊 Configuration:")
    print(f"   - Memory tier: {config.memory_tier.capacity} entries, {config.memory_tier.default_ttl_ms // 1000}s TTL")
    print(f"   - Session tier: {config.session_tier.capacity} entries")
    print(f"   - Durable tier: {config.durable_tier.capacity} entries")
    print(f"   - Growth ceiling: {config.validation.growth_ceiling:.0%}")
    print()

    logger.info(f"=== Starting SalesDS Demo: {total_records:,} records ===")
    rng = random.Random(seed)

    async with SalesDS(config=config) as ds:
        print("📥 SEEDING")
        print("-" * 25)
        seed_start = time.time()
        results = await ds.records.import_records("dsr", [generate_dsr(i, rng) for i in range(total_records)])
        seed_time = time.time() - seed_start
        print(f"  Added {len(results['success']):,} records in {seed_time:.2f}s "
              f"({len(results['errors'])} rejected)")

        try:
            await ds.records.add("dsr", {**generate_dsr(0, rng), "lastMonthActual": 100, "thisMonthActual": 400})
        except ValidationError as e:
            print(f"  Rejected as expected: {e}")

        await run_queries(ds)

        if run_cache:
            run_cache_demo(ds)

        print("\n💾 SNAPSHOT ROUND TRIP")
        print("-" * 40)
        saved = ds.persistence.save_all()
        before = ds.records.query("dsr")
        ds.registry.get("dsr").records = []
        loaded = ds.persistence.load_all()
        restored = ds.records.query("dsr")
        print(f"  Saved: {saved}")
        print(f"  Loaded: {loaded}")
        print(f"  Identical after reload: {before == restored}")

        stats = ds.get_stats()
        memory = get_memory_usage()
        print("\n📈 STATISTICS")
        print("-" * 35)
        for name, store_stats in stats["stores"].items():
            print(f"  {name:<9} {store_stats['count']:6,} records | last update {store_stats['last_updated']}")
        print(f"  Cache hit rate: {stats['cache']['hit_rate']:.1%}")
        print(f"  Durable storage: {stats['durable_storage']['used_bytes']:,} bytes")
        print(f"  Process RAM: {memory['rss_mb']:.1f}MB")

        logger.info("=== SalesDS Demo Completed Successfully ===")

    print(f"\n🎉 DEMO COMPLETED SUCCESSFULLY!")
    print(f"   📁 Storage location: {storage_path}")


def main():
    """Parse arguments and run the demo."""
    parser = argparse.ArgumentParser(
        description="SalesDS Demo - cache tiers and record stores",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python salesds_demo.py 100                  # 100 DSR records
  python salesds_demo.py 500 --no-cache-demo  # Skip the cache tier walkthrough
        """
    )

    parser.add_argument("records", type=int, help="Number of DSR records to generate")
    parser.add_argument("--no-cache-demo", action="store_true", help="Skip the cache tier walkthrough")
    parser.add_argument("--storage", type=str, help="Custom storage directory")
    parser.add_argument("--seed", type=int, default=7, help="Random seed for generated records")

    args = parser.parse_args()

    if args.records <= 0:
        print("Error: Number of records must be positive")
        return

    try:
        asyncio.run(demo_salesds(
            total_records=args.records,
            run_cache=not args.no_cache_demo,
            storage_dir=args.storage,
            seed=args.seed,
        ))
    except KeyboardInterrupt:
        print("\n⚠️  Demo interrupted by user")
    except Exception as e:
        print(f"\n❌ Demo failed: {e}")
        import traceback
        traceback.print_exc()


if __name__ == "__main__":
    main()
