"""
Entry point for Local Competitor Watch.

Usage:
  # Demo run against an in-memory store (mock competitors without API keys):
  python main.py demo

  # Start the FastAPI server:
  python main.py api

  # Run the weekly batch once against the configured store:
  python main.py run-all

  # Run tests:
  python main.py test
"""

import asyncio
import logging
import os
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger("main")


def _build(store):
    from config.settings import settings
    from pipeline.report import ReportPipeline
    from pipeline.scheduler import SchedulerOrchestrator
    from services.analysis import AnalysisGateway
    from services.notifications import create_notifier
    from services.places import PlacesGateway

    pipeline = ReportPipeline(
        store,
        PlacesGateway(api_key=settings.GOOGLE_API_KEY),
        AnalysisGateway(api_key=settings.ANTHROPIC_API_KEY),
    )
    return pipeline, SchedulerOrchestrator(store, pipeline, create_notifier(settings))


async def _demo():
    from db.store import InMemoryReportStore
    from models.schemas import Business, LocationStatus, User

    store = InMemoryReportStore()
    pipeline, orchestrator = _build(store)

    owner = await store.create_user(User(id="demo-user", email="owner@example.com", first_name="Ana", plan="pro"))
    cafe = await store.create_business(Business(
        id="demo-cafe", name="Café Central", category="cafe",
        address="Rua Augusta 100, Lisboa", latitude=38.7101, longitude=-9.1366, owner_id=owner.id,
    ))
    await store.create_business(Business(
        id="demo-gym", name="Riverside Fitness", category="gym",
        address="Avenida 24 de Julho 50, Lisboa", latitude=38.7060, longitude=-9.1520, owner_id=owner.id,
    ))
    await store.create_business(Business(
        id="demo-pending", name="Pending Bakery", category="bakery",
        location_status=LocationStatus.PENDING, owner_id=owner.id,
    ))

    report = await pipeline.generate(cafe.id, language="en", owner_id=owner.id, radius=1500)

    print("\n" + "=" * 70)
    print(f"  COMPETITOR REPORT: {report.business_name}")
    print("=" * 70)
    print(f"  Report ID  : {report.id}")
    print(f"  Radius     : {report.radius}m")
    print(f"  Generated  : {report.generated_at.isoformat()}")
    print("\n🏪 COMPETITORS")
    print("-" * 70)
    for c in report.competitors:
        rating = f"{c.rating:.1f}★ ({c.rating_count})" if c.rating is not None else "no rating"
        print(f"  {c.name:<28} {c.distance or '?':>7}  {rating:<16} {c.price_level or ''}")
    print("\n💡 EXECUTIVE SUMMARY")
    print("-" * 70)
    print(f"  {report.executive_summary}")
    print("\n📈 OPPORTUNITIES")
    for item in report.swot.opportunities:
        print(f"  - {item}")

    summary = await orchestrator.run_all()
    print("\n" + "=" * 70)
    print(f"  WEEKLY RUN: {summary.success_count} succeeded, {summary.failed_count} failed")
    print("=" * 70)
    for r in summary.results:
        status = "✅" if r.success else "❌"
        print(f"  {status} {r.business_name:<28} {r.error or ''}")
    return summary


def demo():
    """End-to-end demo with an in-memory store."""
    logger.info("=== Local Competitor Watch: Demo Run ===")
    return asyncio.run(_demo())


async def _run_all():
    from config.settings import settings
    from db.store import create_store

    store = create_store(settings)
    await store.init()
    try:
        _, orchestrator = _build(store)
        return await orchestrator.run_all()
    finally:
        await store.close()


def run_all():
    """Run the weekly batch once and print the summary."""
    summary = asyncio.run(_run_all())
    print(f"{summary.success_count} succeeded, {summary.failed_count} failed")
    for r in summary.results:
        print(f"  {'✅' if r.success else '❌'} {r.business_name} {r.error or ''}")
    return summary


def start_api():
    """Start the FastAPI server."""
    import uvicorn
    from config.settings import settings
    uvicorn.run("api.main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.DEBUG)


def run_tests():
    """Run pytest."""
    import subprocess
    result = subprocess.run(
        ["pytest", "tests/", "-v", "--tb=short"],
        cwd=os.path.dirname(os.path.abspath(__file__)),
    )
    sys.exit(result.returncode)


if __name__ == "__main__":
    command = sys.argv[1] if len(sys.argv) > 1 else "demo"

    if command == "demo":
        demo()
    elif command == "api":
        start_api()
    elif command == "run-all":
        run_all()
    elif command == "test":
        run_tests()
    else:
        print(f"Unknown command: {command}")
        print("Usage: python main.py [demo|api|run-all|test]")
        sys.exit(1)
