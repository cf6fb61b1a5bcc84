#!/usr/bin/env python3
"""
Stress test for the enrollment core.
Fires concurrent applies at one class to verify overbooking prevention.

Runs in-process against the configured DATABASE_URL, or a throwaway SQLite
file when none is set:

    DATABASE_URL=postgresql+asyncpg://... python experiments/stress_test.py
"""

import asyncio
import os
import sys
import tempfile
import time
import uuid
from datetime import timedelta

from enrollment.core.config import Settings
from enrollment.core.exceptions import CapacityExceeded, EnrollmentError
from enrollment.db.base import utcnow
from enrollment.main import open_core
from enrollment.schemas.common import Actor
from enrollment.schemas.mclass import ClassCreate

CONCURRENT_USERS = 50
SEATS_AVAILABLE = 10


class StressTest:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.results = {
            "admitted": 0,
            "capacity_exceeded": 0,
            "other_rejections": 0,
            "response_times": [],
        }

    async def apply(self, core, class_id, user_num: int):
        """Attempt to take a seat."""
        start = time.perf_counter()
        try:
            await core.apply(class_id, uuid.uuid4())
        except CapacityExceeded:
            self.results["capacity_exceeded"] += 1
            outcome = "full"
        except EnrollmentError as e:
            self.results["other_rejections"] += 1
            outcome = e.code
        else:
            self.results["admitted"] += 1
            outcome = "admitted"
        elapsed = (time.perf_counter() - start) * 1000
        self.results["response_times"].append(elapsed)
        print(f"  user {user_num:>3}: {outcome} ({elapsed:.0f}ms)")

    async def run(self) -> bool:
        print(f"\n{'=' * 60}")
        print(f"STRESS TEST: {CONCURRENT_USERS} users -> {SEATS_AVAILABLE} seats")
        print(f"{'=' * 60}\n")

        admin = Actor(user_id=uuid.uuid4(), is_admin=True)
        start_at = utcnow() + timedelta(days=30)

        async with open_core(self.settings, create_schema=True) as core:
            mclass = await core.create_class(admin, ClassCreate(
                title=f"Stress Test Class {int(time.time())}",
                description="Testing concurrent applications",
                capacity=SEATS_AVAILABLE,
                start_at=start_at,
                end_at=start_at + timedelta(hours=2),
            ))
            print(f"Created class {mclass.id} with {SEATS_AVAILABLE} seats\n")

            print(f"{CONCURRENT_USERS} users applying simultaneously...")
            print("-" * 60)
            started = time.perf_counter()
            await asyncio.gather(*(
                self.apply(core, mclass.id, i) for i in range(CONCURRENT_USERS)
            ))
            total_time = time.perf_counter() - started

            occupancy = await core.get_occupancy(mclass.id)
            roster = await core.list_applications_for_class(mclass.id, page_size=SEATS_AVAILABLE)
            distinct_users = len({a.user_id for a in roster.items})

        self.print_results(total_time)

        expected = min(SEATS_AVAILABLE, CONCURRENT_USERS)
        passed = (
            occupancy.current == self.results["admitted"] == expected
            and distinct_users == roster.total == expected
        )

        print("\n" + "=" * 60)
        if passed:
            print("PASS: No overbooking detected")
            print(f"  {occupancy.current} admitted = {SEATS_AVAILABLE} seats")
        else:
            print("FAIL: occupancy does not match admissions")
            print(f"  occupancy={occupancy.current} admitted={self.results['admitted']} "
                  f"roster={roster.total} distinct={distinct_users}")
        print("=" * 60 + "\n")
        return passed

    def print_results(self, total_time: float):
        print("\n" + "=" * 60)
        print("RESULTS")
        print("=" * 60)
        print(f"Total time:          {total_time:.2f}s")
        print(f"Admitted:            {self.results['admitted']}")
        print(f"Capacity exceeded:   {self.results['capacity_exceeded']}")
        print(f"Other rejections:    {self.results['other_rejections']}")

        times = sorted(self.results["response_times"])
        if times:
            print("\nResponse times:")
            print(f"  Avg: {sum(times) / len(times):.0f}ms")
            print(f"  P50: {times[len(times) // 2]:.0f}ms")
            print(f"  P95: {times[int(len(times) * 0.95)]:.0f}ms")
            print(f"  P99: {times[int(len(times) * 0.99)]:.0f}ms")


def build_settings(workdir: str) -> Settings:
    if "DATABASE_URL" in os.environ:
        return Settings()
    return Settings(DATABASE_URL=f"sqlite+aiosqlite:///{os.path.join(workdir, 'stress.db')}")


if __name__ == "__main__":
    with tempfile.TemporaryDirectory() as workdir:
        ok = asyncio.run(StressTest(build_settings(workdir)).run())
    sys.exit(0 if ok else 1)
