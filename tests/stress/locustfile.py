"""
posledger Load Testing with Locust

Prepare a tenant and tokens first (from backend/):
    python -m flask system seed-demo

Then run:
    POSLEDGER_TOKENS=<owner>,<cashier> POSLEDGER_BRANCH_ID=1 \
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5000

Or headless:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5000 \
           --users 20 --spawn-rate 5 --run-time 60s --headless

Pass thresholds:
- p95 response time < 500ms for reads
- p95 response time < 1000ms for writes
- Error rate < 1% (409 insufficient_stock counts as a correct answer)

After a run, `python -m flask ledger verify --org-id <id>` must report PASS.
"""

import os
import random
import time
from typing import Dict, List, Optional

from locust import HttpUser, task, between, events


# =============================================================================
# CONFIGURATION
# =============================================================================

TOKENS = [t.strip() for t in os.environ.get("POSLEDGER_TOKENS", "").split(",") if t.strip()]
BRANCH_ID = int(os.environ.get("POSLEDGER_BRANCH_ID", "1"))
PAYMENT_METHODS = ["cash", "gcash", "card", "bank_transfer"]


# =============================================================================
# METRICS TRACKING
# =============================================================================

class MetricsCollector:
    """Per-endpoint counts and latencies."""

    def __init__(self):
        self.request_counts: Dict[str, int] = {}
        self.error_counts: Dict[str, int] = {}
        self.response_times: Dict[str, List[float]] = {}

    def record(self, name: str, response_time: float, success: bool):
        self.request_counts[name] = self.request_counts.get(name, 0) + 1
        if not success:
            self.error_counts[name] = self.error_counts.get(name, 0) + 1
        self.response_times.setdefault(name, []).append(response_time)

    def get_summary(self) -> Dict:
        summary = {}
        for name, count in self.request_counts.items():
            times = sorted(self.response_times[name])
            errors = self.error_counts.get(name, 0)
            summary[name] = {
                "count": count,
                "errors": errors,
                "error_rate": errors / count * 100,
                "avg_ms": sum(times) / len(times),
                "p95_ms": times[min(int(len(times) * 0.95), len(times) - 1)],
            }
        return summary


metrics = MetricsCollector()


# =============================================================================
# USER BEHAVIORS
# =============================================================================

class PosUser(HttpUser):
    """Base user holding a bearer token and the branch catalog."""

    wait_time = between(0.2, 1)
    abstract = True

    token: Optional[str] = None
    variants: List[Dict] = []

    def on_start(self):
        self.token = random.choice(TOKENS) if TOKENS else None
        self.load_catalog()

    def get_headers(self) -> Dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def load_catalog(self):
        response = self.client.get(
            "/api/catalog/variants",
            params={"branch_id": BRANCH_ID},
            headers=self.get_headers(),
            name="catalog/variants",
        )
        if response.status_code == 200:
            self.variants = response.json().get("variants", [])


class CashierUser(PosUser):
    """Rings up sales, several cashiers hitting the same few variants."""

    weight = 4

    @task(6)
    def checkout(self):
        if not self.variants:
            return

        picks = random.sample(self.variants, k=min(len(self.variants), random.randint(1, 3)))
        items = [
            {
                "variant_id": v["variant_id"],
                "quantity": random.randint(1, 2),
                "unit_price": v["selling_price"],
                "unit_capital_cost": v.get("capital_cost", 0),
            }
            for v in picks
        ]

        start = time.time()
        response = self.client.post(
            "/api/transactions",
            json={"branch_id": BRANCH_ID, "payment_method": random.choice(PAYMENT_METHODS), "items": items},
            headers=self.get_headers(),
            name="transactions/create",
        )
        metrics.record("transactions/create", (time.time() - start) * 1000, response.status_code in (201, 409))

    @task(2)
    def recent_transactions(self):
        start = time.time()
        response = self.client.get(
            "/api/transactions",
            params={"branch_id": BRANCH_ID, "limit": 20},
            headers=self.get_headers(),
            name="transactions/list",
        )
        metrics.record("transactions/list", (time.time() - start) * 1000, response.status_code == 200)

    @task(1)
    def refresh_catalog(self):
        start = time.time()
        self.load_catalog()
        metrics.record("catalog/variants", (time.time() - start) * 1000, bool(self.variants))


class StockUser(PosUser):
    """Receives deliveries and checks stock while sales are running."""

    weight = 1

    @task(3)
    def stock_in(self):
        if not self.variants:
            return

        start = time.time()
        response = self.client.post(
            "/api/inventory/adjust",
            json={
                "branch_id": BRANCH_ID,
                "variant_id": random.choice(self.variants)["variant_id"],
                "movement_type": "stock_in",
                "quantity": random.randint(1, 5),
                "notes": "Load test delivery",
            },
            headers=self.get_headers(),
            name="inventory/adjust",
        )
        metrics.record("inventory/adjust", (time.time() - start) * 1000, response.status_code in (201, 403))

    @task(4)
    def stock_levels(self):
        start = time.time()
        response = self.client.get(
            "/api/inventory/stock",
            params={"branch_id": BRANCH_ID},
            headers=self.get_headers(),
            name="inventory/stock",
        )
        metrics.record("inventory/stock", (time.time() - start) * 1000, response.status_code == 200)

    @task(2)
    def movements(self):
        start = time.time()
        response = self.client.get(
            "/api/inventory/movements",
            params={"branch_id": BRANCH_ID, "page_size": 50},
            headers=self.get_headers(),
            name="inventory/movements",
        )
        metrics.record("inventory/movements", (time.time() - start) * 1000, response.status_code == 200)

    @task(1)
    def health_check(self):
        start = time.time()
        response = self.client.get("/api/health", name="system/health")
        metrics.record("system/health", (time.time() - start) * 1000, response.status_code == 200)


# =============================================================================
# EVENT HANDLERS
# =============================================================================

@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    """Print summary when test stops."""
    print("\n" + "=" * 80)
    print("LOAD TEST SUMMARY")
    print("=" * 80)
    print(f"\n{'Endpoint':<30} {'Count':>8} {'Errors':>8} {'Err%':>8} {'Avg(ms)':>10} {'P95(ms)':>10}")
    print("-" * 80)

    all_pass = True
    for name, stats in sorted(metrics.get_summary().items()):
        p95_threshold = 1000 if name in ("transactions/create", "inventory/adjust") else 500
        passed = stats["p95_ms"] < p95_threshold and stats["error_rate"] < 1
        all_pass = all_pass and passed
        print(
            f"{name:<30} {stats['count']:>8} {stats['errors']:>8} {stats['error_rate']:>7.2f}% "
            f"{stats['avg_ms']:>9.1f} {stats['p95_ms']:>9.1f} [{'PASS' if passed else 'FAIL'}]"
        )

    print("-" * 80)
    print("\n[PASS] All endpoints within thresholds" if all_pass else "\n[FAIL] Some endpoints exceeded thresholds")
    print("=" * 80)
