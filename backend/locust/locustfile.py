"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Many students, one slot
  locust -f locustfile.py --tags read         # Catalog throughput
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests

Admin calls need the key the server was started with:
  ADMIN_API_KEY=secret locust -f locustfile.py ...
"""

import os
import random
import uuid
from locust import HttpUser, task, between, tag, events

ADMIN_HEADERS = {"X-Admin-Key": os.environ.get("ADMIN_API_KEY", "")}

# Shared state
SLOT_IDS = []
CONTESTED_SLOT_ID = None


def random_student():
    suffix = uuid.uuid4().hex[:10]
    return {"student_name": f"Load {suffix}", "student_email": f"load_{suffix}@test.com"}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print("SETUP: contested slot is created by the first ContestedSlotUser")
    print("=" * 60)


class ContestedSlotUser(HttpUser):
    """
    TEST 1: Concurrency - every user races for the same slot

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify no slot ever had two blocking rows:
      SELECT timeslot_id, COUNT(*) FROM reservations
      WHERE state IN ('confirmed', 'blocked')
         OR (state = 'pending' AND hold_expires_at > now())
      GROUP BY timeslot_id HAVING COUNT(*) > 1;
    Should return no rows. Exactly one hold succeeds per hold window.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        if CONTESTED_SLOT_ID:
            return
        resp = self.client.post(
            "/admin/teachers",
            json={"name": f"Load Teacher {uuid.uuid4().hex[:6]}"},
            headers=ADMIN_HEADERS,
        )
        if resp.status_code != 201:
            return
        resp = self.client.post(
            "/admin/slots",
            json={"teacher_id": resp.json()["id"], "weekday": random.randint(0, 6), "time": "18:00"},
            headers=ADMIN_HEADERS,
        )
        if resp.status_code == 201:
            globals()["CONTESTED_SLOT_ID"] = resp.json()["id"]
            print(f"\n✓ Created contested slot {CONTESTED_SLOT_ID}\n")

    @tag("concurrency")
    @task
    def hold_contested_slot(self):
        if not CONTESTED_SLOT_ID:
            return

        with self.client.post(
            "/holds",
            json={"slot_ids": [CONTESTED_SLOT_ID], **random_student()},
            catch_response=True,
        ) as resp:
            if resp.status_code in (201, 409):
                resp.success()  # 409 expected: the slot is held
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class CatalogUser(HttpUser):
    """
    TEST 2: Throughput - the uncached slot catalog

    Run: locust -f locustfile.py --tags read -u 100 -r 20 --run-time 60s

    Watch P95/P99 latency; every request reads the ledger.
    """
    wait_time = between(0.1, 0.5)

    @tag("read")
    @task(10)
    def list_slots(self):
        resp = self.client.get("/slots")
        if resp.status_code == 200:
            for slot in resp.json():
                if slot["slot_id"] not in SLOT_IDS:
                    SLOT_IDS.append(slot["slot_id"])

    @tag("read")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    @tag("edge")
    @task
    def unknown_slot(self):
        with self.client.post(
            "/holds",
            json={"slot_ids": [999999], **random_student()},
            catch_response=True,
        ) as resp:
            if resp.status_code == 422:
                resp.success()
            else:
                resp.failure(f"Expected 422, got {resp.status_code}")

    @tag("edge")
    @task
    def empty_slot_list(self):
        with self.client.post(
            "/holds",
            json={"slot_ids": [], **random_student()},
            catch_response=True,
        ) as resp:
            if resp.status_code == 422:
                resp.success()
            else:
                resp.failure(f"Expected 422, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/holds", data="not json at all", catch_response=True) as resp:
            if resp.status_code in [400, 422]:
                resp.success()
            else:
                resp.failure(f"Expected 400/422, got {resp.status_code}")

    @tag("edge")
    @task
    def garbage_webhook(self):
        """The webhook acknowledges anything."""
        with self.client.post("/payment-webhook", data="garbage", catch_response=True) as resp:
            if resp.status_code == 200:
                resp.success()
            else:
                resp.failure(f"Expected 200, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_admin_key(self):
        with self.client.get("/admin/reservations", catch_response=True) as resp:
            if resp.status_code == 401:
                resp.success()
            else:
                resp.failure(f"Expected 401, got {resp.status_code}")


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Mostly browsing, occasional holds on random slots.
    """
    wait_time = between(1, 3)

    @task(50)
    def browse_slots(self):
        resp = self.client.get("/slots")
        if resp.status_code == 200:
            for slot in resp.json():
                if slot["slot_id"] not in SLOT_IDS:
                    SLOT_IDS.append(slot["slot_id"])

    @task(10)
    def hold_random_slot(self):
        if not SLOT_IDS:
            return
        with self.client.post(
            "/holds",
            json={"slot_ids": [random.choice(SLOT_IDS)], **random_student()},
            catch_response=True,
        ) as resp:
            if resp.status_code in (201, 409):
                resp.success()
