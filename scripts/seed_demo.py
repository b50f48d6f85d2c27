#!/usr/bin/env python3
"""Seed a running WeatherShield API with demo weather history and policies.

Issues API keys for the owner and two farmers, records three historical
readings for each of three farming regions, funds the treasury, and buys
one sample policy per region.

Usage:
    # With the API running:
    python scripts/seed_demo.py

    # Custom URL / admin secret:
    WEATHERSHIELD_URL=http://localhost:8000 ADMIN_SECRET=... python scripts/seed_demo.py
"""

import asyncio
import os

import httpx

API_URL = os.getenv("WEATHERSHIELD_URL", "http://localhost:8000")
ADMIN_SECRET = os.getenv("ADMIN_SECRET", "changeme-admin-secret")
OWNER_ACCOUNT = os.getenv("OWNER_ACCOUNT", "owner")

UNIT = 10**18
DAY = 24 * 60 * 60

LOCATIONS = [
    ("Farm A - Iowa, USA", 41.9, -93.1),
    ("Farm B - Punjab, India", 31.1, 75.3),
    ("Farm C - Queensland, Australia", -27.5, 153.0),
]

# (temperature, rainfall, humidity, wind_speed), all scaled by 100
HISTORY = [
    # Iowa - moderate conditions
    [(2200, 8000, 6500, 1500), (2400, 7500, 6200, 1800), (2100, 9000, 7000, 1200)],
    # Punjab - hot and dry
    [(3500, 3000, 4500, 2000), (3800, 2500, 4000, 2200), (3600, 2800, 4200, 1900)],
    # Queensland - variable
    [(2800, 12000, 7500, 2500), (3000, 15000, 8000, 3000), (2600, 11000, 7200, 2200)],
]

SAMPLE_POLICIES = [
    {
        "farmer": "farmer-1",
        "location": 0,
        "trigger_type": "rainfall_below",
        "trigger_threshold": 5000,
        "coverage_amount": UNIT // 2,
        "duration_seconds": 30 * DAY,
        "crop_type": "Corn",
        "farm_size": 50000,
        "paid_amount": UNIT // 20,
        "description": "Drought protection for Corn (Iowa)",
    },
    {
        "farmer": "farmer-2",
        "location": 1,
        "trigger_type": "rainfall_above",
        "trigger_threshold": 20000,
        "coverage_amount": UNIT * 8 // 10,
        "duration_seconds": 60 * DAY,
        "crop_type": "Wheat",
        "farm_size": 30000,
        "paid_amount": UNIT * 8 // 100,
        "description": "Flood protection for Wheat (Punjab)",
    },
    {
        "farmer": OWNER_ACCOUNT,
        "location": 2,
        "trigger_type": "temperature_above",
        "trigger_threshold": 4000,
        "coverage_amount": UNIT,
        "duration_seconds": 90 * DAY,
        "crop_type": "Sugarcane",
        "farm_size": 100000,
        "paid_amount": UNIT * 12 // 100,
        "description": "Heat wave protection for Sugarcane (Queensland)",
    },
]


async def issue_key(client: httpx.AsyncClient, account: str) -> str:
    resp = await client.post(
        "/admin/api_keys",
        json={"name": f"demo-{account}", "account": account},
        headers={"Authorization": f"Bearer {ADMIN_SECRET}"},
    )
    resp.raise_for_status()
    return resp.json()["key"]


async def seed():
    async with httpx.AsyncClient(base_url=API_URL, timeout=10.0) as client:
        try:
            health = await client.get("/health")
            health.raise_for_status()
        except httpx.HTTPError as exc:
            print(f"  [ERROR] API not reachable at {API_URL}: {exc}")
            return

        # ── Step 1: API keys ─────────────────────────────────────────────
        print("Issuing API keys...")
        keys = {}
        for account in (OWNER_ACCOUNT, "farmer-1", "farmer-2"):
            keys[account] = await issue_key(client, account)
            print(f"  Issued key for {account}")
        owner = {"Authorization": f"Bearer {keys[OWNER_ACCOUNT]}"}
        print()

        # ── Step 2: Locations and weather history ────────────────────────
        print("Seeding historical weather data...")
        location_ids = []
        for (name, lat, lon), readings in zip(LOCATIONS, HISTORY):
            resp = await client.post("/v1/locations", json={"lat": lat, "lon": lon}, headers=owner)
            resp.raise_for_status()
            loc_id = resp.json()["location_id"]
            location_ids.append(loc_id)

            for temp, rain, humidity, wind in readings:
                resp = await client.post(
                    "/v1/weather",
                    json={
                        "location_id": loc_id,
                        "temperature": temp,
                        "rainfall": rain,
                        "humidity": humidity,
                        "wind_speed": wind,
                        "source": "OpenWeatherMap",
                    },
                    headers=owner,
                )
                resp.raise_for_status()
            print(f"  Added {len(readings)} records for {name} ({loc_id[:12]}...)")
        print()

        # ── Step 3: Treasury ─────────────────────────────────────────────
        resp = await client.post("/v1/treasury/fund", json={"amount": 10 * UNIT}, headers=owner)
        resp.raise_for_status()
        print(f"Funded treasury: balance={resp.json()['balance'] / UNIT:.4f}\n")

        # ── Step 4: Policies ─────────────────────────────────────────────
        print("Creating sample policies...")
        for sample in SAMPLE_POLICIES:
            body = {k: v for k, v in sample.items() if k not in ("farmer", "location", "description")}
            body["location_id"] = location_ids[sample["location"]]
            resp = await client.post(
                "/v1/policies",
                json=body,
                headers={"Authorization": f"Bearer {keys[sample['farmer']]}"},
            )
            if resp.status_code == 201:
                policy = resp.json()
                print(f"  [{policy['id']}] {sample['description']}: premium={policy['premium']}")
            else:
                print(f"  [ERROR] {sample['description']}: {resp.status_code} {resp.text[:200]}")
        print()

        resp = await client.get("/v1/stats", headers=owner)
        resp.raise_for_status()
        stats = resp.json()
        print("Summary:")
        print(f"  Total policies: {stats['policy_count']}")
        print(f"  Treasury balance: {stats['treasury_balance'] / UNIT:.4f}")


if __name__ == "__main__":
    asyncio.run(seed())
