#!/usr/bin/env python3
"""
Demo seed script — populates a running server with sample users, groups,
roles and an invite.

!! NOT FOR PRODUCTION !!
This script creates users with known passwords and reads one-time tokens
out of the dev outbox (/dev/outbox), which only exists outside production.
It is intended ONLY for local demos and frontend development.

Usage:
    # With the API server running on localhost:8000:
    python demo/seed.py

    # Custom server URL or bootstrap admin credentials:
    python demo/seed.py --base-url http://localhost:9000 \\
        --admin-email admin@example.com --admin-password 'admin123!'

Login credentials after seeding:
    ┌──────────────────────────────┬───────────────────┬───────────────┐
    │ Email                        │ Password          │ Roles         │
    ├──────────────────────────────┼───────────────────┼───────────────┤
    │ admin@example.com            │ admin123!         │ ADMIN, USER   │
    │ alice.chen@example.com       │ AliceDemo123!     │ USER          │
    │ bob.martinez@example.com     │ BobDemo123!       │ USER          │
    │ carol.nguyen@example.com     │ CarolDemo123!     │ USER, SUPPORT │
    └──────────────────────────────┴───────────────────┴───────────────┘
    dave.johnson@example.com is left as a PENDING invite.
"""

import argparse
import asyncio
import sys

import httpx

BASE_URL = "http://localhost:8000"

# ---------------------------------------------------------------------------
# Demo data
# ---------------------------------------------------------------------------

MEMBERS = [
    {"email": "alice.chen@example.com", "password": "AliceDemo123!", "display_name": "Alice Chen"},
    {"email": "bob.martinez@example.com", "password": "BobDemo123!", "display_name": "Bob Martinez"},
    {"email": "carol.nguyen@example.com", "password": "CarolDemo123!", "display_name": "Carol Nguyen"},
]

GROUPS = {
    "Engineering": ["alice.chen@example.com", "bob.martinez@example.com"],
    "Support": ["carol.nguyen@example.com"],
}

INVITEE = {"email": "dave.johnson@example.com", "display_name": "Dave Johnson"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def log(msg: str) -> None:
    print(f"  {msg}")


def token_from_body(body: str) -> str:
    start = body.index("token=") + len("token=")
    return body[start:body.index("\n", start)]


async def latest_token_for(client: httpx.AsyncClient, email: str) -> str:
    """Newest one-time token mailed to an address, read from the dev outbox."""
    resp = await client.get(f"{BASE_URL}/dev/outbox")
    resp.raise_for_status()
    for message in resp.json():
        if message["to_email"] == email:
            return token_from_body(message["body"])
    raise RuntimeError(f"No outbox message for {email}")


async def login(client: httpx.AsyncClient, email: str, password: str) -> dict:
    """Log in; the client keeps the cookies and gets the CSRF header."""
    resp = await client.post(
        f"{BASE_URL}/auth/login", json={"email": email, "password": password},
    )
    resp.raise_for_status()
    body = resp.json()
    client.headers["x-csrf-token"] = body["csrf_token"]
    return body


async def signup_and_verify(client: httpx.AsyncClient, member: dict) -> str:
    """Sign up a user, verify the email, return the user id."""
    resp = await client.post(f"{BASE_URL}/auth/signup", json=member)
    if resp.status_code == 409:
        log(f"{member['email']} already exists, skipping")
        return ""
    resp.raise_for_status()
    user_id = resp.json()["user_id"]

    token = await latest_token_for(client, member["email"])
    resp = await client.post(f"{BASE_URL}/auth/verify-email", json={"token": token})
    resp.raise_for_status()
    return user_id


# ---------------------------------------------------------------------------
# Seed logic
# ---------------------------------------------------------------------------

async def seed(base_url: str, admin_email: str, admin_password: str) -> None:
    global BASE_URL
    BASE_URL = base_url

    print("\n========================================")
    print("  DEMO SEED — NOT FOR PRODUCTION")
    print("========================================\n")

    async with httpx.AsyncClient(timeout=30.0) as anon, httpx.AsyncClient(timeout=30.0) as admin:
        try:
            health = await anon.get(f"{BASE_URL}/health")
            health.raise_for_status()
        except (httpx.ConnectError, httpx.HTTPStatusError):
            print(f"  ERROR: Cannot connect to {BASE_URL}")
            print("  Start the server first: uvicorn ums.main:app --reload\n")
            sys.exit(1)

        print("Logging in as admin...")
        await login(admin, admin_email, admin_password)
        log(f"Admin: {admin_email}")

        # --- Members ---
        user_ids: dict[str, str] = {}
        for member in MEMBERS:
            print(f"\nCreating {member['display_name']}...")
            user_id = await signup_and_verify(anon, member)
            if user_id:
                user_ids[member["email"]] = user_id
                log(f"Login: {member['email']} / {member['password']}")

        # --- Custom role ---
        print("\nCreating SUPPORT role...")
        resp = await admin.post(f"{BASE_URL}/admin/roles", json={
            "name": "SUPPORT",
            "description": "Helpdesk staff",
            "permissions": ["read_self", "view_audit_logs"],
        })
        if resp.status_code not in (201, 409):
            resp.raise_for_status()
        carol = user_ids.get("carol.nguyen@example.com")
        if carol:
            resp = await admin.post(f"{BASE_URL}/admin/users/{carol}/roles", json={"role": "SUPPORT"})
            resp.raise_for_status()
            log("SUPPORT assigned to carol.nguyen@example.com")

        # --- Groups ---
        print("\nCreating groups...")
        for name, emails in GROUPS.items():
            resp = await admin.post(f"{BASE_URL}/admin/groups", json={"name": name})
            if resp.status_code == 409:
                log(f"{name} already exists, skipping")
                continue
            resp.raise_for_status()
            group_id = resp.json()["id"]
            for email in emails:
                if email in user_ids:
                    await admin.post(
                        f"{BASE_URL}/admin/groups/{group_id}/members",
                        json={"user_id": user_ids[email]},
                    )
            log(f"{name}: {len(emails)} member(s)")

        # --- Invite ---
        print("\nInviting a user...")
        resp = await admin.post(f"{BASE_URL}/admin/invites", json=INVITEE)
        if resp.status_code == 201:
            log(f"Invite sent to {INVITEE['email']} (see /dev/outbox)")
        elif resp.status_code == 409:
            log(f"{INVITEE['email']} already exists, skipping")
        else:
            resp.raise_for_status()

        # --- Settings ---
        resp = await admin.patch(f"{BASE_URL}/admin/settings", json={"organizationName": "Demo Org"})
        resp.raise_for_status()

    print("\n========================================")
    print("  Seed complete")
    print("========================================\n")


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed demo data into a running UMS API")
    parser.add_argument("--base-url", default=BASE_URL)
    parser.add_argument("--admin-email", default="admin@example.com")
    parser.add_argument("--admin-password", default="admin123!")
    args = parser.parse_args()
    asyncio.run(seed(args.base_url, args.admin_email, args.admin_password))


if __name__ == "__main__":
    main()
