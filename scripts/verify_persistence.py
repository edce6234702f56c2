"""
Live persistence smoke test.

Starts the API, registers an account, restarts the API and checks the
account and its balance survived the restart.
"""

import time
import subprocess
import httpx
import sys
import os
import signal

BASE_URL = "http://127.0.0.1:8000"
API_PREFIX = "/v1"
APP = "paymoment.app.main:app"

USERNAME = "persist_wallet"
PASSWORD = "securePassword123"


def start_server(echo=False):
    env = {**os.environ}
    if echo:
        env["DB_ECHO"] = "True"
    return subprocess.Popen(
        [sys.executable, "-m", "uvicorn", APP, "--host", "127.0.0.1", "--port", "8000"],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=env
    )


def stop_server(proc):
    proc.send_signal(signal.SIGTERM)
    proc.wait()


def wait_for_server(retries=10, delay=2):
    url = f"{BASE_URL}/health"
    print(f"Waiting for server at {url}...")
    for _ in range(retries):
        try:
            resp = httpx.get(url)
            if resp.status_code == 200:
                print("✅ Server is up!")
                return True
        except httpx.TransportError:
            pass
        time.sleep(delay)
    print("❌ Server failed to start.")
    return False


def run_verification():
    print("\n--- [Step 1] Starting Server (Initial) ---")
    proc = start_server(echo=True)

    try:
        if not wait_for_server():
            server_logs = proc.communicate(timeout=2)
            print("Server Stdout:", server_logs[0].decode())
            print("Server Stderr:", server_logs[1].decode())
            raise RuntimeError("Server start failed")

        print("\n--- [Step 2] Registering Account ---")
        reg_payload = {
            "email": "persist_wallet@test.com",
            "username": USERNAME,
            "password": PASSWORD,
        }
        resp = httpx.post(f"{BASE_URL}{API_PREFIX}/auth/register", json=reg_payload)

        if resp.status_code == 400 and "already registered" in resp.text:
            print("⚠️ Account already exists (persistence working from previous run?)")
        elif resp.status_code == 201:
            print("✅ Account Registered Successfully")
            print(resp.json())
        else:
            print(f"❌ Registration Failed: {resp.status_code} {resp.text}")
            raise RuntimeError("Registration failed")

    finally:
        print("\n--- [Step 3] Stopping Server ---")
        stop_server(proc)

    time.sleep(2)  # Wait for port release

    print("\n--- [Step 4] Restarting Server ---")
    proc2 = start_server()

    try:
        if not wait_for_server():
            raise RuntimeError("Server restart failed")

        print("\n--- [Step 5] Logging In (Post-Restart) ---")
        resp = httpx.post(
            f"{BASE_URL}{API_PREFIX}/auth/login",
            json={"username": USERNAME, "password": PASSWORD}
        )
        if resp.status_code != 200:
            print(f"❌ Login Failed (Persistence Issue?): {resp.status_code} {resp.text}")
            raise RuntimeError("Login failed after restart")

        print("✅ Login Successful (Account Persisted!)")
        token = resp.json()["access_token"]
        headers = {"Authorization": f"Bearer {token}"}

        print("\n--- [Step 6] Reading Balance ---")
        resp = httpx.get(f"{BASE_URL}{API_PREFIX}/wallet/balance", headers=headers)
        if resp.status_code == 200:
            print(f"✅ Balance: {resp.json()['balance']}")
        else:
            print(f"❌ Balance Check Failed: {resp.status_code} {resp.text}")

        print("\n--- [Step 7] Reading History ---")
        resp = httpx.get(f"{BASE_URL}{API_PREFIX}/wallet/transactions", headers=headers)
        if resp.status_code == 200:
            print(f"✅ {resp.json()['count']} transaction(s)")
        else:
            print(f"❌ History Check Failed: {resp.status_code} {resp.text}")

    finally:
        print("\n--- [Step 8] Stopping Server ---")
        stop_server(proc2)

if __name__ == "__main__":
    run_verification()
