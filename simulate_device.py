#!/usr/bin/env python3
"""
Home Guardian Device Simulator
Plays the ESP32 role: sends telemetry to the backend and prints the relay command it gets back
"""

import sys
import time
import random
import requests
import argparse


def make_reading(motion_rate=0.2, vibration_rate=0.1):
    """Random but plausible telemetry as query params for /api/ingest"""
    return {
        'temp': f"{random.uniform(18.0, 32.0):.1f}",
        'hum': f"{random.uniform(35.0, 85.0):.1f}",
        'motion': 'DETECTED' if random.random() < motion_rate else 'CLEAR',
        'vibration': 'DETECTED' if random.random() < vibration_rate else 'CLEAR',
    }


def run_simulation(server_url, count=10, interval=2.0, motion_rate=0.2, vibration_rate=0.1):
    """Send `count` readings to the server, feeding back the relay state like the firmware does"""

    print(f"🌐 Server URL: {server_url}")
    print(f"🔢 Readings: {count} every {interval}s")
    print(f"🚶 Motion rate: {motion_rate}  📳 Vibration rate: {vibration_rate}")
    print("")

    # Server reachable?
    print("🔍 Checking server...")
    try:
        response = requests.get(f"{server_url}/health", timeout=10)
        if response.status_code == 200:
            print("✅ Server accessible")
        else:
            print(f"⚠️ Server response: {response.status_code}")
    except requests.exceptions.RequestException as e:
        print(f"❌ Cannot reach server: {e}")
        return False

    relay = 'OFF'
    for i in range(count):
        params = make_reading(motion_rate, vibration_rate)
        params['relay'] = relay
        try:
            response = requests.get(f"{server_url}/api/ingest", params=params, timeout=10)
        except requests.exceptions.RequestException as e:
            print(f"❌ Send failed: {e}")
            return False

        if response.status_code != 200:
            print(f"❌ HTTP {response.status_code}: {response.text}")
            return False

        result = response.json()
        if result.get('status') != 'success':
            print(f"⚠️ Server error: {result.get('message', 'Unknown error')}")
        relay = result.get('relay_command', 'OFF')
        print(
            f"📤 #{i + 1} temp={params['temp']} hum={params['hum']} "
            f"motion={params['motion']} vibration={params['vibration']} "
            f"-> relay {relay} ({result.get('control_reason')}, {result.get('mode')})"
        )

        if i < count - 1:
            time.sleep(interval)

    print("")
    print("✅ Simulation finished")
    return True


def main():
    parser = argparse.ArgumentParser(description='Send simulated telemetry to the Home Guardian backend')
    parser.add_argument('server_url', help='Backend server URL (e.g. http://localhost:8000)')
    parser.add_argument('--count', type=int, default=10, help='Number of readings (default: 10)')
    parser.add_argument('--interval', type=float, default=2.0, help='Seconds between readings (default: 2)')
    parser.add_argument('--motion-rate', type=float, default=0.2, help='Probability of motion per reading')
    parser.add_argument('--vibration-rate', type=float, default=0.1, help='Probability of vibration per reading')

    args = parser.parse_args()

    success = run_simulation(
        args.server_url.rstrip('/'),
        args.count,
        args.interval,
        args.motion_rate,
        args.vibration_rate,
    )

    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()
