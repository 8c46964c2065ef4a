#!/usr/bin/env python3
"""
Heatmap Sweep
Polls the suitability and heatmap endpoints for every active monitoring point
and logs a one-line summary per point, to spot degraded grids and stale data.
"""

import asyncio
import aiohttp
import signal
import sys
from datetime import datetime
from pathlib import Path

# Configuration
SERVER_URL = "http://localhost:8000"
SWEEP_INTERVAL_SECONDS = 300
TIME_RANGE = "3h"
RESOLUTION = "medium"
LOG_DIR = Path(__file__).parent.parent / "logs" / "sweeps"


class HeatmapSweepRunner:
    def __init__(self, once: bool = False):
        self.running = True
        self.once = once
        self.session = None
        self.log_file = None
        self.sweeps_completed = 0
        self.requests_failed = 0
        self.degraded_grids = 0

    async def setup(self):
        """Initialize the HTTP session and logging."""
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.log_file = LOG_DIR / f"sweep_{timestamp}.log"

        self.log("=== Heatmap Sweep ===")
        self.log(f"Server: {SERVER_URL}")
        self.log(f"Log file: {self.log_file}")

        self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=30))

        try:
            async with self.session.get(f"{SERVER_URL}/health") as resp:
                if resp.status != 200:
                    self.log("ERROR: Server not responding")
                    return False
                self.log("Server connection: OK")
        except aiohttp.ClientError as e:
            self.log(f"ERROR: Cannot connect to server: {e}")
            return False

        return True

    def log(self, message):
        """Log message to console and file."""
        timestamp = datetime.now().strftime("%H:%M:%S")
        line = f"[{timestamp}] {message}"
        print(line)
        if self.log_file:
            with open(self.log_file, "a") as f:
                f.write(line + "\n")

    async def get_json(self, path, params=None):
        try:
            async with self.session.get(f"{SERVER_URL}{path}", params=params) as resp:
                data = await resp.json()
                if resp.status != 200:
                    self.requests_failed += 1
                    self.log(f"  {path} -> {resp.status}: {data.get('detail')}")
                    return None
                return data
        except aiohttp.ClientError as e:
            self.requests_failed += 1
            self.log(f"  {path} failed: {e}")
            return None

    async def sweep_point(self, point):
        point_id = point["id"]
        status = await self.get_json("/api/suitability/status", {"pointId": point_id, "totalHours": 3})
        chart = await self.get_json("/api/weather/heatmap/chart", {
            "pointId": point_id, "timeRange": TIME_RANGE, "resolution": RESOLUTION,
        })

        parts = [f"{point_id} ({point['name']})"]
        if status:
            current = status["current"]
            parts.append(f"suitability {current['overallSuitability']}% {current['recommendationLabel']}")
            parts.append(f"source {status['metadata']['weatherDataSource']}")
        if chart:
            grid = chart["data"]
            cells = [v for row in grid["data"] for v in row]
            data_type = grid["metadata"]["dataType"]
            if data_type.startswith("basic_"):
                self.degraded_grids += 1
            parts.append(f"risk {min(cells)}-{max(cells)} ({data_type})")

        if point.get("bbox"):
            geo = await self.get_json("/api/weather/heatmap/geo", {"pointId": point_id, "resolution": RESOLUTION})
            if geo:
                high = sum(1 for p in geo["data"]["points"] if p["riskLevel"] == "high")
                parts.append(f"geo high cells {high}/{geo['data']['pointCount']}")

        self.log("  " + " | ".join(parts))

    async def sweep(self):
        points = await self.get_json("/api/monitoring-points")
        if not points:
            self.log("No monitoring points available")
            return

        self.log(f"\n--- Sweep #{self.sweeps_completed + 1}: {points['count']} points ---")
        await asyncio.gather(*(self.sweep_point(p) for p in points["data"]))
        self.sweeps_completed += 1

    async def run(self):
        """Main sweep loop."""
        if not await self.setup():
            await self.cleanup()
            return

        try:
            while self.running:
                await self.sweep()
                if self.once:
                    break
                for _ in range(SWEEP_INTERVAL_SECONDS):
                    if not self.running:
                        break
                    await asyncio.sleep(1)
        finally:
            await self.cleanup()

    async def cleanup(self):
        """Clean up resources."""
        self.log("\n=== Final Summary ===")
        self.log(f"Sweeps completed: {self.sweeps_completed}")
        self.log(f"Failed requests: {self.requests_failed}")
        self.log(f"Degraded chart grids: {self.degraded_grids}")

        if self.session:
            await self.session.close()

    def stop(self):
        """Stop the sweep loop."""
        self.log("\nStopping sweep...")
        self.running = False


async def main():
    runner = HeatmapSweepRunner(once="--once" in sys.argv)

    # Handle Ctrl+C
    def signal_handler(sig, frame):
        runner.stop()

    signal.signal(signal.SIGINT, signal_handler)

    await runner.run()


if __name__ == "__main__":
    print("Heatmap Sweep (Ctrl+C to stop, --once for a single pass)")
    asyncio.run(main())
