# run_all.py
# Runs the FastAPI ECG service + synthetic device producer in one command

import os
import signal
import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import List, Optional, Tuple

from ecg_stream.config.settings import settings

ROOT = Path(__file__).resolve().parent
PY = sys.executable


def _popen(cmd: List[str], name: str, env: Optional[dict] = None) -> subprocess.Popen:
    print(f"[run_all] starting {name}: {' '.join(cmd)}")
    return subprocess.Popen(
        cmd,
        cwd=str(ROOT),
        env=env or os.environ.copy(),
    )


def _parse_host_port(address: str, default_port: int) -> Tuple[str, int]:
    """
    Extract host and port from "host:port" (first entry of a comma list).

    Examples:
        "localhost:9092"         -> ("localhost", 9092)
        "kafka"                  -> ("kafka", default_port)
        "host1:9092,host2:9093"  -> ("host1", 9092)
    """
    first = address.split(",")[0].strip()
    if ":" in first:
        host_str, port_str = first.rsplit(":", 1)
        host = host_str.strip() or "localhost"
        try:
            port = int(port_str)
        except ValueError:
            port = default_port
    else:
        host = first or "localhost"
        port = default_port

    return host, port


def _wait_for_port(
    host: str,
    port: int,
    label: str,
    timeout_s: float = 30.0,
    interval_s: float = 1.0,
) -> bool:
    """Wait until host:port accepts TCP connections."""
    deadline = time.time() + timeout_s
    while time.time() < deadline:
        try:
            with socket.create_connection((host, port), timeout=2.0):
                print(f"[run_all] {label} is reachable at {host}:{port}")
                return True
        except OSError:
            print(f"[run_all] waiting for {label} at {host}:{port} ...")
            time.sleep(interval_s)

    print(f"[run_all] {label} not reachable after {timeout_s:.0f}s, continuing anyway...")
    return False


def main() -> None:
    # ---- CONFIG ----
    start_producer = os.environ.get("START_PRODUCER", "1") == "1"
    use_kafka = settings.kafka.enabled
    sink = "kafka" if use_kafka else "http"

    api_cmd = [
        PY,
        "-m",
        "uvicorn",
        "ecg_stream.api.fastapi_app:app",
        "--host",
        settings.api.host,
        "--port",
        str(settings.api.port),
    ]
    producer_cmd = [PY, "-m", "ecg_stream.streaming.ecg_producer", "--sink", sink]

    procs: List[Tuple[str, subprocess.Popen]] = []

    try:
        # 1) API (Kafka consumer starts inside it when enabled)
        procs.append(("api", _popen(api_cmd, "api")))
        _wait_for_port(settings.api.host, settings.api.port, "api", timeout_s=15.0)

        # 2) Producer (optional)
        if start_producer:
            if use_kafka:
                host, port = _parse_host_port(settings.kafka.bootstrap_servers, 9092)
                _wait_for_port(host, port, "Kafka", timeout_s=30.0)
            procs.append(("producer", _popen(producer_cmd, "producer")))

        print("\n[run_all] running. stop with CTRL+C\n")

        # Supervisor loop
        while True:
            time.sleep(0.5)

            for idx, (name, proc) in enumerate(list(procs)):
                ret = proc.poll()
                if ret is None:
                    continue

                if name == "api":
                    print(f"[run_all] api exited (code={ret}). Shutting down...")
                    raise RuntimeError(f"api exited unexpectedly (code={ret})")

                # Producer died: restart it
                print(f"[run_all] producer exited (code={ret}). Restarting in 2s...")
                time.sleep(2.0)
                try:
                    procs[idx] = ("producer", _popen(producer_cmd, "producer"))
                except OSError as e:
                    print(f"[run_all] failed to restart producer: {e}")
                    procs.pop(idx)

    except KeyboardInterrupt:
        print("\n[run_all] CTRL+C received, shutting down...")

    finally:
        for name, p in procs[::-1]:
            if p.poll() is None:
                print(f"[run_all] sending SIGINT to {name} (pid={p.pid})")
                p.send_signal(signal.SIGINT)

        time.sleep(1.0)

        for name, p in procs[::-1]:
            if p.poll() is None:
                print(f"[run_all] terminating {name} (pid={p.pid})")
                p.terminate()

        print("[run_all] done.")


if __name__ == "__main__":
    main()
