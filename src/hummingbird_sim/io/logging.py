from __future__ import annotations
import csv, json, asyncio, threading, queue, pathlib
from typing import Dict, Optional

import pandas as pd
import websockets
from websockets.exceptions import WebSocketException

from .persistence import ensure_run_dir


def step_frame(controller, reward: float, done: bool, info: Dict) -> Dict:
    """Frame dict for one controller step, in the shape RunLogger expects.

    Pose and flower count come from `info`, so a done frame still describes the
    episode that just ended rather than the next spawn.
    """
    x, y, z = info["position"]
    return {
        "t": controller.t,
        "episode": info["episode"], "step": info["step"],
        "reward": reward, "done": done,
        "nectar": info["nectar"], "x": x, "y": y, "z": z,
        "stats": {"flowers_remaining": info["flowers_remaining"]},
    }


class RunLogger:
    """Per-step run logger.
    - Writes rows to runs/<run_id>/frames.csv on a background thread
    - Optionally streams frame JSONs to a websocket (e.g. ws://localhost:8000/ws/ingest)
    """
    def __init__(self, root: str = "runs", run_id: Optional[str] = None, ws_url: Optional[str] = None, token: Optional[str] = None):
        self.dir = ensure_run_dir(root, run_id, meta={"ws_url": ws_url})
        self.run_id = self.dir.name
        self.csv_path = self.dir / "frames.csv"
        self.ws_url = ws_url; self.token = token
        self._queue: "queue.Queue[dict]" = queue.Queue()
        self._ws_queue: "queue.Queue[dict]" = queue.Queue(maxsize=1024)
        self._writer_thread: Optional[threading.Thread] = None
        self._ws_thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._csv_fieldnames: Optional[list[str]] = None

    def start(self) -> None:
        self._stop.clear()
        self._writer_thread = threading.Thread(target=self._writer_loop, daemon=True); self._writer_thread.start()
        if self.ws_url:
            self._ws_thread = threading.Thread(target=self._ws_loop, daemon=True); self._ws_thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._writer_thread: self._writer_thread.join(timeout=2)
        if self._ws_thread: self._ws_thread.join(timeout=2)

    def log(self, frame: Dict) -> None:
        """Enqueue a frame dict."""
        self._queue.put(frame)
        if self.ws_url:
            try:
                self._ws_queue.put_nowait(frame)
            except queue.Full:
                pass  # the stream is best-effort; the CSV keeps every frame

    # ---- internals ---------------------------------------------------------
    def _flatten(self, frame: Dict) -> Dict[str, object]:
        out: Dict[str, object] = {}
        for k, v in frame.items():
            if k == "stats" and isinstance(v, dict):
                for sk, sv in v.items():
                    out[f"stats.{sk}"] = sv
            elif isinstance(v, (int, float, str, bool)):
                out[k] = v
        return out

    def _writer_loop(self) -> None:
        f = None; writer = None
        try:
            while not self._stop.is_set() or not self._queue.empty():
                try:
                    frame = self._queue.get(timeout=0.2)
                except queue.Empty:
                    continue
                flat = self._flatten(frame)
                if writer is None:
                    self._csv_fieldnames = sorted(flat.keys())
                    f = open(self.csv_path, "w", newline="", encoding="utf-8")
                    # columns are fixed by the first frame
                    writer = csv.DictWriter(f, fieldnames=self._csv_fieldnames, extrasaction="ignore")
                    writer.writeheader()
                writer.writerow({k: flat.get(k) for k in self._csv_fieldnames})
                f.flush()
        finally:
            if f: f.close()

    def _ws_loop(self) -> None:
        async def run() -> None:
            url = self.ws_url
            if not url: return
            sep = "&" if "?" in url else "?"
            url = f"{url}{sep}run_id={self.run_id}"
            if self.token: url += f"&token={self.token}"
            backoff = 0.5
            while not self._stop.is_set():
                try:
                    async with websockets.connect(url, max_queue=32) as ws:
                        backoff = 0.5
                        while not self._stop.is_set():
                            try:
                                frame = self._ws_queue.get(timeout=0.1)
                            except queue.Empty:
                                await asyncio.sleep(0.05); continue
                            await ws.send(json.dumps(frame))
                except (OSError, WebSocketException):
                    await asyncio.sleep(backoff); backoff = min(5.0, backoff * 1.7)
        asyncio.run(run())


def summarize_run(run_dir: str | pathlib.Path) -> pd.DataFrame:
    """Per-episode totals from a run's frames.csv: steps, reward, nectar."""
    df = pd.read_csv(pathlib.Path(run_dir) / "frames.csv")
    if df.empty:
        return pd.DataFrame(columns=["episode", "steps", "reward", "nectar"])
    g = df.groupby("episode", sort=True)
    out = pd.DataFrame({
        "steps": g["step"].count(),
        "reward": g["reward"].sum(),
        "nectar": g["nectar"].max(),
    }).reset_index()
    return out
