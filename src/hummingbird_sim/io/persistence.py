from __future__ import annotations
import pathlib, time, json
from typing import Any, Dict, Optional

def ensure_run_dir(root: str = "runs", run_id: Optional[str] = None, meta: Optional[Dict[str, Any]] = None) -> pathlib.Path:
    """Create runs/<run_id>/ and write its meta.json."""
    p = pathlib.Path(root)
    p.mkdir(parents=True, exist_ok=True)
    if run_id is None:
        run_id = time.strftime("%Y%m%d-%H%M%S")
    d = p / run_id
    d.mkdir(parents=True, exist_ok=True)
    data = {"run_id": run_id, "created": time.time()}
    data.update(meta or {})
    (d / "meta.json").write_text(json.dumps(data, indent=2))
    return d
