import json
import logging
from datetime import datetime, timezone

audit_logger = logging.getLogger("terminal-bootstrap-audit")


def audit(event: str, cluster: str, step: str | None = None, **kwargs):
    """Log one bootstrap outcome as a JSON line.

    ``event`` is ``bootstrap.succeeded`` / ``bootstrap.failed`` for seeds or
    ``garden.bootstrapped`` / ``garden.failed`` for the garden cluster;
    ``cluster`` names the seed (or ``garden``) and ``step`` the pipeline step
    a failure happened in.
    """
    record = {
        "audit": True,
        "component": "terminal-bootstrap",
        "event": event,
        "cluster": cluster,
        "ts": datetime.now(timezone.utc).isoformat(),
    }
    if step is not None:
        record["step"] = step
    record.update(kwargs)
    audit_logger.info(json.dumps(record))
