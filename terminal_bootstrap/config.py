"""
Configuration for the terminal bootstrap controller.

Read once at startup from a YAML file (``TERMINAL_BOOTSTRAP_CONFIG``) with a
handful of environment overrides, then validated once. Components receive the
resulting ``TerminalConfig`` by reference and only ever ask ``config.enabled``.
"""
import json
import logging
import os
from dataclasses import dataclass, field, replace

import yaml

logger = logging.getLogger("terminal-bootstrap")

DEFAULT_CONFIG_PATH = "/etc/terminal-bootstrap/config.yaml"
DEFAULT_CLEANUP_SCHEDULE = "*/5 * * * *"
DEFAULT_NO_HEARTBEAT_DELETE_SECONDS = 300


def _get(data: dict, path: str, default=None):
    node = data
    for key in path.split("."):
        if not isinstance(node, dict) or key not in node:
            return default
        node = node[key]
    return default if node is None else node


def _flag(value):
    """YAML booleans pass through; strings are false only for false, 0, no or empty."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() not in ("", "false", "0", "no")


def _env_flag(name: str):
    raw = os.environ.get(name)
    if not raw:
        return None
    return _flag(raw)


@dataclass(frozen=True)
class TerminalConfig:
    disabled: bool = True
    ingress_annotations: dict = field(default_factory=dict)
    cleanup_image: str = ""
    cleanup_schedule: str = DEFAULT_CLEANUP_SCHEDULE
    no_heartbeat_delete_seconds: int = DEFAULT_NO_HEARTBEAT_DELETE_SECONDS
    queue_width: int = 1
    resync_seconds: float = 3600.0
    credential_timeout_seconds: float = 300.0
    credential_poll_seconds: float = 5.0
    required_config_exists: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "TerminalConfig":
        """Build a config from the nested ``terminal:`` layout and validate it."""
        data = data or {}
        cfg = cls(
            disabled=_flag(_get(data, "terminal.bootstrap.disabled", True)),
            ingress_annotations=dict(_get(data, "terminal.bootstrap.apiserverIngress.annotations", {})),
            cleanup_image=str(_get(data, "terminal.cleanup.image", "")),
            cleanup_schedule=str(_get(data, "terminal.cleanup.schedule", DEFAULT_CLEANUP_SCHEDULE)),
            no_heartbeat_delete_seconds=int(
                _get(data, "terminal.cleanup.noHeartbeatDeleteSeconds", DEFAULT_NO_HEARTBEAT_DELETE_SECONDS)
            ),
            queue_width=max(1, int(_get(data, "terminal.bootstrap.queueWidth", 1))),
            resync_seconds=float(_get(data, "terminal.bootstrap.resyncSeconds", 3600)),
            credential_timeout_seconds=float(_get(data, "terminal.bootstrap.credentialTimeoutSeconds", 300)),
            credential_poll_seconds=float(_get(data, "terminal.bootstrap.credentialPollSeconds", 5)),
        )
        return cfg.validate()

    def validate(self) -> "TerminalConfig":
        """Return a copy with ``required_config_exists`` resolved.

        Missing required keys are logged once here; the subsystem is then
        disabled as a whole instead of failing seed by seed.
        """
        if self.disabled:
            logger.debug("terminal bootstrap disabled by config")
            return replace(self, required_config_exists=False)

        ok = True
        if not self.ingress_annotations:
            logger.error("💥 no terminal.bootstrap.apiserverIngress.annotations config found")
            ok = False
        if not self.cleanup_image:
            logger.error("💥 no terminal.cleanup.image config found")
            ok = False
        return replace(self, required_config_exists=ok)

    @property
    def enabled(self) -> bool:
        return not self.disabled and self.required_config_exists


def _apply_env_overrides(data: dict) -> dict:
    terminal = data.setdefault("terminal", {}) or {}
    data["terminal"] = terminal
    bootstrap = terminal.setdefault("bootstrap", {}) or {}
    terminal["bootstrap"] = bootstrap
    cleanup = terminal.setdefault("cleanup", {}) or {}
    terminal["cleanup"] = cleanup

    disabled = _env_flag("TERMINAL_BOOTSTRAP_DISABLED")
    if disabled is not None:
        bootstrap["disabled"] = disabled
    if os.environ.get("TERMINAL_BOOTSTRAP_QUEUE_WIDTH"):
        bootstrap["queueWidth"] = int(os.environ["TERMINAL_BOOTSTRAP_QUEUE_WIDTH"])
    if os.environ.get("TERMINAL_BOOTSTRAP_RESYNC_SECONDS"):
        bootstrap["resyncSeconds"] = float(os.environ["TERMINAL_BOOTSTRAP_RESYNC_SECONDS"])
    raw_annotations = os.environ.get("TERMINAL_APISERVER_INGRESS_ANNOTATIONS", "")
    if raw_annotations:
        try:
            ingress = bootstrap.get("apiserverIngress") or {}
            ingress["annotations"] = json.loads(raw_annotations)
            bootstrap["apiserverIngress"] = ingress
        except ValueError as e:
            logger.error(f"💥 could not parse TERMINAL_APISERVER_INGRESS_ANNOTATIONS: {e}")
    if os.environ.get("TERMINAL_CLEANUP_IMAGE"):
        cleanup["image"] = os.environ["TERMINAL_CLEANUP_IMAGE"]
    return data


def load_config(path: str | None = None) -> TerminalConfig:
    """Read the YAML config file (a missing file means defaults) and env overrides."""
    path = path or os.environ.get("TERMINAL_BOOTSTRAP_CONFIG", DEFAULT_CONFIG_PATH)
    data: dict = {}
    if os.path.exists(path):
        with open(path) as f:
            loaded = yaml.safe_load(f)
        if loaded is not None and not isinstance(loaded, dict):
            raise ValueError(f"{path}: expected a mapping at top level")
        data = loaded or {}
        logger.info(f"📄 loaded terminal bootstrap config from {path}")
    else:
        logger.info(f"📄 no config file at {path}, using defaults")
    return TerminalConfig.from_dict(_apply_env_overrides(data))
