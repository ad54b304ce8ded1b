"""
Garden cluster lookups: Seed and Shoot resources, seed kubeconfigs and
ingress domains.
"""
import base64
import logging
import time

import yaml
from kubernetes.client.rest import ApiException

from terminal_bootstrap.k8s import ClusterClientSet
from terminal_bootstrap.models import Seed

logger = logging.getLogger("terminal-bootstrap")

GARDEN_GROUP = "garden.sapcloud.io"
GARDEN_VERSION = "v1beta1"
GARDEN_NAMESPACE = "garden"


class CredentialUnavailable(Exception):
    """The kubeconfig of a seed could not be resolved."""


def project_name_from_namespace(namespace: str) -> str:
    """``garden`` → ``garden``, ``garden-dev`` → ``dev``."""
    if namespace == GARDEN_NAMESPACE:
        return namespace
    prefix = f"{GARDEN_NAMESPACE}-"
    if namespace.startswith(prefix):
        return namespace[len(prefix):]
    raise ValueError(f"namespace {namespace!r} is not a project namespace")


def seed_ingress_domain(seed: Seed) -> str:
    if not seed.ingress_domain:
        raise ValueError(f"seed {seed.name} has no spec.ingressDomain")
    return seed.ingress_domain


def shoot_ingress_domain(shoot: dict, seed: Seed) -> str:
    """Ingress domain of ``shoot`` while hosted on ``seed``."""
    metadata = shoot.get("metadata") or {}
    project = project_name_from_namespace(metadata.get("namespace", GARDEN_NAMESPACE))
    return f"{metadata['name']}.{project}.{seed_ingress_domain(seed)}"


def shoot_seed_name(shoot: dict) -> str | None:
    """Name of the seed hosting ``shoot`` (``spec.seedName``, legacy ``spec.cloud.seed``)."""
    spec = shoot.get("spec") or {}
    return spec.get("seedName") or (spec.get("cloud") or {}).get("seed")


def _decode_kubeconfig(secret) -> dict | None:
    raw = (secret.data or {}).get("kubeconfig")
    if not raw:
        return None
    kubeconfig = yaml.safe_load(base64.b64decode(raw))
    if not isinstance(kubeconfig, dict) or not kubeconfig.get("clusters"):
        raise ValueError(f"secret {secret.metadata.namespace}/{secret.metadata.name} holds no valid kubeconfig")
    return kubeconfig


class GardenClient:
    """Read-only access to Gardener resources on the garden cluster."""

    def __init__(
        self,
        clients: ClusterClientSet,
        credential_timeout_seconds: float = 300.0,
        credential_poll_seconds: float = 5.0,
        sleep=time.sleep,
        clock=time.monotonic,
    ):
        self.clients = clients
        self.credential_timeout_seconds = credential_timeout_seconds
        self.credential_poll_seconds = credential_poll_seconds
        self._sleep = sleep
        self._clock = clock

    def read_seed(self, name: str) -> Seed:
        body = self.clients.custom.get_cluster_custom_object(
            group=GARDEN_GROUP, version=GARDEN_VERSION, plural="seeds", name=name,
        )
        return Seed.from_resource(body)

    def list_seeds(self) -> list[Seed]:
        seeds = self.clients.custom.list_cluster_custom_object(
            group=GARDEN_GROUP, version=GARDEN_VERSION, plural="seeds",
        )
        return [Seed.from_resource(item) for item in seeds.get("items", [])]

    def read_shoot(self, namespace: str, name: str) -> dict:
        return self.clients.custom.get_namespaced_custom_object(
            group=GARDEN_GROUP, version=GARDEN_VERSION, namespace=namespace, plural="shoots", name=name,
        )

    def get_seed_kubeconfig(self, seed: Seed, wait_until_available: bool = False) -> dict:
        """Kubeconfig referenced by ``seed.spec.secretRef``.

        With ``wait_until_available`` a missing secret is polled for until
        ``credential_timeout_seconds`` elapse. Raises ``CredentialUnavailable``
        when no kubeconfig can be found.
        """
        name = seed.secret_ref.get("name")
        namespace = seed.secret_ref.get("namespace", GARDEN_NAMESPACE)
        if not name:
            raise CredentialUnavailable(f"seed {seed.name} has no spec.secretRef")

        deadline = self._clock() + self.credential_timeout_seconds
        while True:
            try:
                secret = self.clients.core.read_namespaced_secret(name=name, namespace=namespace)
                kubeconfig = _decode_kubeconfig(secret)
                if kubeconfig is not None:
                    return kubeconfig
                reason = f"secret {namespace}/{name} has no kubeconfig"
            except ApiException as e:
                if e.status != 404:
                    raise
                reason = f"secret {namespace}/{name} not found"

            if not wait_until_available or self._clock() >= deadline:
                raise CredentialUnavailable(f"could not get kubeconfig for seed {seed.name}: {reason}")
            logger.info(f"⏳ [{seed.name}] waiting for kubeconfig: {reason}")
            self._sleep(self.credential_poll_seconds)

    def seed_ingress_domain(self, seed: Seed) -> str:
        return seed_ingress_domain(seed)

    def shoot_ingress_domain(self, shoot: dict, seed: Seed) -> str:
        return shoot_ingress_domain(shoot, seed)
