"""
Kubernetes client helpers for the terminal bootstrap controller.

Builds per-cluster client sets (in-cluster for the garden, kubeconfig for
seeds and soils) and exposes one ``ResourceClient`` per object kind so the
bootstrap steps can share a single create-or-update primitive.
"""
import logging
import os
import tempfile

import yaml
from kubernetes import client, config
from kubernetes.client.rest import ApiException

logger = logging.getLogger("terminal-bootstrap")

MERGE_PATCH = "application/merge-patch+json"


class ResourceClient:
    """Read, create and merge-patch one object kind, optionally in one namespace.

    Wraps the generated ``kubernetes.client`` methods, which differ in name and
    signature between cluster-scoped and namespaced kinds.
    """

    def __init__(self, kind: str, read, create, patch, namespace: str | None = None):
        self.kind = kind
        self.namespace = namespace
        self._read = read
        self._create = create
        self._patch = patch

    def _scoped(self, **kwargs) -> dict:
        if self.namespace is not None:
            kwargs["namespace"] = self.namespace
        return kwargs

    def get(self, name: str):
        return self._read(**self._scoped(name=name))

    def create(self, body):
        return self._create(**self._scoped(body=body))

    def merge_patch(self, name: str, body):
        return self._patch(**self._scoped(name=name, body=body, _content_type=MERGE_PATCH))

    def __repr__(self) -> str:
        where = f"ns={self.namespace}" if self.namespace is not None else "cluster-scoped"
        return f"ResourceClient({self.kind}, {where})"


def upsert_resource(resource_client: ResourceClient, name: str, body):
    """Make the live object ``name`` match ``body`` and return the live object.

    Existing objects get a JSON merge patch carrying only the fields of
    ``body``; a 404 on read creates the object. Every other API error is
    re-raised unchanged. Read-then-write is not atomic: a concurrent pass may
    win the create, the next pass converges.
    """
    try:
        resource_client.get(name)
    except ApiException as e:
        if e.status != 404:
            raise
        logger.debug(f"➕ creating {resource_client.kind}={name} ({resource_client})")
        return resource_client.create(body)
    logger.debug(f"🔁 patching {resource_client.kind}={name} ({resource_client})")
    return resource_client.merge_patch(name, body)


class ClusterClientSet:
    """API clients scoped to one cluster (garden, seed or soil)."""

    def __init__(self, api_client: client.ApiClient, name: str = ""):
        self.name = name
        self.api_client = api_client
        self.host = api_client.configuration.host
        self.core = client.CoreV1Api(api_client=api_client)
        self.rbac = client.RbacAuthorizationV1Api(api_client=api_client)
        self.batch = client.BatchV1Api(api_client=api_client)
        self.networking = client.NetworkingV1Api(api_client=api_client)
        self.custom = client.CustomObjectsApi(api_client=api_client)

    @classmethod
    def in_cluster(cls, name: str = "garden") -> "ClusterClientSet":
        """Client set for the cluster this process runs in (falls back to ~/.kube/config)."""
        try:
            config.load_incluster_config()
        except config.ConfigException:
            config.load_kube_config()
        return cls(client.ApiClient(), name=name)

    @classmethod
    def from_kubeconfig(cls, kubeconfig: dict, name: str = "") -> "ClusterClientSet":
        """Client set for a parsed kubeconfig, using its current context.

        The kubeconfig is written to a temp file for ``load_kube_config`` and
        unlinked right after loading.
        """
        tmp = tempfile.NamedTemporaryFile(delete=False, suffix=".yaml")
        try:
            tmp.write(yaml.safe_dump(kubeconfig).encode())
            tmp.flush()
            tmp.close()

            cfg = client.Configuration()
            config.load_kube_config(config_file=tmp.name, client_configuration=cfg)
        finally:
            try:
                os.unlink(tmp.name)
            except OSError:
                pass
        return cls(client.ApiClient(configuration=cfg), name=name)

    # -----------------------------------------------------------------------
    # Per-kind resource clients
    # -----------------------------------------------------------------------

    def service_accounts(self, namespace: str) -> ResourceClient:
        return ResourceClient(
            "ServiceAccount",
            self.core.read_namespaced_service_account,
            self.core.create_namespaced_service_account,
            self.core.patch_namespaced_service_account,
            namespace=namespace,
        )

    def services(self, namespace: str) -> ResourceClient:
        return ResourceClient(
            "Service",
            self.core.read_namespaced_service,
            self.core.create_namespaced_service,
            self.core.patch_namespaced_service,
            namespace=namespace,
        )

    def endpoints(self, namespace: str) -> ResourceClient:
        return ResourceClient(
            "Endpoints",
            self.core.read_namespaced_endpoints,
            self.core.create_namespaced_endpoints,
            self.core.patch_namespaced_endpoints,
            namespace=namespace,
        )

    def cluster_roles(self) -> ResourceClient:
        return ResourceClient(
            "ClusterRole",
            self.rbac.read_cluster_role,
            self.rbac.create_cluster_role,
            self.rbac.patch_cluster_role,
        )

    def cluster_role_bindings(self) -> ResourceClient:
        return ResourceClient(
            "ClusterRoleBinding",
            self.rbac.read_cluster_role_binding,
            self.rbac.create_cluster_role_binding,
            self.rbac.patch_cluster_role_binding,
        )

    def cron_jobs(self, namespace: str) -> ResourceClient:
        return ResourceClient(
            "CronJob",
            self.batch.read_namespaced_cron_job,
            self.batch.create_namespaced_cron_job,
            self.batch.patch_namespaced_cron_job,
            namespace=namespace,
        )

    def ingresses(self, namespace: str) -> ResourceClient:
        return ResourceClient(
            "Ingress",
            self.networking.read_namespaced_ingress,
            self.networking.create_namespaced_ingress,
            self.networking.patch_namespaced_ingress,
            namespace=namespace,
        )
