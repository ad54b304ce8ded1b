"""
Terminal bootstrap pipeline.

Creates / updates, on every seed and on the garden cluster, the objects the
web terminal needs:

* cleanup: ServiceAccount, ClusterRole, ClusterRoleBinding and a CronJob that
  deletes terminal service accounts whose heartbeat stopped,
* attach: a ClusterRole granting ``pods/attach``,
* exposure (seeds only): an Ingress with a browser-trusted certificate in
  front of the seed's kube-apiserver.

Cleanup and attach objects carry owner references to the cleanup
ServiceAccount, so deleting the ServiceAccount cascades. Exposure objects have
no owner references.
"""
import ipaddress
import logging
from contextlib import contextmanager
from urllib.parse import urlparse

from terminal_bootstrap import resources
from terminal_bootstrap.config import TerminalConfig
from terminal_bootstrap.garden import GARDEN_NAMESPACE, GardenClient, shoot_seed_name
from terminal_bootstrap.k8s import ClusterClientSet, upsert_resource
from terminal_bootstrap.models import Seed

logger = logging.getLogger("terminal-bootstrap")

TERMINAL_CLEANUP = "dashboard-terminal-cleanup"
TERMINAL_KUBE_APISERVER = "dashboard-terminal-kube-apiserver"
KUBE_APISERVER_SERVICE = "kube-apiserver"

CLUSTER_ROLE_NAME_CLEANUP = "garden.sapcloud.io:dashboard-terminal-cleanup"
CLUSTER_ROLE_BINDING_NAME_CLEANUP = CLUSTER_ROLE_NAME_CLEANUP
CLUSTER_ROLE_NAME_ATTACH = "garden.sapcloud.io:dashboard-terminal-attach"
SERVICEACCOUNT_NAME_CLEANUP = TERMINAL_CLEANUP
CRONJOB_NAME_CLEANUP = TERMINAL_CLEANUP

CLEANUP_RULES = [
    {"apiGroups": [""], "resources": ["serviceaccounts"], "verbs": ["list", "delete"]},
]
ATTACH_RULES = [
    {"apiGroups": [""], "resources": ["pods/attach"], "verbs": ["get"]},
]


class BootstrapError(Exception):
    """A bootstrap step failed; ``__cause__`` holds the original error."""

    def __init__(self, cluster: str, step: str, cause: BaseException):
        super().__init__(f"bootstrap of {cluster} failed at step '{step}': {type(cause).__name__}: {cause}")
        self.cluster = cluster
        self.step = step
        self.cause = cause


@contextmanager
def _step(cluster: str, step: str):
    logger.debug(f"▶️  [{cluster}] {step}")
    try:
        yield
    except BootstrapError:
        raise
    except Exception as e:
        raise BootstrapError(cluster, step, e) from e


# ---------------------------------------------------------------------------
# Cleanup + attach (seeds and garden)
# ---------------------------------------------------------------------------

def bootstrap_cleanup_resources(clients: ClusterClientSet, config: TerminalConfig) -> list:
    """Upsert the cleanup bundle and return the owner references derived from its ServiceAccount."""
    sa = upsert_resource(
        clients.service_accounts(GARDEN_NAMESPACE),
        SERVICEACCOUNT_NAME_CLEANUP,
        resources.to_service_account_resource(SERVICEACCOUNT_NAME_CLEANUP, GARDEN_NAMESPACE),
    )
    sa_name = sa.metadata.name
    sa_namespace = sa.metadata.namespace or GARDEN_NAMESPACE
    owner_references = resources.owner_references_for(sa)

    upsert_resource(
        clients.cluster_roles(),
        CLUSTER_ROLE_NAME_CLEANUP,
        resources.to_cluster_role_resource(CLUSTER_ROLE_NAME_CLEANUP, CLEANUP_RULES, owner_references),
    )
    upsert_resource(
        clients.cluster_role_bindings(),
        CLUSTER_ROLE_BINDING_NAME_CLEANUP,
        resources.to_cluster_role_binding_resource(
            CLUSTER_ROLE_BINDING_NAME_CLEANUP,
            role_name=CLUSTER_ROLE_NAME_CLEANUP,
            sa_name=sa_name,
            sa_namespace=sa_namespace,
            owner_references=owner_references,
        ),
    )
    upsert_resource(
        clients.cron_jobs(GARDEN_NAMESPACE),
        CRONJOB_NAME_CLEANUP,
        resources.to_cron_job_resource(
            CRONJOB_NAME_CLEANUP,
            GARDEN_NAMESPACE,
            image=config.cleanup_image,
            schedule=config.cleanup_schedule,
            no_heartbeat_delete_seconds=config.no_heartbeat_delete_seconds,
            service_account_name=sa_name,
            owner_references=owner_references,
        ),
    )
    logger.info(f"🧹 [{clients.name}] cleanup resources in place (sa={sa_namespace}/{sa_name})")
    return owner_references


def bootstrap_attach_resources(clients: ClusterClientSet, owner_references: list):
    role = upsert_resource(
        clients.cluster_roles(),
        CLUSTER_ROLE_NAME_ATTACH,
        resources.to_cluster_role_resource(CLUSTER_ROLE_NAME_ATTACH, ATTACH_RULES, owner_references),
    )
    logger.info(f"🛡️  [{clients.name}] attach ClusterRole in place")
    return role


def bootstrap_garden(clients: ClusterClientSet, config: TerminalConfig) -> None:
    """Cleanup + attach on the garden cluster. Raises ``BootstrapError`` on failure."""
    logger.info(f"🌱 bootstrapping garden cluster {clients.name}")
    with _step(clients.name, "cleanup"):
        owner_references = bootstrap_cleanup_resources(clients, config)
    with _step(clients.name, "attach"):
        bootstrap_attach_resources(clients, owner_references)
    logger.info(f"✅ garden cluster {clients.name} bootstrapped")


# ---------------------------------------------------------------------------
# Exposure
# ---------------------------------------------------------------------------

def is_ip_address(hostname: str) -> bool:
    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return True


def bootstrap_apiserver_ingress(
    clients: ClusterClientSet,
    namespace: str,
    host: str,
    service_name: str,
    annotations: dict,
    name: str = TERMINAL_KUBE_APISERVER,
):
    return upsert_resource(
        clients.ingresses(namespace),
        name,
        resources.to_ingress_resource(name, namespace, host=host, service_name=service_name, annotations=annotations),
    )


def bootstrap_ingress_and_headless_service(
    clients: ClusterClientSet,
    namespace: str,
    apiserver_hostname: str,
    ingress_domain: str,
    annotations: dict,
    name: str = TERMINAL_KUBE_APISERVER,
):
    """Service (+ Endpoints for literal addresses) and Ingress for a cluster exposing its own API server."""
    if is_ip_address(apiserver_hostname):
        upsert_resource(
            clients.endpoints(namespace),
            name,
            resources.to_endpoints_resource(name, namespace, ip=apiserver_hostname),
        )
        service = upsert_resource(
            clients.services(namespace), name, resources.to_service_resource(name, namespace),
        )
    else:
        service = upsert_resource(
            clients.services(namespace),
            name,
            resources.to_service_resource(name, namespace, external_name=apiserver_hostname),
        )

    host = f"api.{ingress_domain}"
    bootstrap_apiserver_ingress(
        clients, namespace, host=host, service_name=service.metadata.name, annotations=annotations, name=name,
    )
    logger.info(f"🌐 [{clients.name}] kube-apiserver exposed at {host} (backend={apiserver_hostname})")


class BootstrapPipeline:
    """Bootstraps one seed: credentials, cleanup, attach, exposure.

    Blocking; meant to run on an executor thread. Each call builds its own
    client sets, nothing is shared between concurrent runs.
    """

    def __init__(self, config: TerminalConfig, garden: GardenClient, clients_for=ClusterClientSet.from_kubeconfig):
        self.config = config
        self.garden = garden
        self.clients_for = clients_for

    def run(self, seed: Seed) -> None:
        name = seed.name
        logger.info(f"🔧 [{name}] creating / updating terminal resources")

        with _step(name, "credentials"):
            kubeconfig = self.garden.get_seed_kubeconfig(seed, wait_until_available=True)
        with _step(name, "clients"):
            seed_clients = self.clients_for(kubeconfig, name=name)
        with _step(name, "cleanup"):
            owner_references = bootstrap_cleanup_resources(seed_clients, self.config)
        with _step(name, "attach"):
            bootstrap_attach_resources(seed_clients, owner_references)

        # expose the kube-apiserver with a browser-trusted certificate
        with _step(name, "exposure"):
            if seed.is_soil:
                self._expose_soil(seed, seed_clients)
            else:
                self._expose_seed_on_soil(seed)
        logger.info(f"✅ [{name}] terminal resources bootstrapped")

    def _expose_soil(self, soil: Seed, soil_clients: ClusterClientSet) -> None:
        hostname = urlparse(soil_clients.host).hostname
        if not hostname:
            raise ValueError(f"could not determine API server host of soil {soil.name} from {soil_clients.host!r}")
        bootstrap_ingress_and_headless_service(
            soil_clients,
            GARDEN_NAMESPACE,
            apiserver_hostname=hostname,
            ingress_domain=self.garden.seed_ingress_domain(soil),
            annotations=self.config.ingress_annotations,
        )

    def _expose_seed_on_soil(self, seed: Seed) -> None:
        shoot = self.garden.read_shoot(GARDEN_NAMESPACE, seed.name)
        soil_name = shoot_seed_name(shoot)
        if not soil_name:
            raise ValueError(f"could not determine soil hosting seed {seed.name}")
        soil = self.garden.read_seed(soil_name)

        namespace = (shoot.get("status") or {}).get("technicalID")
        if not namespace:
            raise ValueError(f"could not get namespace for seed {seed.name} on soil {soil_name}")

        soil_clients = self.clients_for(self.garden.get_seed_kubeconfig(soil), name=soil_name)
        host = f"api.{self.garden.shoot_ingress_domain(shoot, soil)}"
        bootstrap_apiserver_ingress(
            soil_clients,
            namespace,
            host=host,
            service_name=KUBE_APISERVER_SERVICE,
            annotations=self.config.ingress_annotations,
        )
        logger.info(f"🌐 [{seed.name}] kube-apiserver exposed at {host} via soil={soil_name} ns={namespace}")
