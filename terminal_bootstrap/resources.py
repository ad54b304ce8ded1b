"""
Manifest factories for the terminal bootstrap bundle.

Every factory returns a ``kubernetes.client`` model with ``api_version`` and
``kind`` filled in. Unset fields stay ``None`` and are dropped on
serialization, so a merge patch built from these bodies only touches the
fields we own.
"""
from kubernetes import client

MANAGED_BY_LABELS = {"app.kubernetes.io/managed-by": "terminal-bootstrap"}
RBAC_API_GROUP = "rbac.authorization.k8s.io"


def owner_references_for(owner) -> list[client.V1OwnerReference]:
    """Owner references naming ``owner`` as the parent of dependent objects.

    ``owner`` must be the live object returned by the API server: the uid is
    server-assigned and is never present on a desired-state body.
    """
    metadata = owner.metadata
    if metadata is None or not metadata.uid:
        raise ValueError("owner object has no metadata.uid, pass the live object returned by the API")
    return [
        client.V1OwnerReference(
            api_version=owner.api_version or "v1",
            kind=owner.kind or "ServiceAccount",
            name=metadata.name,
            uid=metadata.uid,
        )
    ]


def _metadata(name: str, namespace: str | None = None, owner_references=None, annotations=None):
    return client.V1ObjectMeta(
        name=name,
        namespace=namespace,
        labels=dict(MANAGED_BY_LABELS),
        annotations=dict(annotations) if annotations else None,
        owner_references=owner_references or None,
    )


def to_service_account_resource(name: str, namespace: str) -> client.V1ServiceAccount:
    return client.V1ServiceAccount(
        api_version="v1",
        kind="ServiceAccount",
        metadata=_metadata(name, namespace),
    )


def to_cluster_role_resource(name: str, rules: list[dict], owner_references=None) -> client.V1ClusterRole:
    return client.V1ClusterRole(
        api_version=f"{RBAC_API_GROUP}/v1",
        kind="ClusterRole",
        metadata=_metadata(name, owner_references=owner_references),
        rules=[
            client.V1PolicyRule(
                api_groups=r["apiGroups"],
                resources=r["resources"],
                verbs=r["verbs"],
            )
            for r in rules
        ],
    )


def to_cluster_role_binding_resource(
    name: str, role_name: str, sa_name: str, sa_namespace: str, owner_references=None
) -> client.V1ClusterRoleBinding:
    return client.V1ClusterRoleBinding(
        api_version=f"{RBAC_API_GROUP}/v1",
        kind="ClusterRoleBinding",
        metadata=_metadata(name, owner_references=owner_references),
        role_ref=client.V1RoleRef(api_group=RBAC_API_GROUP, kind="ClusterRole", name=role_name),
        subjects=[client.RbacV1Subject(kind="ServiceAccount", name=sa_name, namespace=sa_namespace)],
    )


def to_cron_job_resource(
    name: str,
    namespace: str,
    image: str,
    schedule: str,
    no_heartbeat_delete_seconds: int,
    service_account_name: str,
    owner_references=None,
) -> client.V1CronJob:
    """CronJob running the heartbeat cleanup container under a restricted profile."""
    container = client.V1Container(
        name=name,
        image=image,
        image_pull_policy="IfNotPresent",
        env=[client.V1EnvVar(name="NO_HEARTBEAT_DELETE_SECONDS", value=str(no_heartbeat_delete_seconds))],
        # readOnlyRootFilesystem only exists on the container-level context
        security_context=client.V1SecurityContext(
            read_only_root_filesystem=True,
            allow_privilege_escalation=False,
        ),
    )
    pod_spec = client.V1PodSpec(
        containers=[container],
        security_context=client.V1PodSecurityContext(run_as_user=1000, run_as_non_root=True),
        restart_policy="OnFailure",
        service_account_name=service_account_name,
    )
    return client.V1CronJob(
        api_version="batch/v1",
        kind="CronJob",
        metadata=_metadata(name, namespace, owner_references=owner_references),
        spec=client.V1CronJobSpec(
            concurrency_policy="Forbid",
            schedule=schedule,
            job_template=client.V1JobTemplateSpec(
                spec=client.V1JobSpec(template=client.V1PodTemplateSpec(spec=pod_spec)),
            ),
        ),
    )


def to_ingress_resource(
    name: str, namespace: str, host: str, service_name: str, annotations: dict, service_port: int = 443
) -> client.V1Ingress:
    return client.V1Ingress(
        api_version="networking.k8s.io/v1",
        kind="Ingress",
        metadata=_metadata(name, namespace, annotations=annotations),
        spec=client.V1IngressSpec(
            rules=[
                client.V1IngressRule(
                    host=host,
                    http=client.V1HTTPIngressRuleValue(paths=[
                        client.V1HTTPIngressPath(
                            path="/",
                            path_type="Prefix",
                            backend=client.V1IngressBackend(
                                service=client.V1IngressServiceBackend(
                                    name=service_name,
                                    port=client.V1ServiceBackendPort(number=service_port),
                                ),
                            ),
                        ),
                    ]),
                ),
            ],
            tls=[client.V1IngressTLS(hosts=[host], secret_name=f"{name}-tls")],
        ),
    )


def to_endpoints_resource(name: str, namespace: str, ip: str, port: int = 443) -> client.V1Endpoints:
    return client.V1Endpoints(
        api_version="v1",
        kind="Endpoints",
        metadata=_metadata(name, namespace),
        subsets=[
            client.V1EndpointSubset(
                addresses=[client.V1EndpointAddress(ip=ip)],
                ports=[client.CoreV1EndpointPort(port=port, protocol="TCP")],
            ),
        ],
    )


def to_service_resource(name: str, namespace: str, external_name: str | None = None, port: int = 443) -> client.V1Service:
    """Service on port 443; ``ExternalName`` when an external DNS name is given."""
    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=_metadata(name, namespace),
        spec=client.V1ServiceSpec(
            ports=[client.V1ServicePort(port=port, protocol="TCP", target_port=port)],
            type="ExternalName" if external_name else None,
            external_name=external_name or None,
        ),
    )
