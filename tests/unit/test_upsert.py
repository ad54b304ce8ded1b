"""
Unit tests for the create-or-update primitive and ResourceClient scoping.
"""
from unittest.mock import Mock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from terminal_bootstrap import resources
from terminal_bootstrap.k8s import MERGE_PATCH, ResourceClient, upsert_resource

from tests.fakes import FakeCluster


def _mock_client(namespace="garden"):
    read, create, patch = Mock(), Mock(), Mock()
    return ResourceClient("ServiceAccount", read, create, patch, namespace=namespace), read, create, patch


class TestResourceClient:

    def test_namespaced_calls_pass_namespace(self):
        rc, read, create, patch = _mock_client(namespace="garden")
        body = resources.to_service_account_resource("sa", "garden")

        rc.get("sa")
        rc.create(body)
        rc.merge_patch("sa", body)

        read.assert_called_once_with(name="sa", namespace="garden")
        create.assert_called_once_with(namespace="garden", body=body)
        patch.assert_called_once_with(name="sa", namespace="garden", body=body, _content_type=MERGE_PATCH)

    def test_cluster_scoped_calls_have_no_namespace(self):
        rc, read, create, patch = _mock_client(namespace=None)
        rc.get("role")
        rc.merge_patch("role", {"rules": []})

        read.assert_called_once_with(name="role")
        assert "namespace" not in patch.call_args.kwargs
        assert patch.call_args.kwargs["_content_type"] == "application/merge-patch+json"


class TestUpsertResource:

    def test_missing_object_is_created(self):
        rc, read, create, patch = _mock_client()
        read.side_effect = ApiException(status=404, reason="Not Found")
        body = resources.to_service_account_resource("sa", "garden")

        result = upsert_resource(rc, "sa", body)

        create.assert_called_once_with(namespace="garden", body=body)
        patch.assert_not_called()
        assert result is create.return_value

    def test_existing_object_is_merge_patched(self):
        rc, read, create, patch = _mock_client()
        body = resources.to_service_account_resource("sa", "garden")

        result = upsert_resource(rc, "sa", body)

        patch.assert_called_once_with(name="sa", namespace="garden", body=body, _content_type=MERGE_PATCH)
        create.assert_not_called()
        assert result is patch.return_value

    @pytest.mark.parametrize("status", [401, 403, 500])
    def test_other_read_errors_propagate_without_create(self, status):
        rc, read, create, patch = _mock_client()
        read.side_effect = ApiException(status=status, reason="boom")

        with pytest.raises(ApiException) as exc:
            upsert_resource(rc, "sa", resources.to_service_account_resource("sa", "garden"))

        assert exc.value.status == status
        create.assert_not_called()
        patch.assert_not_called()

    def test_network_errors_propagate(self):
        rc, read, create, patch = _mock_client()
        read.side_effect = ConnectionError("connection refused")

        with pytest.raises(ConnectionError):
            upsert_resource(rc, "sa", resources.to_service_account_resource("sa", "garden"))
        create.assert_not_called()

    def test_patch_errors_propagate(self):
        rc, read, create, patch = _mock_client()
        patch.side_effect = ApiException(status=422, reason="Invalid")

        with pytest.raises(ApiException):
            upsert_resource(rc, "sa", resources.to_service_account_resource("sa", "garden"))
        create.assert_not_called()


class TestUpsertAgainstFakeCluster:

    def test_second_upsert_with_same_body_leaves_state_unchanged(self):
        cluster = FakeCluster("seed")
        body = resources.to_cluster_role_resource("role", [
            {"apiGroups": [""], "resources": ["pods/attach"], "verbs": ["get"]},
        ])

        upsert_resource(cluster.cluster_roles(), "role", body)
        first = cluster.get("ClusterRole", "role")
        upsert_resource(cluster.cluster_roles(), "role", body)

        assert cluster.get("ClusterRole", "role") == first
        assert [c[1] for c in cluster.calls()] == ["get", "create", "get", "patch"]

    def test_merge_patch_leaves_unrelated_live_fields(self):
        cluster = FakeCluster("seed")
        upsert_resource(
            cluster.service_accounts("garden"), "sa", resources.to_service_account_resource("sa", "garden"),
        )
        # fields set by someone else on the live object
        cluster.objects[("ServiceAccount", "garden", "sa")]["secrets"] = [{"name": "sa-token-abcde"}]
        cluster.objects[("ServiceAccount", "garden", "sa")]["metadata"]["annotations"] = {"foo": "bar"}

        upsert_resource(
            cluster.service_accounts("garden"), "sa", resources.to_service_account_resource("sa", "garden"),
        )

        live = cluster.get("ServiceAccount", "sa", namespace="garden")
        assert live["secrets"] == [{"name": "sa-token-abcde"}]
        assert live["metadata"]["annotations"] == {"foo": "bar"}
        assert live["metadata"]["labels"] == resources.MANAGED_BY_LABELS

    def test_upsert_returns_live_object_with_server_uid(self):
        cluster = FakeCluster("seed")
        sa = upsert_resource(
            cluster.service_accounts("garden"), "sa", resources.to_service_account_resource("sa", "garden"),
        )
        assert isinstance(sa, client.V1ServiceAccount)
        assert sa.metadata.uid == cluster.uid("ServiceAccount", "sa", namespace="garden")
