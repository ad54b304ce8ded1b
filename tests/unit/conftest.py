"""
Pytest configuration for unit tests.

Provides an enabled config, the seeds of a small soil/seed topology and the
matching fake clusters and garden.
"""
import os

import pytest

# main.py loads its config at import time; keep it away from any real file
os.environ.setdefault("TERMINAL_BOOTSTRAP_CONFIG", "/nonexistent/terminal-bootstrap.yaml")

from terminal_bootstrap.config import TerminalConfig
from terminal_bootstrap.models import Seed

from tests.fakes import FakeCluster, FakeGarden

CLEANUP_IMAGE = "eu.gcr.io/gardener-project/gardener/ops-toolbelt:0.1.0"
INGRESS_ANNOTATIONS = {"cert.gardener.cloud/purpose": "managed"}


def make_seed(name, role="", ingress_domain="", annotations=None):
    body = {
        "metadata": {
            "name": name,
            "labels": {"garden.sapcloud.io/role": role} if role else {},
            "annotations": annotations or {},
        },
        "spec": {
            "secretRef": {"name": f"seed-{name}", "namespace": "garden"},
            "ingressDomain": ingress_domain,
        },
    }
    return Seed.from_resource(body)


@pytest.fixture
def config():
    return TerminalConfig.from_dict({
        "terminal": {
            "bootstrap": {
                "disabled": False,
                "apiserverIngress": {"annotations": INGRESS_ANNOTATIONS},
            },
            "cleanup": {"image": CLEANUP_IMAGE},
        },
    })


@pytest.fixture
def journal():
    return []


@pytest.fixture
def soil():
    return make_seed("soil-aws", role="soil", ingress_domain="ingress.soil-aws.example.com")


@pytest.fixture
def seed():
    return make_seed("aws-eu1", ingress_domain="ingress.aws-eu1.example.com")


@pytest.fixture
def clusters(journal):
    return {
        "soil-aws": FakeCluster("soil-aws", host="https://10.250.0.1:443", journal=journal),
        "aws-eu1": FakeCluster("aws-eu1", host="https://api.aws-eu1.example.com", journal=journal),
    }


@pytest.fixture
def garden(soil, seed):
    shoot = {
        "metadata": {"name": "aws-eu1", "namespace": "garden"},
        "spec": {"seedName": "soil-aws"},
        "status": {"technicalID": "shoot--garden--aws-eu1"},
    }
    return FakeGarden(
        seeds=[soil, seed],
        shoots={("garden", "aws-eu1"): shoot},
        shoot_domains={("aws-eu1", "soil-aws"): "ingress.soil-aws.example.com"},
    )
