"""
Pytest configuration for the PCA manager tests.
"""

from __future__ import annotations

from typing import Any

import pytest


def make_component(
    release_name: str,
    *,
    chart_name: str | None = None,
    namespace: str = "default",
    set_options: list[dict[str, str]] | None = None,
    container_repos: list[str] | None = None,
    service_accounts: list[str] | None = None,
) -> dict[str, Any]:
    """Build a component in its camelCase wire form."""
    return {
        "releaseName": release_name,
        "chartName": chart_name or f"charts/{release_name}",
        "namespace": namespace,
        "setOptions": set_options or [],
        "containerRepos": container_repos or [],
        "serviceAccounts": service_accounts or [],
    }


@pytest.fixture
def installed_license() -> dict[str, Any]:
    """License describing two installed components."""
    return {
        "components": [
            make_component("a", chart_name="ca", namespace="n1"),
            make_component("b", chart_name="cb", namespace="n1"),
        ]
    }


@pytest.fixture
def desired_license() -> dict[str, Any]:
    """License that keeps 'a', drops 'b' and adds 'c' with a private repo."""
    return {
        "components": [
            make_component("a", chart_name="ca", namespace="n1"),
            make_component(
                "c",
                chart_name="cc",
                namespace="n2",
                set_options=[{"key": "replicas", "value": "2"}],
                container_repos=["r1"],
                service_accounts=["s1"],
            ),
        ]
    }
