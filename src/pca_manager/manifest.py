"""
Update manifest generation.

Compares the installed component list with a desired one, keyed by release
name, and produces the install, uninstall and registry credential actions an
update job has to perform. All functions here are pure.
"""

from __future__ import annotations

from collections.abc import Sequence

from pca_manager.models import (
    CredentialTarget,
    InstallRecord,
    RepoRecord,
    SoftwareComponent,
    UpdateManifest,
)

SECRET_PREFIX = "pca-repocred"


def secret_name(service_account: str, namespace: str) -> str:
    """Return the name of the pull secret for an account in a namespace."""
    return f"{SECRET_PREFIX}-{service_account}-{namespace}"


def build_uninstall_records(
    old_components: Sequence[SoftwareComponent],
    new_components: Sequence[SoftwareComponent],
) -> list[str]:
    """Release names present in the old list but not in the new one, in old order."""
    kept = {component.release_name for component in new_components}
    return [
        component.release_name
        for component in old_components
        if component.release_name not in kept
    ]


def build_install_records(
    new_components: Sequence[SoftwareComponent],
) -> list[InstallRecord]:
    """
    Every component of the new list, in order.

    Components that are already installed are included as well, so that
    changed options are always re-applied.
    """
    return [
        InstallRecord(
            release_name=component.release_name,
            chart_name=component.chart_name,
            namespace=component.namespace,
            set_options=[option.model_copy() for option in component.set_options],
        )
        for component in new_components
    ]


def build_private_container_repos(
    new_components: Sequence[SoftwareComponent],
) -> list[RepoRecord]:
    """
    Group credential targets by container repo.

    Every (repo, service account) pair of each component yields a target in
    the component's namespace. Repos appear in first-seen order; targets keep
    traversal order and are not de-duplicated.
    """
    targets_by_repo: dict[str, list[CredentialTarget]] = {}

    for component in new_components:
        for repo_uri in component.container_repos:
            for service_account in component.service_accounts:
                targets_by_repo.setdefault(repo_uri, []).append(
                    CredentialTarget(
                        service_account=service_account,
                        namespace=component.namespace,
                        secret_name=secret_name(service_account, component.namespace),
                    )
                )

    return [
        RepoRecord(repo_uri=repo_uri, targets=targets)
        for repo_uri, targets in targets_by_repo.items()
    ]


def diff_components(
    old_components: Sequence[SoftwareComponent],
    new_components: Sequence[SoftwareComponent],
) -> UpdateManifest:
    """
    Compute the update manifest that moves ``old_components`` to ``new_components``.

    Args:
        old_components: Currently installed components.
        new_components: Desired components.

    Returns:
        The UpdateManifest for the transition.
    """
    return UpdateManifest(
        install_records=build_install_records(new_components),
        uninstall_records=build_uninstall_records(old_components, new_components),
        private_container_repos=build_private_container_repos(new_components),
    )
