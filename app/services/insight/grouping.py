"""Partition deployments by owning application and project."""

from __future__ import annotations

from typing import Iterable

from app.services.insight.records import DeploymentRecord


def group_deployments(
    deployments: Iterable[DeploymentRecord],
) -> tuple[dict[str, list[DeploymentRecord]], dict[str, list[DeploymentRecord]]]:
    """Return `(by_application_id, by_project_id)`, each bucket in input order."""
    by_application: dict[str, list[DeploymentRecord]] = {}
    by_project: dict[str, list[DeploymentRecord]] = {}
    for deployment in deployments:
        by_application.setdefault(deployment.application_id, []).append(deployment)
        by_project.setdefault(deployment.project_id, []).append(deployment)
    return by_application, by_project
