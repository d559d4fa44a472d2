# k8s/deployment_controller.py

import logging
import urllib3
from kubernetes import client, config as k8s_config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

HTTP_CONFLICT = 409


class ActuationError(Exception):
    """Applying a replica count through the orchestration API failed."""


def init_k8s_client():
    """
    Build the AppsV1 API client, preferring in-cluster credentials.

    Raises:
        RuntimeError: If neither in-cluster nor local kubeconfig is usable
    """
    try:
        k8s_config.load_incluster_config()
        logging.info("Loaded in-cluster config")
    except ConfigException:
        try:
            k8s_config.load_kube_config()
            logging.info("Loaded local kubeconfig")
        except (ConfigException, OSError) as e:
            raise RuntimeError(f"Cannot load Kubernetes configuration: {e}") from e
    return client.AppsV1Api()


def get_current_replicas(apps_api, namespace, deployment, default):
    """
    Read the live replica count of the deployment.

    Falls back to `default` when the read fails or the field is unset;
    only used once at startup.
    """
    try:
        dep = apps_api.read_namespaced_deployment(deployment, namespace)
    except ApiException as e:
        logging.warning(
            f"Cannot read deployment {namespace}/{deployment} ({e.status} {e.reason}), "
            f"starting from {default} replicas"
        )
        return default
    except urllib3.exceptions.HTTPError as e:
        logging.warning(f"Cannot reach API server ({e}), starting from {default} replicas")
        return default

    if dep.spec is None or dep.spec.replicas is None:
        logging.warning(f"Deployment {namespace}/{deployment} has no replica count, using {default}")
        return default
    return dep.spec.replicas


class DeploymentActuator:
    """
    Set spec.replicas on a Deployment.

    The object is read, modified and written back with replace, so the
    write carries the resourceVersion that was read. A concurrent change
    makes the API answer 409 Conflict; the read-modify-write is then
    retried up to `max_retries` attempts in total.
    """

    def __init__(self, apps_api, max_retries=3):
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        self.apps_api = apps_api
        self.max_retries = max_retries

    def set_replicas(self, namespace, deployment, target):
        for attempt in range(1, self.max_retries + 1):
            try:
                dep = self.apps_api.read_namespaced_deployment(deployment, namespace)
            except ApiException as e:
                raise ActuationError(
                    f"Failed to read deployment {namespace}/{deployment}: {e.status} {e.reason}"
                ) from e
            except urllib3.exceptions.HTTPError as e:
                raise ActuationError(f"Cannot reach API server: {e}") from e

            if dep.spec is None:
                raise ActuationError(f"Deployment {namespace}/{deployment} has no spec")

            current = dep.spec.replicas
            dep.spec.replicas = target

            try:
                self.apps_api.replace_namespaced_deployment(deployment, namespace, dep)
            except ApiException as e:
                if e.status == HTTP_CONFLICT and attempt < self.max_retries:
                    logging.warning(
                        f"Conflict updating {namespace}/{deployment} "
                        f"(attempt {attempt}/{self.max_retries}), retrying"
                    )
                    continue
                if e.status == HTTP_CONFLICT:
                    logging.error(f"Conflict retries exhausted for {namespace}/{deployment}")
                raise ActuationError(
                    f"Failed to scale {namespace}/{deployment} to {target}: {e.status} {e.reason}"
                ) from e
            except urllib3.exceptions.HTTPError as e:
                raise ActuationError(f"Cannot reach API server: {e}") from e

            logging.info(f"Deployment {namespace}/{deployment} replicas {current} → {target}")
            return


class DryRunActuator:
    """Log the scaling action without touching the cluster."""

    def set_replicas(self, namespace, deployment, target):
        logging.info(f"[DRY RUN] Would scale {namespace}/{deployment} to {target} replicas")


def build_actuator(config, apps_api):
    """Pick the actuator for the configured mode."""
    if config.dry_run:
        logging.info("DRY_RUN enabled, scaling actions will only be logged")
        return DryRunActuator()
    return DeploymentActuator(apps_api, max_retries=config.actuation_retries)
