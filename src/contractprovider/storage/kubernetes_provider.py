# Copyright (c) Contract-Provider Contributors. All rights reserved.
# Licensed under the MIT License.
"""
Kubernetes Secret Contract Store.

Stores the contract set in an Opaque Secret whose data keys are contract
ids and whose values are the certificates. Writes replace the Secret
wholesale and carry the resourceVersion seen by the last read, so a
concurrent modification surfaces as a CONFLICT instead of being
overwritten.
"""

import asyncio
import base64
import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from ..exceptions import StoreError, StoreErrorKind
from ..models import Contract, ContractSet
from .provider import AbstractContractStore, StorageHandle

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "default"
DOWNWARD_API_ENV = "POD_NAMESPACE"
DOWNWARD_API_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"

ANNOTATION_PREFIX = "contractprovider.wirepact.ch"
TRUST_ZONE_ANNOTATION = f"{ANNOTATION_PREFIX}/trust-zone"
REVISION_ANNOTATION = f"{ANNOTATION_PREFIX}/revision"

_DATA_KEY = re.compile(r"^[-._a-zA-Z0-9]+$")


def current_namespace() -> str:
    """Resolve the namespace to store the Secret in.

    Order: current kubeconfig context, ``POD_NAMESPACE``, the service
    account namespace file, then ``default``.
    """
    try:
        _, active = config.list_kube_config_contexts()
        namespace = (active or {}).get("context", {}).get("namespace")
        if namespace:
            return namespace
    except (ConfigException, OSError):
        pass

    namespace = os.environ.get(DOWNWARD_API_ENV)
    if namespace:
        return namespace

    path = Path(DOWNWARD_API_FILE)
    if path.exists():
        return path.read_text().strip()

    return DEFAULT_NAMESPACE


def load_client_configuration() -> None:
    """Load in-cluster configuration, falling back to the local kubeconfig."""
    try:
        config.load_incluster_config()
        logger.debug("Using in-cluster Kubernetes configuration")
    except ConfigException:
        config.load_kube_config()
        logger.debug("Using local kubeconfig")


def _api_error(action: str, exc: ApiException) -> StoreError:
    if exc.status in (401, 403):
        kind = StoreErrorKind.FORBIDDEN
    elif exc.status == 409:
        kind = StoreErrorKind.CONFLICT
    elif exc.status == 422:
        kind = StoreErrorKind.INVALID
    else:
        kind = StoreErrorKind.UNREACHABLE
    return StoreError(kind, f"Could not {action} secret: {exc.status} {exc.reason}")


class _SecretNotFound(Exception):
    pass


class KubernetesSecretContractStore(AbstractContractStore):
    """
    Contract store backed by a Kubernetes Secret.

    The Kubernetes client is blocking; calls run in a worker thread.
    """

    def __init__(
        self,
        secret_name: str,
        namespace: Optional[str] = None,
        api: Optional[client.CoreV1Api] = None,
    ):
        self.secret_name = secret_name
        self.namespace = namespace
        self._api = api
        self._resource_version: Optional[str] = None

    @property
    def handle(self) -> StorageHandle:
        return StorageHandle(
            backend="kubernetes", location=self.secret_name, namespace=self.namespace
        )

    async def connect(self) -> None:
        """Load the client configuration and resolve the namespace."""
        if self.namespace is None:
            self.namespace = await asyncio.to_thread(current_namespace)
        if self._api is None:
            try:
                await asyncio.to_thread(load_client_configuration)
            except (ConfigException, OSError) as exc:
                raise StoreError(
                    StoreErrorKind.UNREACHABLE, f"No Kubernetes configuration available: {exc}"
                ) from exc
            self._api = client.CoreV1Api()
        logger.debug("Using secret %s in namespace %s", self.secret_name, self.namespace)

    async def disconnect(self) -> None:
        if self._api is not None:
            await asyncio.to_thread(self._api.api_client.close)

    @property
    def api(self) -> client.CoreV1Api:
        if self._api is None:
            raise StoreError(StoreErrorKind.UNREACHABLE, "Kubernetes store is not connected")
        return self._api

    async def read(self) -> Optional[ContractSet]:
        """Read the Secret and remember its resourceVersion for the next write."""
        api = self.api
        try:
            secret = await self._call(
                "read", api.read_namespaced_secret, self.secret_name, self.namespace
            )
        except _SecretNotFound:
            self._resource_version = None
            return None

        self._resource_version = secret.metadata.resource_version
        annotations = secret.metadata.annotations or {}
        trust_zone = annotations.get(TRUST_ZONE_ANNOTATION, "")
        try:
            contracts = [
                Contract(id=key, certificate=base64.b64decode(value), trust_zone=trust_zone)
                for key, value in (secret.data or {}).items()
            ]
            return ContractSet(contracts=contracts, revision=annotations.get(REVISION_ANNOTATION))
        except ValueError as exc:
            logger.warning("Ignoring unreadable secret %s/%s: %s", self.namespace, self.secret_name, exc)
            return None

    async def write(self, contract_set: ContractSet) -> None:
        """Create the Secret, or replace it wholesale if it already exists."""
        invalid = [cid for cid in contract_set.ids() if not _DATA_KEY.match(cid)]
        if invalid:
            raise StoreError(
                StoreErrorKind.INVALID,
                f"Contract ids are not valid secret keys: {', '.join(invalid)}",
            )

        body = self._build_secret(contract_set)
        if self._resource_version is None:
            result = await self._call(
                "create", self.api.create_namespaced_secret, self.namespace, body
            )
            logger.info("Created secret %s/%s", self.namespace, self.secret_name)
        else:
            result = await self._call(
                "replace", self.api.replace_namespaced_secret, self.secret_name, self.namespace, body
            )
            logger.debug("Replaced secret %s/%s", self.namespace, self.secret_name)
        self._resource_version = result.metadata.resource_version

    def _build_secret(self, contract_set: ContractSet) -> client.V1Secret:
        zones = {c.trust_zone for c in contract_set.contracts if c.trust_zone}
        annotations = {}
        if len(zones) == 1:
            annotations[TRUST_ZONE_ANNOTATION] = zones.pop()
        if contract_set.revision is not None:
            annotations[REVISION_ANNOTATION] = contract_set.revision

        return client.V1Secret(
            api_version="v1",
            kind="Secret",
            type="Opaque",
            metadata=client.V1ObjectMeta(
                name=self.secret_name,
                namespace=self.namespace,
                annotations=annotations or None,
                resource_version=self._resource_version,
            ),
            data={
                c.id: base64.b64encode(c.certificate).decode()
                for c in contract_set.sorted_contracts()
            },
        )

    async def _call(self, action: str, func, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except ApiException as exc:
            if action == "read" and exc.status == 404:
                raise _SecretNotFound() from exc
            raise _api_error(action, exc) from exc
        except urllib3.exceptions.HTTPError as exc:
            raise StoreError(
                StoreErrorKind.UNREACHABLE, f"Kubernetes API unreachable on {action}: {exc}"
            ) from exc
