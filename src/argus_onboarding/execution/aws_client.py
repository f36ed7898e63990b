"""AWS client factory and the read-only probe used by the validators."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, WaiterError

from argus_onboarding.config import Settings, load_settings

logger = logging.getLogger(__name__)

ClientCacheKey = tuple[str, str, str]

_CLIENT_CACHE: dict[ClientCacheKey, object] = {}
_CLIENT_CACHE_LOCK = threading.Lock()


class AwsProbeError(RuntimeError):
    """Raised when an AWS API call made by the probe fails."""

    def __init__(self, service: str, operation: str, code: str, message: str) -> None:
        super().__init__(f"{service}:{operation} failed ({code}): {message}")
        self.service = service
        self.operation = operation
        self.code = code


def _get_cached_client(key: ClientCacheKey, build_client: Callable[[], object]) -> object:
    with _CLIENT_CACHE_LOCK:
        client = _CLIENT_CACHE.get(key)
        if client is None:
            client = build_client()
            _CLIENT_CACHE[key] = client
        return client


def _get_service_config(settings: Settings) -> Config:
    return Config(
        read_timeout=settings.aws.sdk_timeout_seconds,
        connect_timeout=settings.aws.sdk_timeout_seconds,
        retries={"max_attempts": settings.aws.max_retries + 1, "mode": "standard"},
    )


def get_client(service: str, region: str | None, profile: str | None = None):
    settings = load_settings()
    key = (
        service,
        region or settings.aws.default_region or "",
        profile or settings.aws.default_profile or "",
    )
    return _get_cached_client(
        key,
        lambda: _create_client(service, region, profile, settings),
    )


def _create_client(service: str, region: str | None, profile: str | None, settings: Settings):
    session = boto3.Session(
        profile_name=profile or settings.aws.default_profile,
        region_name=region or settings.aws.default_region,
    )
    return session.client(service, config=_get_service_config(settings))


def _error_code(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        return str(exc.response.get("Error", {}).get("Code", "ClientError"))
    return type(exc).__name__


class AwsProbe:
    """Narrow, read-only view of the AWS APIs the onboarding flow needs."""

    def __init__(self, profile: str | None = None) -> None:
        self._profile = profile

    def _client(self, service: str, region: str | None):
        # session setup fails for unknown profiles and bad config files
        try:
            return get_client(service, region, self._profile)
        except BotoCoreError as exc:
            logger.debug("Could not create %s client for %s: %s", service, region, exc)
            raise AwsProbeError(service, "create_client", _error_code(exc), str(exc)) from exc

    def call(
        self,
        service: str,
        operation: str,
        region: str | None = None,
        **params: object,
    ) -> dict[str, object]:
        client = self._client(service, region)
        try:
            response = getattr(client, operation)(**params)
        except (ClientError, BotoCoreError) as exc:
            logger.debug("%s:%s in %s failed: %s", service, operation, region, exc)
            raise AwsProbeError(service, operation, _error_code(exc), str(exc)) from exc
        return response if isinstance(response, dict) else {"result": response}

    def caller_identity(self) -> dict[str, str]:
        response = self.call("sts", "get_caller_identity")
        return {
            "account": str(response.get("Account", "")),
            "arn": str(response.get("Arn", "")),
            "user_id": str(response.get("UserId", "")),
        }

    def configured_region(self) -> str | None:
        """Region from the active profile or environment, if any."""
        settings = load_settings()
        if settings.aws.default_region:
            return settings.aws.default_region
        try:
            session = boto3.Session(profile_name=self._profile or settings.aws.default_profile)
        except BotoCoreError as exc:
            logger.debug("Could not build boto3 session: %s", exc)
            return None
        return session.region_name

    def vpc_count(self, region: str) -> int:
        response = self.call("ec2", "describe_vpcs", region)
        return len(response.get("Vpcs", []))

    def default_vpc_id(self, region: str) -> str | None:
        response = self.call(
            "ec2",
            "describe_vpcs",
            region,
            Filters=[{"Name": "is-default", "Values": ["true"]}],
        )
        vpcs = response.get("Vpcs", [])
        return vpcs[0].get("VpcId") if vpcs else None

    def running_instance_count(self, region: str) -> int:
        paginator = self._client("ec2", region).get_paginator("describe_instances")
        count = 0
        try:
            for page in paginator.paginate(
                Filters=[{"Name": "instance-state-name", "Values": ["running"]}]
            ):
                for reservation in page.get("Reservations", []):
                    count += len(reservation.get("Instances", []))
        except (ClientError, BotoCoreError) as exc:
            raise AwsProbeError("ec2", "describe_instances", _error_code(exc), str(exc)) from exc
        return count

    def role_names_containing(self, fragment: str) -> list[str]:
        paginator = self._client("iam", None).get_paginator("list_roles")
        needle = fragment.lower()
        names: list[str] = []
        try:
            for page in paginator.paginate():
                names.extend(
                    role["RoleName"]
                    for role in page.get("Roles", [])
                    if needle in role.get("RoleName", "").lower()
                )
        except (ClientError, BotoCoreError) as exc:
            raise AwsProbeError("iam", "list_roles", _error_code(exc), str(exc)) from exc
        return names

    def security_group_names_containing(self, fragment: str, region: str) -> list[str]:
        response = self.call(
            "ec2",
            "describe_security_groups",
            region,
            Filters=[{"Name": "group-name", "Values": [f"*{fragment}*"]}],
        )
        return [group["GroupName"] for group in response.get("SecurityGroups", [])]

    def _describe_instance(self, instance_id: str, region: str) -> dict[str, object]:
        response = self.call("ec2", "describe_instances", region, InstanceIds=[instance_id])
        for reservation in response.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                return instance
        raise AwsProbeError(
            "ec2", "describe_instances", "InvalidInstanceID.NotFound", instance_id
        )

    def instance_state(self, instance_id: str, region: str) -> str:
        instance = self._describe_instance(instance_id, region)
        return str(instance.get("State", {}).get("Name", "unknown"))

    def instance_private_ip(self, instance_id: str, region: str) -> str | None:
        return self._describe_instance(instance_id, region).get("PrivateIpAddress")

    def wait_instance_running(self, instance_id: str, region: str) -> None:
        """Block on the SDK waiter; its delay and attempt limits apply."""
        waiter = self._client("ec2", region).get_waiter("instance_running")
        try:
            waiter.wait(InstanceIds=[instance_id])
        except (WaiterError, ClientError, BotoCoreError) as exc:
            raise AwsProbeError("ec2", "wait_instance_running", _error_code(exc), str(exc)) from exc
