"""
Vaultwarden Stack
=================
Self-hosted Vaultwarden (Bitwarden-compatible) on ECS Fargate.

  ECR repository → Fargate tasks in isolated subnets → EFS for /data
  ALB (HTTPS) ← vault.<prefix>.<root>

Cluster, file system and repository names carry the environment prefix so
several environments can share one account.
"""
from __future__ import annotations

import aws_cdk as cdk
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_ecs as ecs
from aws_cdk import aws_efs as efs
from constructs import Construct

from .config import VaultwardenConfig
from .core_stack import import_hosted_zone
from .domain import DomainConfig, default_domain_config
from .environment import Environment
from .image_repository import ImageRepository
from .network import VaultwardenNetwork
from .vaultwarden_service import VaultwardenService

APP_NAME = "vault"

LIFECYCLE_POLICIES = {
    7: efs.LifecyclePolicy.AFTER_7_DAYS,
    14: efs.LifecyclePolicy.AFTER_14_DAYS,
    30: efs.LifecyclePolicy.AFTER_30_DAYS,
    60: efs.LifecyclePolicy.AFTER_60_DAYS,
    90: efs.LifecyclePolicy.AFTER_90_DAYS,
}


OUT_OF_INFREQUENT_ACCESS_POLICIES = {
    1: efs.OutOfInfrequentAccessPolicy.AFTER_1_ACCESS,
}


def lifecycle_policy(days: int) -> efs.LifecyclePolicy:
    return LIFECYCLE_POLICIES.get(days, efs.LifecyclePolicy.AFTER_14_DAYS)


def out_of_infrequent_access_policy(hits: int) -> efs.OutOfInfrequentAccessPolicy | None:
    """None leaves files in Infrequent Access once they have moved there."""
    return OUT_OF_INFREQUENT_ACCESS_POLICIES.get(hits)


class VaultwardenStack(cdk.Stack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        environment: Environment,
        config: VaultwardenConfig | None = None,
        domain_config: DomainConfig | None = None,
        **kwargs,
    ):
        super().__init__(scope, id, **kwargs)
        cdk.Tags.of(self).add("x:stack", "vaultwarden")

        config = config or VaultwardenConfig()
        domain_config = domain_config or default_domain_config()
        domain_name = config.domain_name or domain_config.app_domain(APP_NAME, environment)

        hosted_zone = import_hosted_zone(self, domain_config)

        image_repository = ImageRepository(
            self, "ImageRepository",
            environment=environment,
            image_name=config.base_image_name,
            version=config.base_version,
        )

        network = VaultwardenNetwork(
            self, "Network",
            vpc_cidr=config.vpc_cidr,
            max_azs=config.max_azs,
        )

        self.cluster = ecs.Cluster(
            self, "Cluster",
            cluster_name=environment.resource_name(config.cluster_name),
            vpc=network.vpc,
        )
        network.allow_endpoint_access_from(self.cluster)

        self.file_system = efs.FileSystem(
            self, "FileSystem",
            file_system_name=environment.resource_name(config.file_system_name),
            vpc=network.vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_ISOLATED),
            encrypted=True,
            performance_mode=efs.PerformanceMode.GENERAL_PURPOSE,
            enable_automatic_backups=config.enable_automatic_backups,
            lifecycle_policy=lifecycle_policy(config.lifecycle_policy_days),
            out_of_infrequent_access_policy=out_of_infrequent_access_policy(
                config.out_of_infrequent_access_hits
            ),
        )

        self.service = VaultwardenService(
            self, "VaultwardenService",
            cluster=self.cluster,
            repository=image_repository.repository,
            version=config.base_version,
            file_system=self.file_system,
            domain_name=domain_name,
            hosted_zone=hosted_zone,
            desired_count=config.desired_count,
            cpu=config.cpu,
            memory_mib=config.memory_mib,
        )

        cdk.CfnOutput(
            self, "VaultwardenDomainName",
            description="The domain name for the Vaultwarden service",
            value=domain_name,
        )
