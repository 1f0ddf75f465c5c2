"""
Vaultwarden Fargate service behind a public ALB.

Persistent data (SQLite database, attachments) lives on EFS, mounted at
/data in the container. HTTPS terminates at the load balancer using an ACM
certificate for the service's domain.
"""
from __future__ import annotations

import aws_cdk as cdk
from aws_cdk import aws_certificatemanager as acm
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_ecr as ecr
from aws_cdk import aws_ecs as ecs
from aws_cdk import aws_ecs_patterns as ecs_patterns
from aws_cdk import aws_efs as efs
from aws_cdk import aws_iam as iam
from aws_cdk import aws_route53 as route53
from aws_cdk import aws_route53_targets as targets
from constructs import Construct

EFS_VOLUME = "efs"
DATA_PATH = "/data"
NFS_PORT = 2049

CONTAINER_ENVIRONMENT = {
    "WEBSOCKET_ENABLED": "true",
    "LOG_LEVEL": "info",
}


class VaultwardenService(Construct):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        cluster: ecs.Cluster,
        repository: ecr.IRepository,
        version: str,
        file_system: efs.FileSystem,
        domain_name: str | None = None,
        hosted_zone: route53.IHostedZone | None = None,
        desired_count: int = 1,
        cpu: int = 256,
        memory_mib: int = 512,
    ):
        super().__init__(scope, id)

        execution_role = iam.Role(
            self, "TaskExecRole",
            assumed_by=iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
        )
        repository.grant_pull(execution_role)

        certificate = None
        if domain_name and hosted_zone:
            certificate = acm.Certificate(
                self, "Certificate",
                domain_name=domain_name,
                validation=acm.CertificateValidation.from_dns(hosted_zone),
            )

        # Egress limited to HTTPS; NFS to EFS is opened explicitly below
        security_group = ec2.SecurityGroup(
            self, "SecurityGroup",
            vpc=cluster.vpc,
            allow_all_outbound=False,
            description="Security group for Vaultwarden service",
        )
        security_group.add_egress_rule(
            ec2.Peer.any_ipv4(), ec2.Port.tcp(443), "Allow HTTPS outbound traffic",
        )

        self.service = ecs_patterns.ApplicationLoadBalancedFargateService(
            self, "Service",
            cluster=cluster,
            desired_count=desired_count,
            cpu=cpu,
            memory_limit_mib=memory_mib,
            task_image_options=ecs_patterns.ApplicationLoadBalancedTaskImageOptions(
                image=ecs.ContainerImage.from_ecr_repository(repository, version),
                execution_role=execution_role,
                environment=CONTAINER_ENVIRONMENT,
            ),
            task_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_ISOLATED),
            public_load_balancer=True,
            certificate=certificate,
            min_healthy_percent=100,
            security_groups=[security_group],
        )

        self.service.task_definition.add_volume(
            name=EFS_VOLUME,
            efs_volume_configuration=ecs.EfsVolumeConfiguration(
                file_system_id=file_system.file_system_id,
                transit_encryption="ENABLED",
            ),
        )
        self.service.task_definition.default_container.add_mount_points(
            ecs.MountPoint(source_volume=EFS_VOLUME, container_path=DATA_PATH, read_only=False)
        )

        connections = self.service.service.connections
        connections.allow_from(file_system, ec2.Port.tcp(NFS_PORT), "Allow EFS access from Vaultwarden")
        connections.allow_to(file_system, ec2.Port.tcp(NFS_PORT), "Allow Vaultwarden to access EFS")

        if certificate is not None:
            cdk.CfnOutput(
                self, "CertificateValidationWarning",
                value="The deployment waits until the certificate's DNS validation "
                      "records resolve. Check the ACM console if it stalls.",
            )
            route53.ARecord(
                self, "DnsRecord",
                zone=hosted_zone,
                record_name=domain_name,
                target=route53.RecordTarget.from_alias(
                    targets.LoadBalancerTarget(self.service.load_balancer)
                ),
            )

        cdk.CfnOutput(
            self, "LoadBalancerDnsName",
            description="The DNS name of the load balancer for the Vaultwarden service",
            value=self.service.load_balancer.load_balancer_dns_name,
        )
