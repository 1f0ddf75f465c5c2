"""
Dedicated VPC for the Vaultwarden cluster.

No NAT gateways: tasks run in isolated subnets and reach AWS through VPC
endpoints (ECR API, ECR Docker, CloudWatch Logs, S3 for image layers).
Only the load balancer lives in the public subnets.
"""
from aws_cdk import aws_ec2 as ec2
from constructs import Construct

ISOLATED = ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_ISOLATED)


class VaultwardenNetwork(Construct):
    def __init__(self, scope: Construct, id: str, *, vpc_cidr: str = "20.0.0.0/24", max_azs: int = 2):
        super().__init__(scope, id)

        self.vpc = ec2.Vpc(
            self, "Vpc",
            ip_addresses=ec2.IpAddresses.cidr(vpc_cidr),
            max_azs=max_azs,
            nat_gateways=0,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name="isolated",
                    subnet_type=ec2.SubnetType.PRIVATE_ISOLATED,
                    cidr_mask=26,
                ),
                ec2.SubnetConfiguration(
                    name="ingress",
                    subnet_type=ec2.SubnetType.PUBLIC,
                    cidr_mask=26,
                ),
            ],
        )

        self.ecr_endpoint = self.vpc.add_interface_endpoint(
            "EcrEndpoint",
            service=ec2.InterfaceVpcEndpointAwsService.ECR,
            private_dns_enabled=True,
            subnets=ISOLATED,
        )
        self.ecr_docker_endpoint = self.vpc.add_interface_endpoint(
            "EcrDockerEndpoint",
            service=ec2.InterfaceVpcEndpointAwsService.ECR_DOCKER,
            private_dns_enabled=True,
            subnets=ISOLATED,
        )
        self.cloudwatch_endpoint = self.vpc.add_interface_endpoint(
            "CloudwatchLogsEndpoint",
            service=ec2.InterfaceVpcEndpointAwsService.CLOUDWATCH_LOGS,
            private_dns_enabled=True,
            subnets=ISOLATED,
        )
        self.s3_endpoint = self.vpc.add_gateway_endpoint(
            "S3Endpoint",
            service=ec2.GatewayVpcEndpointAwsService.S3,
            subnets=[ISOLATED],
        )

    def allow_endpoint_access_from(self, peer: ec2.IConnectable) -> None:
        """Open the interface endpoints to `peer` on their default port (443)."""
        for endpoint, description in (
            (self.ecr_endpoint, "Allow ECR API access"),
            (self.ecr_docker_endpoint, "Allow ECR image pulls"),
            (self.cloudwatch_endpoint, "Allow CloudWatch Logs access"),
        ):
            endpoint.connections.allow_default_port_from(peer, description)
